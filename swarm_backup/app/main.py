from __future__ import annotations
import argparse
import os
import signal
import sys
from typing import Optional, Sequence

from .bootstrap import Bootstrapper
from .config import CONFIG_ENV_VAR, AppConfig, ConfigLoader
from .errors import BackupTunnelError, RetriesExhausted
from .logfiles import create_run_dir, prune_stale_runs, remove_run_dir
from .logging_setup import SUCCESS, get_logger, setup_logging
from .orchestrator import TunnelOrchestrator
from .report import print_retrieval_banner
from .workdir import locate_workdir

APP_VERSION = "1.0.0"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="swarm-backup",
        description="Serve rl-swarm backup files through a temporary Cloudflare tunnel. "
                    f"Configuration is read from ${CONFIG_ENV_VAR} when set.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser.parse_args(argv)


def _raise_interrupt(signum, frame) -> None:
    raise KeyboardInterrupt


def serve(cfg: AppConfig) -> int:
    """Bootstrap, establish the tunnel and block until interrupted."""
    logger = get_logger(__name__)
    orchestrator: Optional[TunnelOrchestrator] = None
    run_dir: Optional[str] = None
    established = False
    try:
        workdir = locate_workdir(cfg.directory)
        Bootstrapper(cfg.bootstrap).run(cfg)
        os.chdir(workdir)

        prune_stale_runs(cfg.logging.run_directory, cfg.logging.stale_after_hours)
        run_dir = create_run_dir(cfg.logging.run_directory)
        logger.debug(f"child process logs in {run_dir}")

        logger.info("Starting HTTP server...")
        orchestrator = TunnelOrchestrator(cfg, run_dir, workdir=workdir)
        session = orchestrator.run()
        established = True

        print_retrieval_banner(session.url, cfg.backup.files, workdir)
        dead = orchestrator.wait()
        logger.error(f"The {dead} process exited unexpectedly; shutting down.")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        # cleanup below must not be interrupted a second time
        signal.signal(signal.SIGINT, signal.SIG_IGN)
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        print()
        logger.warning("Stopping servers...")
        return EXIT_OK if established else EXIT_INTERRUPTED
    except RetriesExhausted as e:
        logger.error(str(e))
        if e.attempts and orchestrator is not None:
            logger.error("Attempts:\n" + orchestrator.journal.summary())
        return e.exit_code
    except BackupTunnelError as e:
        logger.error(str(e))
        return e.exit_code
    finally:
        if orchestrator is not None:
            orchestrator.shutdown()
            if established:
                logger.log(SUCCESS, "Servers stopped.")
        if run_dir and not cfg.logging.keep_run_logs:
            remove_run_dir(run_dir)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parse_args(argv)
    try:
        cfg = ConfigLoader().config
    except BackupTunnelError as e:
        setup_logging()
        get_logger(__name__).error(str(e))
        return e.exit_code
    setup_logging(cfg.logging.directory, cfg.logging.level, cfg.logging.rotate_mb, cfg.logging.keep)
    signal.signal(signal.SIGTERM, _raise_interrupt)
    return serve(cfg)


if __name__ == "__main__":
    sys.exit(main())
