from __future__ import annotations
import os
from typing import List, Sequence

from colorama import Fore, Style

from .logging_setup import get_logger

logger = get_logger(__name__)

BOLD = Style.BRIGHT
RESET = Style.RESET_ALL


def file_url(base_url: str, rel_path: str) -> str:
    return f"{base_url.rstrip('/')}/{rel_path.lstrip('/')}"


def render_retrieval_banner(url: str, files: Sequence[str], color: bool = True) -> str:
    def c(style: str, text: str) -> str:
        return f"{style}{text}{RESET}" if color else text

    lines: List[str] = [
        "",
        c(Fore.GREEN + BOLD, "========== VPS/GPU/WSL to PC ==========="),
        c(BOLD, "If you want to backup these files from VPS/GPU/WSL to your PC, visit the URLs and download."),
        "",
    ]
    for i, rel in enumerate(files, start=1):
        lines.append(c(BOLD, f"{i}. {os.path.basename(rel)}"))
        lines.append("   " + c(Fore.BLUE, file_url(url, rel)))
        lines.append("")
    lines += [
        c(Fore.GREEN + BOLD, "======= ONE VPS/GPU/WSL to ANOTHER VPS/GPU/WSL ========"),
        c(BOLD, "To send these files to another VPS/GPU/WSL, use the wget commands instead of the URLs."),
        "",
    ]
    for rel in files:
        lines.append(c(Fore.YELLOW, f"wget -O {os.path.basename(rel)} {file_url(url, rel)}"))
    lines += ["", c(Fore.BLUE + BOLD, "Press Ctrl+C to stop the server when you're done.")]
    return "\n".join(lines)


def missing_files(workdir: str, files: Sequence[str]) -> List[str]:
    return [rel for rel in files if not os.path.isfile(os.path.join(workdir, rel))]


def print_retrieval_banner(url: str, files: Sequence[str], workdir: str) -> None:
    for rel in missing_files(workdir, files):
        logger.warning(f"{rel} does not exist in {workdir}; its URL will return 404.")
    print(render_retrieval_banner(url, files), flush=True)
