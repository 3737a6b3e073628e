from __future__ import annotations
from typing import List, Optional

from .models import Attempt, AttemptOutcome


_LABELS = {
    AttemptOutcome.PORT_BUSY: "port busy",
    AttemptOutcome.SERVER_FAILED: "server failed",
    AttemptOutcome.TUNNEL_TIMED_OUT: "tunnel timed out",
    AttemptOutcome.SUCCESS: "tunnel established",
}


class AttemptJournal:
    """In-memory record of every port tried during one run."""

    def __init__(self) -> None:
        self._attempts: List[Attempt] = []

    def record(self, port: int, outcome: AttemptOutcome, detail: Optional[str] = None) -> Attempt:
        attempt = Attempt(port=port, outcome=outcome, detail=detail)
        self._attempts.append(attempt)
        return attempt

    def list(self, limit: Optional[int] = None) -> List[Attempt]:
        if limit is None:
            return list(self._attempts)
        return list(self._attempts[-limit:])

    def tried_ports(self) -> List[int]:
        return [a.port for a in self._attempts]

    def __len__(self) -> int:
        return len(self._attempts)

    def summary(self) -> str:
        lines = []
        for i, a in enumerate(self._attempts, start=1):
            line = f"  {i:>2}. port {a.port}: {_LABELS[a.outcome]}"
            # last log line is usually the exception message
            detail = (a.detail or "").strip()
            if detail:
                line += f" ({detail.splitlines()[-1].strip()})"
            lines.append(line)
        return "\n".join(lines)
