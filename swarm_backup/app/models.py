from __future__ import annotations
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .utils import now_seconds


class AttemptOutcome(str, Enum):
    PORT_BUSY = "port_busy"
    SERVER_FAILED = "server_failed"
    TUNNEL_TIMED_OUT = "tunnel_timed_out"
    SUCCESS = "success"


class Attempt(BaseModel):
    port: int
    outcome: AttemptOutcome
    detail: Optional[str] = None
    ts: float = Field(default_factory=now_seconds)


class RetryState(BaseModel):
    current_port: int
    max_attempts: int
    attempts_used: int = 0
    started: bool = False

    @property
    def finished(self) -> bool:
        return self.started or self.attempts_used >= self.max_attempts

    def advance(self) -> None:
        self.attempts_used += 1
        self.current_port += 1
