"""
Streaming dataclasses for SSE reframing and consumption.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DATA_PREFIX = "data:"
FRAME_TERMINATOR = "\n\n"


class StreamOutcome(Enum):
    """How a reframed stream ended."""
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class CompletionEventType(Enum):
    """Events recognised on the consuming side of a completion stream."""
    ANSWER = "answer"
    DONE = "done"
    ERROR = "error"


class MalformedLinePolicy(Enum):
    """What the consumer does with a data line that is not valid JSON."""
    IGNORE = "ignore"
    WARN = "warn"
    RAISE = "raise"


@dataclass(frozen=True)
class Frame:
    """
    A single SSE event built from one complete upstream line.

    ``line`` always starts with ``data:``. Lines that arrive already prefixed
    are kept byte-for-byte; bare lines get ``data: `` prepended.
    """
    line: str

    @classmethod
    def from_line(cls, raw_line: str) -> Frame | None:
        """Build a frame from a raw line, or None if the line is blank."""
        trimmed = raw_line.strip()
        if not trimmed:
            return None
        if trimmed.startswith(DATA_PREFIX):
            return cls(line=trimmed)
        return cls(line=f"{DATA_PREFIX} {trimmed}")

    @property
    def payload(self) -> str:
        return self.line[len(DATA_PREFIX):].strip()

    def render(self) -> str:
        """Wire form: the data line followed by a blank line."""
        return f"{self.line}{FRAME_TERMINATOR}"


@dataclass(frozen=True)
class ErrorPayload:
    """The ``{code, message, data}`` envelope used for failures."""
    message: str
    code: int = -1

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)


@dataclass
class ReframeStats:
    """Per-stream counters, owned by a single reframing task."""
    chunks_read: int = 0
    frames_emitted: int = 0
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def duration_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000, 2)

    def as_log_context(self) -> dict[str, Any]:
        return {
            "chunks_read": self.chunks_read,
            "frames_emitted": self.frames_emitted,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class CompletionEvent:
    """Typed event decoded from one ``data:`` frame of a completion stream."""
    event_type: CompletionEventType
    code: int
    answer: str | None = None
    reference: dict[str, Any] = field(default_factory=dict)
    message: str | None = None
    raw_data: str = ""
    timestamp: float = field(default_factory=time.time)
