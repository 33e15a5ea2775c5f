from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class EventResult:
    result: str
    reason: str | None = None
    dispatched: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    satisfied: list[str] = field(default_factory=list)

    @classmethod
    def ignored(cls, reason: str) -> "EventResult":
        return cls(result="ignored", reason=reason)
