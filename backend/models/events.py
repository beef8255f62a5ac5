"""Activity events emitted by the smart-HTTP protocol adapter.

Each event carries a decision object. Subscribers call `accept()` to let the
operation proceed or `reject(reason)` to refuse it.
"""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class EventDecision:
    accepted: bool = False
    rejected: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class ActivityEvent:
    """Base class for protocol activity events."""

    kind: ClassVar[str] = ""

    repo: str
    decision: EventDecision = field(default_factory=EventDecision, compare=False, repr=False)

    def accept(self) -> None:
        self.decision.accepted = True

    def reject(self, reason: str = "Rejected") -> None:
        self.decision.rejected = True
        self.decision.reason = reason


@dataclass(frozen=True)
class PushEvent(ActivityEvent):
    kind: ClassVar[str] = "push"

    commit: str = ""
    branch: str = ""


@dataclass(frozen=True)
class TagEvent(ActivityEvent):
    kind: ClassVar[str] = "tag"

    commit: str = ""
    version: str = ""


@dataclass(frozen=True)
class FetchEvent(ActivityEvent):
    kind: ClassVar[str] = "fetch"

    commit: str = ""


@dataclass(frozen=True)
class InfoEvent(ActivityEvent):
    kind: ClassVar[str] = "info"

    service: str = ""


EVENT_KINDS = ("push", "tag", "fetch", "info")
