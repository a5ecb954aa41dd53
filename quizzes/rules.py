# quizzes/rules.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .ipcheck import IPNetwork


@dataclass(frozen=True)
class TimeWindow:
    """Closed interval [start, end]; ``end=None`` means open-ended."""
    start: datetime
    end: Optional[datetime] = None

    def position(self, moment: datetime, tolerance: timedelta = timedelta(0)) -> str:
        if moment < self.start - tolerance:
            return "not_started"
        if self.end is not None and moment > self.end + tolerance:
            return "ended"
        return "open"


@dataclass(frozen=True)
class AccessRuleSet:
    quiz_id: str
    window: TimeWindow
    access_code_hash: str = ""
    ip_allowlist: tuple[IPNetwork, ...] = ()
    # set from the stored list, so a list with no parsable entry still restricts
    ip_restricted: bool = False
    assigned_student_ids: frozenset = field(default_factory=frozenset)

    @property
    def requires_access_code(self) -> bool:
        return bool(self.access_code_hash)

    @property
    def is_ip_restricted(self) -> bool:
        return self.ip_restricted or bool(self.ip_allowlist)

    @property
    def is_assignment_restricted(self) -> bool:
        return bool(self.assigned_student_ids)
