"""
Value objects passed between the stages of a tier reconciliation pass.

The reconciler only ever sees :class:`ScoreRow` values; raw spreadsheet cells
are turned into them by :mod:`courtside.ranking.row_mapping`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from courtside.datatypes.discord_datatypes import RoleID, UserID


@dataclass(frozen=True)
class TierRange:
    """
    One row of the tier table.

    Attributes:
        min_score: Inclusive lower bound.
        max_score: Inclusive upper bound, or ``None`` for no upper bound.
        role_id: Role that marks membership of this tier.
        label: Human-readable tier name used in logs.
    """
    min_score: int
    max_score: Optional[int]
    role_id: RoleID
    label: str = ""

    def contains(self, score: int) -> bool:
        if score < self.min_score:
            return False
        return self.max_score is None or score <= self.max_score

    @property
    def name(self) -> str:
        return self.label or str(self.role_id)


@dataclass(frozen=True)
class ScoreRow:
    """A typed ``(identity, score)`` pair read from the ranking sheet."""
    identity: UserID
    score: int


@dataclass(frozen=True)
class MembershipChange:
    """A tier change applied to one member during a pass."""
    identity: UserID
    previous_tier: Optional[TierRange]
    new_tier: TierRange

    def audit_line(self) -> str:
        """Render ``<@user>, <@&old> --> <@&new>`` with an empty old part when there was none."""
        previous = self.previous_tier.role_id.mention if self.previous_tier else ""
        return f"{self.identity.mention}, {previous} --> {self.new_tier.role_id.mention}"


@dataclass
class ReconciliationReport:
    """Outcome of a single reconciliation pass."""
    sheet_title: str = ""
    rows_read: int = 0
    rows_skipped: int = 0
    changes: List[MembershipChange] = field(default_factory=list)
    invalid_ids: List[UserID] = field(default_factory=list)
    failed_ids: List[UserID] = field(default_factory=list)

    @property
    def has_audit_content(self) -> bool:
        return bool(self.changes or self.invalid_ids)
