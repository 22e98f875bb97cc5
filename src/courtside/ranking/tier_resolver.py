"""
Score → tier resolution.

A :class:`TierDefinition` is an ordered, disjoint table of score ranges. It is
built once from configuration and validated on construction so an overlapping
table can never reach the reconciler.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from courtside.datatypes.discord_datatypes import RoleID
from courtside.datatypes.tier_datatypes import TierRange


class TierDefinition:
    """Ordered, disjoint mapping from score ranges to tier roles."""

    def __init__(self, tiers: Iterable[TierRange]) -> None:
        self._tiers: List[TierRange] = sorted(tiers, key=lambda tier: tier.min_score)
        self._validate()

    @classmethod
    def from_config(cls, entries: Iterable[Mapping[str, Any]]) -> "TierDefinition":
        """
        Build a table from config mappings of the form
        ``{min, max, role_id, label}``. A missing or null ``max`` means no upper bound.

        Raises:
            ValueError: If an entry is malformed or the ranges overlap.
        """
        tiers = []
        for entry in entries:
            try:
                max_score = entry.get("max")
                tiers.append(
                    TierRange(
                        min_score=int(entry["min"]),
                        max_score=None if max_score is None else int(max_score),
                        role_id=RoleID(entry["role_id"]),
                        label=str(entry.get("label", "")),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"Invalid tier entry {entry!r}: {exc}") from exc
        return cls(tiers)

    def _validate(self) -> None:
        seen_roles = set()
        for index, tier in enumerate(self._tiers):
            if tier.min_score < 0:
                raise ValueError(f"Tier {tier.name} starts below zero")
            if tier.max_score is not None and tier.max_score < tier.min_score:
                raise ValueError(f"Tier {tier.name} has max below min")
            if tier.role_id in seen_roles:
                raise ValueError(f"Role {tier.role_id} is used by more than one tier")
            seen_roles.add(tier.role_id)

            if index == 0:
                continue
            previous = self._tiers[index - 1]
            if previous.max_score is None or previous.max_score >= tier.min_score:
                raise ValueError(f"Tiers {previous.name} and {tier.name} overlap")

    def __iter__(self):
        return iter(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    def resolve(self, score: int) -> Optional[TierRange]:
        """Return the tier whose range contains *score*, or None."""
        for tier in self._tiers:
            if tier.contains(score):
                return tier
        return None

    def current_tier(self, held_roles: Iterable[RoleID]) -> Optional[TierRange]:
        """Return the first tier (in table order) whose role is in *held_roles*."""
        held = set(held_roles)
        for tier in self._tiers:
            if tier.role_id in held:
                return tier
        return None

    def covers_all_scores(self) -> bool:
        """True when the ranges are contiguous from 0 with an open-ended last tier."""
        if not self._tiers or self._tiers[0].min_score != 0:
            return False
        for previous, tier in zip(self._tiers, self._tiers[1:]):
            if previous.max_score is None or previous.max_score + 1 != tier.min_score:
                return False
        return self._tiers[-1].max_score is None
