"""
Schema mapping from raw ranking-sheet rows to :class:`ScoreRow` values.

The ranking sheet has a two-column region holding a player's Discord id and
their score, and the column order has not been stable across seasons. Each
row is therefore classified by shape: the cell that looks like an account id
is the identity, the other cell must be a plain non-negative integer. Rows
that do not yield exactly one of each are skipped; missing data is expected
in a hand-maintained sheet and is not an error.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence, Tuple

from courtside.datatypes.discord_datatypes import UserID
from courtside.datatypes.tier_datatypes import ScoreRow
from courtside.util.logger import get_logger

logger = get_logger("row_mapping")

_SCORE_PATTERN = re.compile(r"^\d+$")


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def map_row(row: Sequence[object]) -> Optional[ScoreRow]:
    """
    Classify the first two cells of *row* as ``(identity, score)``.

    Returns:
        ScoreRow | None: None when the row does not hold exactly one id-shaped
        cell and one plain non-negative integer.
    """
    if len(row) < 2:
        return None

    first, second = _cell_text(row[0]), _cell_text(row[1])
    first_is_id = UserID.looks_like(first)
    second_is_id = UserID.looks_like(second)

    # Both id-shaped is ambiguous; neither means there is no identity.
    if first_is_id == second_is_id:
        return None

    identity_text, score_text = (first, second) if first_is_id else (second, first)
    if not _SCORE_PATTERN.match(score_text):
        return None

    return ScoreRow(identity=UserID(identity_text), score=int(score_text))


def map_rows(rows: Iterable[Sequence[object]]) -> Tuple[List[ScoreRow], int]:
    """
    Map every row, preserving sheet order.

    Returns:
        tuple[list[ScoreRow], int]: Mapped rows and the number of rows skipped.
    """
    mapped: List[ScoreRow] = []
    skipped = 0
    for row in rows:
        score_row = map_row(row)
        if score_row is None:
            skipped += 1
            continue
        mapped.append(score_row)

    if skipped:
        logger.debug("[ROW MAPPING] Skipped %d row(s) without a usable id/score pair", skipped)
    return mapped, skipped
