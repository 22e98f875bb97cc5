import pytest

from courtside.datatypes.discord_datatypes import UserID
from courtside.ranking.row_mapping import map_row, map_rows

PLAYER = "123456789012345678"


def test_score_then_id() -> None:
    row = map_row(["150", PLAYER])

    assert row.identity == UserID(PLAYER)
    assert row.score == 150


def test_id_then_score() -> None:
    row = map_row([PLAYER, "4200"])

    assert row.identity == UserID(PLAYER)
    assert row.score == 4200


def test_whitespace_is_trimmed() -> None:
    row = map_row(["  150 ", f" {PLAYER}\n"])

    assert row is not None
    assert row.score == 150


def test_numeric_cells_are_accepted() -> None:
    row = map_row([150, PLAYER])

    assert row is not None
    assert row.score == 150


@pytest.mark.parametrize(
    "cells",
    [
        ["abc", PLAYER],          # non-numeric score
        ["-5", PLAYER],           # negative score
        ["1,500", PLAYER],        # formatted number
        ["12.5", PLAYER],         # decimal
        ["", PLAYER],             # blank score
        ["150", "12345"],         # id too short
        ["150", "12345678901234567890"],  # id too long
        [PLAYER, "223456789012345678"],   # two ids
        ["150", "200"],           # no id
        [PLAYER],                 # short row
        [],                       # empty row
        [None, PLAYER],
    ],
)
def test_unusable_rows_are_skipped(cells) -> None:
    assert map_row(cells) is None


def test_map_rows_preserves_order_and_counts_skips() -> None:
    other = "223456789012345678"

    rows, skipped = map_rows([["10", PLAYER], ["n/a", other], [other, "20"], []])

    assert [(str(r.identity), r.score) for r in rows] == [(PLAYER, 10), (other, 20)]
    assert skipped == 2


def test_extra_cells_are_ignored() -> None:
    row = map_row(["150", PLAYER, "notes"])

    assert row is not None
    assert row.score == 150
