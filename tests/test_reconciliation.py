import asyncio
from typing import Dict, List, Set, Tuple
from unittest.mock import AsyncMock

import pytest

from courtside.datatypes.discord_datatypes import RoleID, UserID
from courtside.ranking.reconciliation import TierReconciler
from courtside.ranking.sheet_fetcher import SheetSnapshot
from courtside.ranking.tier_resolver import TierDefinition
from courtside.util.errors import FetchError, IdentityNotFound, MutationError

BRONZE, SILVER, GOLD = RoleID(1001), RoleID(1002), RoleID(1003)
UNRELATED = RoleID(5555)

ALICE = "111111111111111111"
BOB = "222222222222222222"
CAROL = "333333333333333333"


def make_tiers() -> TierDefinition:
    return TierDefinition.from_config([
        {"min": 0, "max": 99, "role_id": 1001, "label": "bronze"},
        {"min": 100, "max": 199, "role_id": 1002, "label": "silver"},
        {"min": 200, "max": None, "role_id": 1003, "label": "gold"},
    ])


class FakeSource:
    def __init__(self, rows, title="Season 1"):
        self.rows = rows
        self.title = title
        self.error = None
        self.gate: asyncio.Event | None = None

    async def fetch_latest(self) -> SheetSnapshot:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return SheetSnapshot(self.title, [list(row) for row in self.rows])


class FakeDirectory:
    """In-memory guild: identity -> held roles."""

    def __init__(self, members: Dict[str, Set[RoleID]]):
        self.members = {UserID(k): set(v) for k, v in members.items()}
        self.calls: List[Tuple[str, str, RoleID]] = []
        self.fail_add: Set[str] = set()
        self.fail_remove: Set[str] = set()
        self.resets = 0

    def reset(self) -> None:
        self.resets += 1

    def _roles(self, identity: UserID) -> Set[RoleID]:
        if identity not in self.members:
            raise IdentityNotFound(str(identity), "not a member of the guild")
        return self.members[identity]

    async def fetch_roles(self, identity: UserID) -> frozenset:
        return frozenset(self._roles(identity))

    async def add_role(self, identity: UserID, role_id: RoleID) -> None:
        roles = self._roles(identity)
        self.calls.append(("add", str(identity), role_id))
        if str(identity) in self.fail_add:
            raise MutationError(f"Could not add role {role_id} to {identity}")
        roles.add(role_id)

    async def remove_role(self, identity: UserID, role_id: RoleID) -> None:
        roles = self._roles(identity)
        self.calls.append(("remove", str(identity), role_id))
        if str(identity) in self.fail_remove:
            raise MutationError(f"Could not remove role {role_id} from {identity}")
        roles.discard(role_id)


class FakeAudit:
    def __init__(self):
        self.reports = []

    async def publish(self, report) -> bool:
        self.reports.append(report)
        return True


def build(rows, members):
    source = FakeSource(rows)
    directory = FakeDirectory(members)
    audit = FakeAudit()
    return TierReconciler(source, directory, make_tiers(), audit), source, directory, audit


@pytest.mark.asyncio
async def test_pass_moves_members_to_their_score_tier():
    reconciler, _, directory, audit = build(
        [["150", ALICE], ["250", BOB], [CAROL, "5"]],
        {ALICE: {BRONZE, UNRELATED}, BOB: {GOLD}, CAROL: set()},
    )

    report = await reconciler.run_pass()

    assert directory.members[UserID(ALICE)] == {SILVER, UNRELATED}
    assert directory.members[UserID(BOB)] == {GOLD}
    assert directory.members[UserID(CAROL)] == {BRONZE}
    assert [str(change.identity) for change in report.changes] == [ALICE, CAROL]
    assert report.changes[0].audit_line() == f"<@{ALICE}>, <@&1001> --> <@&1002>"
    assert report.changes[1].audit_line() == f"<@{CAROL}>,  --> <@&1001>"
    assert audit.reports == [report]


@pytest.mark.asyncio
async def test_bronze_member_scoring_150_moves_to_silver():
    reconciler, _, directory, _ = build([["150", ALICE]], {ALICE: {BRONZE}})

    report = await reconciler.run_pass()

    assert directory.calls == [("remove", ALICE, BRONZE), ("add", ALICE, SILVER)]
    (change,) = report.changes
    assert (change.previous_tier.label, change.new_tier.label) == ("bronze", "silver")


@pytest.mark.asyncio
async def test_member_already_in_tier_is_untouched():
    reconciler, _, directory, audit = build([["150", BOB]], {BOB: {SILVER}})

    report = await reconciler.run_pass()

    assert directory.calls == []
    assert report.changes == []
    assert audit.reports == []


@pytest.mark.asyncio
async def test_second_pass_is_a_no_op():
    reconciler, _, directory, audit = build(
        [["150", ALICE], ["5", BOB]],
        {ALICE: {GOLD}, BOB: {SILVER, GOLD}},
    )

    await reconciler.run_pass()
    first_calls = list(directory.calls)
    second = await reconciler.run_pass()

    assert directory.calls == first_calls
    assert second.changes == []
    assert len(audit.reports) == 1


@pytest.mark.asyncio
async def test_multiple_tier_roles_collapse_to_one():
    reconciler, _, directory, _ = build([["5", BOB]], {BOB: {SILVER, GOLD, UNRELATED}})

    report = await reconciler.run_pass()

    assert directory.members[UserID(BOB)] == {BRONZE, UNRELATED}
    assert report.changes[0].previous_tier.label == "silver"


@pytest.mark.asyncio
async def test_unusable_rows_are_skipped_without_mutation():
    reconciler, _, directory, _ = build(
        [["abc", ALICE], ["150"], [], ["12", "34"], ["150", BOB]],
        {ALICE: {BRONZE}, BOB: set()},
    )

    report = await reconciler.run_pass()

    assert report.rows_read == 5
    assert report.rows_skipped == 4
    assert directory.members[UserID(ALICE)] == {BRONZE}
    assert [call[1] for call in directory.calls] == [BOB]


@pytest.mark.asyncio
async def test_departed_member_is_listed_and_pass_continues():
    reconciler, _, directory, audit = build(
        [["150", ALICE], ["150", BOB]],
        {BOB: set()},
    )

    report = await reconciler.run_pass()

    assert report.invalid_ids == [UserID(ALICE)]
    assert directory.members[UserID(BOB)] == {SILVER}
    assert audit.reports == [report]


@pytest.mark.asyncio
async def test_invalid_ids_alone_still_produce_an_audit():
    reconciler, _, _, audit = build([["150", ALICE]], {})

    report = await reconciler.run_pass()

    assert report.changes == []
    assert audit.reports == [report]


@pytest.mark.asyncio
async def test_failed_add_is_recorded_and_pass_continues():
    reconciler, _, directory, _ = build(
        [["150", ALICE], ["250", BOB]],
        {ALICE: {BRONZE}, BOB: set()},
    )
    directory.fail_add.add(ALICE)

    report = await reconciler.run_pass()

    assert report.failed_ids == [UserID(ALICE)]
    assert directory.members[UserID(BOB)] == {GOLD}
    assert [str(change.identity) for change in report.changes] == [BOB]


@pytest.mark.asyncio
async def test_failed_remove_still_adds_target_role():
    reconciler, _, directory, _ = build([["250", ALICE]], {ALICE: {BRONZE}})
    directory.fail_remove.add(ALICE)

    report = await reconciler.run_pass()

    assert GOLD in directory.members[UserID(ALICE)]
    assert len(report.changes) == 1
    assert report.failed_ids == []


@pytest.mark.asyncio
async def test_fetch_failure_aborts_before_any_mutation():
    reconciler, source, directory, audit = build([["150", ALICE]], {ALICE: set()})
    source.error = FetchError("sheet unavailable")

    report = await reconciler.run_pass()

    assert report is None
    assert directory.calls == []
    assert directory.resets == 0
    assert audit.reports == []


@pytest.mark.asyncio
async def test_score_in_gap_is_skipped():
    tiers = TierDefinition.from_config([
        {"min": 0, "max": 9, "role_id": 1001},
        {"min": 20, "max": None, "role_id": 1003},
    ])
    directory = FakeDirectory({ALICE: {BRONZE}})
    reconciler = TierReconciler(FakeSource([["15", ALICE]]), directory, tiers)

    report = await reconciler.run_pass()

    assert report.rows_skipped == 1
    assert directory.calls == []


@pytest.mark.asyncio
async def test_overlapping_pass_is_skipped():
    reconciler, source, directory, _ = build([["150", ALICE]], {ALICE: set()})
    source.gate = asyncio.Event()

    first = asyncio.create_task(reconciler.run_pass())
    await asyncio.sleep(0)
    assert reconciler.running is True

    second = await reconciler.run_pass()
    source.gate.set()
    first_report = await first

    assert second is None
    assert len(first_report.changes) == 1
    assert reconciler.running is False
    assert directory.calls == [("add", ALICE, SILVER)]


@pytest.mark.asyncio
async def test_directory_cache_is_reset_around_each_pass():
    reconciler, _, directory, _ = build([["150", ALICE]], {ALICE: set()})

    await reconciler.run_pass()

    assert directory.resets == 2


@pytest.mark.asyncio
async def test_duplicate_rows_are_processed_in_order():
    reconciler, _, directory, _ = build([["150", ALICE], ["250", ALICE]], {ALICE: set()})

    report = await reconciler.run_pass()

    assert directory.members[UserID(ALICE)] == {GOLD}
    assert len(report.changes) == 2


@pytest.mark.asyncio
async def test_runs_without_audit_publisher():
    reconciler = TierReconciler(FakeSource([["150", ALICE]]), FakeDirectory({ALICE: set()}), make_tiers())

    report = await reconciler.run_pass()

    assert len(report.changes) == 1


@pytest.mark.asyncio
async def test_audit_failure_is_logged_and_report_returned():
    reconciler, _, directory, audit = build([["150", ALICE]], {ALICE: set()})
    audit.publish = AsyncMock(side_effect=AttributeError("'TextChannel' object has no attribute 'create_thread'"))

    report = await reconciler.run_pass()

    assert report is not None
    assert len(report.changes) == 1
    assert directory.members[UserID(ALICE)] == {SILVER}
    audit.publish.assert_awaited_once_with(report)
