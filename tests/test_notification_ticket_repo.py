import asyncio

import pytest

from courtside.database.db_connection import ConnectionManager
from courtside.database.db_schema import SchemaManager
from courtside.repositories.notification_ticket_repo import NotificationTicket, ticket_storage

PLAYER = "123456789012345678"
OTHER = "223456789012345678"


@pytest.mark.asyncio
async def test_insert_if_absent_only_inserts_once(db):
    async with db.transaction() as conn:
        first = await ticket_storage.insert_if_absent(conn, PLAYER, "hour_1", 1000)
        second = await ticket_storage.insert_if_absent(conn, PLAYER, "hour_1", 5000)

    assert first is True
    assert second is False
    async with db.read() as conn:
        pending = await ticket_storage.get_pending(conn)
    assert pending == [NotificationTicket(PLAYER, "hour_1", 1000, False)]


@pytest.mark.asyncio
async def test_same_identity_different_keys_are_independent(db):
    async with db.transaction() as conn:
        assert await ticket_storage.insert_if_absent(conn, PLAYER, "hour_1", 1000)
        assert await ticket_storage.insert_if_absent(conn, PLAYER, "day_1", 2000)

    async with db.read() as conn:
        pending = await ticket_storage.get_pending(conn)
    assert [t.reminder_key for t in pending] == ["hour_1", "day_1"]


@pytest.mark.asyncio
async def test_claim_due_returns_and_removes_only_due_rows(db):
    async with db.transaction() as conn:
        await ticket_storage.insert_if_absent(conn, PLAYER, "hour_1", 1000)
        await ticket_storage.insert_if_absent(conn, OTHER, "hour_1", 3000)

    async with db.transaction() as conn:
        claimed = await ticket_storage.claim_due(conn, 1000)
    async with db.transaction() as conn:
        again = await ticket_storage.claim_due(conn, 1000)

    assert claimed == [NotificationTicket(PLAYER, "hour_1", 1000, False)]
    assert again == []
    async with db.read() as conn:
        pending = await ticket_storage.get_pending(conn)
    assert [t.identity for t in pending] == [OTHER]


@pytest.mark.asyncio
async def test_is_known_covers_pending_and_handled(db):
    async with db.read() as conn:
        assert await ticket_storage.is_known(conn, PLAYER, "hour_1") is False

    async with db.transaction() as conn:
        await ticket_storage.insert_if_absent(conn, PLAYER, "hour_1", 1000)
    async with db.read() as conn:
        assert await ticket_storage.is_known(conn, PLAYER, "hour_1") is True

    async with db.transaction() as conn:
        await ticket_storage.mark_handled(conn, PLAYER, "hour_1", 900)
        await ticket_storage.claim_due(conn, 1000)
    async with db.read() as conn:
        assert await ticket_storage.is_known(conn, PLAYER, "hour_1") is True
        assert await ticket_storage.is_known(conn, OTHER, "hour_1") is False


@pytest.mark.asyncio
async def test_mark_handled_twice_is_harmless(db):
    async with db.transaction() as conn:
        first = await ticket_storage.mark_handled(conn, PLAYER, "hour_1", 900)
        second = await ticket_storage.mark_handled(conn, PLAYER, "hour_1", 950)

    assert (first, second) == (True, False)

    async with db.read() as conn:
        cursor = await conn.execute("SELECT handled_at FROM notification_receipts")
        rows = await cursor.fetchall()
    assert [row[0] for row in rows] == [900]


@pytest.mark.asyncio
async def test_concurrent_claims_hand_out_each_ticket_once(db):
    async with db.transaction() as conn:
        for index in range(20):
            await ticket_storage.insert_if_absent(conn, f"1234567890123456{index:02d}", "hour_1", 1000)

    async def claim():
        async with db.transaction() as conn:
            return await ticket_storage.claim_due(conn, 2000)

    results = await asyncio.gather(*(claim() for _ in range(5)))

    claimed = [ticket.identity for batch in results for ticket in batch]
    assert len(claimed) == 20
    assert len(set(claimed)) == 20


@pytest.mark.asyncio
async def test_rollback_discards_partial_writes(db):
    with pytest.raises(RuntimeError):
        async with db.transaction() as conn:
            await ticket_storage.insert_if_absent(conn, PLAYER, "hour_1", 1000)
            raise RuntimeError("boom")

    async with db.read() as conn:
        assert await ticket_storage.get_pending(conn) == []


@pytest.mark.asyncio
async def test_replicas_on_separate_connections_claim_each_ticket_once(tmp_path):
    path = tmp_path / "shared.db"
    replicas = [ConnectionManager() for _ in range(4)]
    for manager in replicas:
        await manager.open(path)
    await SchemaManager.initialize_schema(replicas[0].connection)

    try:
        async with replicas[0].transaction() as conn:
            for index in range(50):
                await ticket_storage.insert_if_absent(conn, f"12345678901234{index:04d}", "hour_1", 1000)

        async def claim(manager):
            async with manager.transaction() as conn:
                return await ticket_storage.claim_due(conn, 2000)

        results = await asyncio.gather(*(claim(manager) for manager in replicas))
    finally:
        for manager in replicas:
            await manager.close()

    claimed = [ticket.identity for batch in results for ticket in batch]
    assert len(claimed) == 50
    assert len(set(claimed)) == 50
