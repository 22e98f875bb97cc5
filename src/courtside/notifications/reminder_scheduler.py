"""
Deferred one-time notifications backed by the ``notification_tickets`` table.

Two entry points:

* :meth:`ReminderScheduler.enqueue` is called from an event handler. Stores a
  ticket due ``delay_seconds`` later and then sends a best-effort welcome DM,
  unless the same ``(identity, reminder_key)`` was ever enqueued before.
* The claim loop, started with :meth:`ReminderScheduler.start`, wakes every
  ``poll_interval`` seconds, atomically deletes every due ticket and delivers
  the matching reminder DM.

Delivery is at-most-once: a claimed ticket is gone, so a failed DM is logged
and never retried. Several schedulers (or bot replicas) may share one store
because the claim is a single ``DELETE ... RETURNING``.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional

import discord

from courtside.database.db_connection import ConnectionManager, db_connection
from courtside.datatypes.discord_datatypes import UserID
from courtside.notifications.reminder_messages import ReminderMessages
from courtside.repositories.notification_ticket_repo import NotificationTicket, ticket_storage
from courtside.util.async_utils import with_timeout
from courtside.util.errors import DeliveryError, PersistenceError
from courtside.util.logger import get_logger

logger = get_logger("reminder_scheduler")


class ReminderScheduler:
    """
    Enqueue guard plus claim loop for deferred DMs.

    Args:
        bot: Client used to resolve users and send DMs.
        messages: Templates for the welcome DM and each reminder key.
        connection: Database connection manager; defaults to the shared one.
        poll_interval: Seconds between claim ticks.
        timeout: Upper bound for each Discord or database call.
        clock: Returns the current unix time in seconds.
    """

    def __init__(
        self,
        bot: discord.Bot,
        messages: ReminderMessages,
        *,
        connection: ConnectionManager = db_connection,
        poll_interval: float = 300.0,
        timeout: float = 30.0,
        welcome_delay: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.bot = bot
        self.messages = messages
        self.connection = connection
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.welcome_delay = welcome_delay
        self.clock = clock
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the claim loop. Returns False if it is already running."""
        if self.running:
            logger.warning("[REMINDERS] Claim loop already running")
            return False
        self._task = asyncio.create_task(self._run_loop(), name="courtside-reminder-claim-loop")
        logger.info("[REMINDERS] Claim loop started (interval=%.1fs)", self.poll_interval)
        return True

    async def stop(self) -> None:
        """Cancel the claim loop and wait for it to finish. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("[REMINDERS] Claim loop stopped")

    async def _run_loop(self) -> None:
        try:
            while True:
                try:
                    await self.tick()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[REMINDERS] Unexpected error during claim tick: %s", exc)
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.debug("[REMINDERS] Claim loop cancelled")
            raise

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        identity: UserID,
        reminder_key: str,
        delay_seconds: float,
        *,
        recipient: Optional[discord.abc.User] = None,
    ) -> bool:
        """
        Schedule *reminder_key* for *identity* unless it was ever scheduled before.

        The ticket is stored first. Only the call that stored it sends the
        welcome DM to *recipient*; a failed DM is logged and the ticket stays.

        Returns:
            bool: True if a new ticket was stored.
        """
        try:
            async with self.connection.read() as conn:
                known = await with_timeout(
                    ticket_storage.is_known(conn, str(identity), reminder_key), self.timeout, "ticket lookup"
                )
        except Exception as exc:
            logger.error("[REMINDERS] Could not check ticket for %s/%s: %s", identity, reminder_key, exc)
            return False

        if known:
            logger.debug("[REMINDERS] %s/%s already handled; ignoring", identity, reminder_key)
            return False

        now = int(self.clock())
        try:
            stored = await self._store_ticket(identity, reminder_key, now + int(delay_seconds), now)
        except PersistenceError as exc:
            logger.error("[REMINDERS] %s", exc)
            return False

        if not stored:
            logger.debug("[REMINDERS] %s/%s claimed by a concurrent call; ignoring", identity, reminder_key)
            return False

        logger.info("[REMINDERS] Scheduled %s for %s in %ds", reminder_key, identity, int(delay_seconds))
        if recipient is not None:
            try:
                await self._send_welcome(recipient)
            except DeliveryError as exc:
                logger.warning("[REMINDERS] %s", exc)
        return True

    async def _store_ticket(self, identity: UserID, reminder_key: str, fire_at: int, now: int) -> bool:
        """
        Write the handled marker and the ticket in one transaction.

        The marker insert is the claim on ``(identity, reminder_key)``: when it
        already exists nothing is written and False is returned.

        Raises:
            PersistenceError: If the write fails or times out.
        """
        async def _insert() -> bool:
            async with self.connection.transaction() as conn:
                if not await ticket_storage.mark_handled(conn, str(identity), reminder_key, now):
                    return False
                return await ticket_storage.insert_if_absent(conn, str(identity), reminder_key, fire_at)

        try:
            return await with_timeout(_insert(), self.timeout, "ticket insert")
        except Exception as exc:
            raise PersistenceError(f"Could not store ticket {identity}/{reminder_key}: {exc}") from exc

    async def _send_welcome(self, recipient: discord.abc.User) -> None:
        if self.welcome_delay > 0:
            await asyncio.sleep(self.welcome_delay)
        try:
            await with_timeout(
                recipient.send(embed=self.messages.welcome_embed(recipient)), self.timeout, "welcome DM"
            )
        except (discord.HTTPException, TimeoutError) as exc:
            raise DeliveryError(f"Could not send welcome DM to {recipient.id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    async def claim_due(self) -> List[NotificationTicket]:
        """
        Atomically remove and return every ticket due now.

        Raises:
            PersistenceError: If the claim statement fails or times out.
        """
        now = int(self.clock())

        async def _claim() -> List[NotificationTicket]:
            async with self.connection.transaction() as conn:
                return await ticket_storage.claim_due(conn, now)

        try:
            return await with_timeout(_claim(), self.timeout, "ticket claim")
        except Exception as exc:
            raise PersistenceError(f"Could not claim due tickets: {exc}") from exc

    async def tick(self) -> List[NotificationTicket]:
        """Claim due tickets and deliver each once. Returns the claimed tickets."""
        try:
            claimed = await self.claim_due()
        except PersistenceError as exc:
            logger.error("[REMINDERS] %s", exc)
            return []

        if claimed:
            logger.info("[REMINDERS] Claimed %d due ticket(s)", len(claimed))

        for ticket in claimed:
            try:
                await self._deliver(ticket)
            except asyncio.CancelledError:
                raise
            except DeliveryError as exc:
                logger.warning("[REMINDERS] %s", exc)
            except Exception as exc:
                logger.error("[REMINDERS] Dropped ticket %s/%s: %s", ticket.identity, ticket.reminder_key, exc)
        return claimed

    async def _deliver(self, ticket: NotificationTicket) -> None:
        if not self.messages.has_reminder(ticket.reminder_key):
            logger.error("[REMINDERS] No message configured for key %r; dropping", ticket.reminder_key)
            return

        try:
            user = await with_timeout(self.bot.fetch_user(int(ticket.identity)), self.timeout, "fetch_user")
        except discord.NotFound:
            logger.warning("[REMINDERS] User %s no longer exists; dropping %s", ticket.identity, ticket.reminder_key)
            return
        except (discord.HTTPException, TimeoutError) as exc:
            raise DeliveryError(f"Could not resolve user {ticket.identity}: {exc}") from exc

        try:
            await with_timeout(
                user.send(embed=self.messages.reminder_embed(ticket.reminder_key, user)),
                self.timeout,
                "reminder DM",
            )
        except (discord.HTTPException, TimeoutError) as exc:
            raise DeliveryError(f"Could not deliver {ticket.reminder_key} to {ticket.identity}: {exc}") from exc

        logger.debug("[REMINDERS] Delivered %s to %s", ticket.reminder_key, ticket.identity)
