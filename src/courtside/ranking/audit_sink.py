"""
Audit thread for tier sync results.

Each pass that changed something posts a summary to a dedicated thread. When
the thread has been deleted, a replacement is created under the configured
parent channel and used for the rest of the process lifetime.
"""

from __future__ import annotations

from typing import List, Optional

import discord

from courtside.datatypes.discord_datatypes import ChannelID
from courtside.datatypes.tier_datatypes import ReconciliationReport
from courtside.util.async_utils import with_timeout
from courtside.util.logger import get_logger

logger = get_logger("audit_sink")

DISCORD_MESSAGE_LIMIT = 2000


def build_audit_lines(report: ReconciliationReport) -> List[str]:
    """One line per change, then a block listing ids that could not be resolved."""
    lines = [change.audit_line() for change in report.changes]
    if report.invalid_ids:
        if lines:
            lines.append("")
        lines.append("**Invalid ids (no longer in the server):**")
        lines.extend(str(identity) for identity in report.invalid_ids)
    return lines


def chunk_lines(lines: List[str], limit: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    """Join *lines* into messages no longer than *limit* characters."""
    chunks: List[str] = []
    current = ""
    for line in lines:
        line = line[:limit]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class AuditSink:
    """Posts reconciliation summaries to an audit thread, recreating it if needed."""

    def __init__(
        self,
        bot: discord.Bot,
        *,
        thread_id: Optional[ChannelID],
        parent_channel_id: Optional[ChannelID],
        thread_name: str = "tier-sync-audit",
        timeout: float = 30.0,
    ) -> None:
        self.bot = bot
        self.thread_id = thread_id
        self.parent_channel_id = parent_channel_id
        self.thread_name = thread_name
        self.timeout = timeout

    async def _fetch_channel(self, channel_id: ChannelID):
        return await with_timeout(self.bot.fetch_channel(channel_id.to_int()), self.timeout, "fetch_channel")

    async def _recreate_thread(self):
        if self.parent_channel_id is None:
            logger.error("[AUDIT] Audit thread is gone and no parent channel is configured")
            return None

        parent = await self._fetch_channel(self.parent_channel_id)
        thread = await with_timeout(
            parent.create_thread(name=self.thread_name, type=discord.ChannelType.public_thread),
            self.timeout,
            "create_thread",
        )
        self.thread_id = ChannelID(thread.id)
        logger.warning(
            "[AUDIT] Audit thread recreated as %s under %s; update tier_sync.audit_thread_id",
            thread.id, self.parent_channel_id,
        )
        return thread

    async def _resolve_thread(self):
        if self.thread_id is None:
            return await self._recreate_thread()
        try:
            return await self._fetch_channel(self.thread_id)
        except discord.NotFound:
            logger.warning("[AUDIT] Audit thread %s no longer exists", self.thread_id)
            return await self._recreate_thread()

    async def publish(self, report: ReconciliationReport) -> bool:
        """
        Post *report* to the audit thread.

        Returns:
            bool: False when nothing was posted, either because the report was
            empty or because posting failed. Failures are logged only.
        """
        if not report.has_audit_content:
            return False

        try:
            thread = await self._resolve_thread()
            if thread is None:
                return False
            for chunk in chunk_lines(build_audit_lines(report)):
                await with_timeout(thread.send(chunk), self.timeout, "audit send")
        except (discord.HTTPException, TimeoutError) as exc:
            logger.error("[AUDIT] Failed to post tier sync summary: %s", exc)
            return False

        logger.info(
            "[AUDIT] Posted %d change(s) and %d invalid id(s)",
            len(report.changes), len(report.invalid_ids),
        )
        return True
