"""
Weekly tier reconciliation.

A pass reads the newest ranking snapshot, resolves each player's score to a
tier, and brings the player's tier role in line with it:

    fetch snapshot -> map rows -> resolve tier -> diff held role -> apply -> audit

The pass re-diffs from scratch every time, so a failed mutation heals itself
on the next run. A snapshot that cannot be fetched aborts the pass before any
role is touched.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from courtside.datatypes.tier_datatypes import MembershipChange, ReconciliationReport, ScoreRow
from courtside.ranking.member_directory import MemberDirectory
from courtside.ranking.row_mapping import map_rows
from courtside.ranking.sheet_fetcher import SheetSnapshot
from courtside.ranking.tier_resolver import TierDefinition
from courtside.util.errors import FetchError, IdentityNotFound, MutationError
from courtside.util.logger import get_logger

logger = get_logger("tier_reconciliation")


class SnapshotSource(Protocol):
    async def fetch_latest(self) -> SheetSnapshot: ...


class AuditPublisher(Protocol):
    async def publish(self, report: ReconciliationReport) -> bool: ...


class TierReconciler:
    """
    Runs reconciliation passes.

    Passes never overlap: a pass requested while another is in flight is
    skipped and :meth:`run_pass` returns None.
    """

    def __init__(
        self,
        source: SnapshotSource,
        directory: MemberDirectory,
        tiers: TierDefinition,
        audit: Optional[AuditPublisher] = None,
    ) -> None:
        self.source = source
        self.directory = directory
        self.tiers = tiers
        self.audit = audit
        self._pass_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._pass_lock.locked()

    async def run_pass(self) -> Optional[ReconciliationReport]:
        """
        Execute one full pass.

        Returns:
            ReconciliationReport | None: The outcome, or None when the pass was
            skipped because another is running or the snapshot fetch failed.
        """
        if self._pass_lock.locked():
            logger.warning("[TIER_SYNC] Previous pass still running; skipping this tick")
            return None

        async with self._pass_lock:
            try:
                snapshot = await self.source.fetch_latest()
            except FetchError as exc:
                logger.error("[TIER_SYNC] Could not fetch ranking snapshot, pass aborted: %s", exc)
                return None

            rows, skipped = map_rows(snapshot.rows)
            report = ReconciliationReport(
                sheet_title=snapshot.title,
                rows_read=len(snapshot.rows),
                rows_skipped=skipped,
            )

            self.directory.reset()
            try:
                for row in rows:
                    await self._reconcile_row(row, report)
            finally:
                self.directory.reset()

            logger.info(
                "[TIER_SYNC] Pass over '%s' done: rows=%d skipped=%d changes=%d invalid=%d failed=%d",
                report.sheet_title, report.rows_read, report.rows_skipped,
                len(report.changes), len(report.invalid_ids), len(report.failed_ids),
            )

            if self.audit is not None and report.has_audit_content:
                try:
                    await self.audit.publish(report)
                except Exception as exc:
                    logger.error("[TIER_SYNC] Audit summary for '%s' was not posted: %s", report.sheet_title, exc)
            return report

    async def _reconcile_row(self, row: ScoreRow, report: ReconciliationReport) -> None:
        target = self.tiers.resolve(row.score)
        if target is None:
            logger.debug("[TIER_SYNC] No tier covers score %d for %s", row.score, row.identity)
            report.rows_skipped += 1
            return

        try:
            change = await self._apply(row, target)
        except asyncio.CancelledError:
            raise
        except IdentityNotFound as exc:
            logger.info("[TIER_SYNC] %s", exc)
            report.invalid_ids.append(row.identity)
            return
        except MutationError as exc:
            logger.error("[TIER_SYNC] %s", exc)
            report.failed_ids.append(row.identity)
            return
        except Exception as exc:
            logger.error("[TIER_SYNC] Failed to reconcile %s: %s", row.identity, exc)
            report.failed_ids.append(row.identity)
            return

        if change is not None:
            report.changes.append(change)

    async def _apply(self, row: ScoreRow, target) -> Optional[MembershipChange]:
        held = await self.directory.fetch_roles(row.identity)
        current = self.tiers.current_tier(held)
        if current == target:
            return None

        for tier in self.tiers:
            if tier.role_id not in held:
                continue
            try:
                await self.directory.remove_role(row.identity, tier.role_id)
            except MutationError as exc:
                logger.warning("[TIER_SYNC] %s", exc)

        await self.directory.add_role(row.identity, target.role_id)
        logger.debug(
            "[TIER_SYNC] %s: %s -> %s (score %d)",
            row.identity, current.name if current else "none", target.name, row.score,
        )
        return MembershipChange(identity=row.identity, previous_tier=current, new_tier=target)
