"""Batch sync: one transaction per (category, status) run.

FETCHING -> MATCHING -> TRANSACTING -> COMMITTING -> NOTIFYING.
Any failure before the commit completes rolls the whole batch back and discards
the buffered notifications and log lines. Notification failures after the
commit are logged and reported as PARTIAL_FAILURE, never undone.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .matching import MatchResolver, merge_cross_references
from .models import (
    EVENT_IPO_UPDATE,
    Category,
    IpoUpdateEvent,
    PrimaryIpoRow,
    StatusFilter,
    SyncOutcome,
    SyncResult,
)
from .reconcile import LogLine, UpsertEngine, offer_start_before

LOGGER = logging.getLogger(__name__)

DEFAULT_CUTOFF = date(2025, 1, 1)


@dataclass
class SyncBatch:
    """Per-invocation state: transaction handle plus buffered side effects."""

    category: Category
    status_filter: StatusFilter
    tx: Any = None
    events: List[IpoUpdateEvent] = field(default_factory=list)
    log_lines: List[LogLine] = field(default_factory=list)
    changed: int = 0
    skipped: int = 0


def _validate_rows(rows: List[Dict[str, Any]], log_lines: List[LogLine]) -> List[PrimaryIpoRow]:
    valid: List[PrimaryIpoRow] = []
    for raw in rows:
        if not isinstance(raw, dict):
            log_lines.append((logging.WARNING, f"Skipping non-object row: {raw!r}"))
            continue
        try:
            valid.append(PrimaryIpoRow.model_validate(raw))
        except ValidationError as exc:
            errors = ", ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            log_lines.append((logging.WARNING, f"Skipping malformed row id={raw.get('id')!r}: {errors}"))
    return valid


class BatchOrchestrator:
    """Runs the upsert engine over one fetched batch inside a single transaction.

    Collaborators are injected so tests can swap any of them:
    - db: load_all_ipos(), begin(), insert_ipo(tx, ...), update_ipo(tx, ...)
    - primary: fetch_ipos(category, status), fetch_live_subscription(ipo_id, slug)
    - secondary: fetch_cross_references(category)
    - publisher: publish(event_name, payload)
    """

    def __init__(
        self,
        db,
        primary,
        secondary,
        publisher,
        *,
        cutoff: date = DEFAULT_CUTOFF,
        refresh_live_subscription: bool = True,
    ) -> None:
        self.db = db
        self.primary = primary
        self.secondary = secondary
        self.publisher = publisher
        self.cutoff = cutoff
        fetcher = getattr(primary, "fetch_live_subscription", None) if refresh_live_subscription else None
        self.engine = UpsertEngine(db, fetcher)

    async def _fetch_cross_references(self):
        # category-agnostic lookup: both lists merged, sme wins on collisions
        mainboard = await self.secondary.fetch_cross_references(Category.MAINBOARD.value)
        sme = await self.secondary.fetch_cross_references(Category.SME.value)
        return merge_cross_references(mainboard, sme)

    async def _run(self, batch: SyncBatch) -> None:
        # FETCHING
        rows = await self.primary.fetch_ipos(batch.category.value, batch.status_filter.value)
        incoming = _validate_rows(rows, batch.log_lines)
        cross_references = await self._fetch_cross_references()
        persisted = await self.db.load_all_ipos()

        # MATCHING
        resolver = MatchResolver(persisted, cross_references)

        # TRANSACTING
        batch.tx = await self.db.begin()
        for row in incoming:
            if not row.open or offer_start_before(row, self.cutoff):
                batch.skipped += 1
                continue

            match = resolver.resolve(row.name, row.id)
            xref = match.cross_reference
            category = match.persisted.category if match.persisted else batch.category.value
            if xref is not None and xref.is_sme:
                category = Category.SME.value

            outcome = await self.engine.reconcile(
                batch.tx,
                row,
                xref.details_ipo_id if xref else None,
                xref.url_rewrite if xref else None,
                match.persisted,
                category,
            )
            batch.log_lines.extend(outcome.log_lines)
            if outcome.changed:
                batch.changed += 1
                if outcome.event is not None:
                    batch.events.append(outcome.event)
                if outcome.record is not None:
                    resolver.remember(outcome.record)

        # COMMITTING
        await batch.tx.commit()

    async def _rollback(self, batch: SyncBatch) -> None:
        if batch.tx is None:
            return
        try:
            await batch.tx.rollback()
        except Exception as exc:
            LOGGER.error("Rollback failed: %s", exc)

    async def _release(self, batch: SyncBatch) -> None:
        if batch.tx is None:
            return
        try:
            await batch.tx.close()
        except Exception as exc:
            LOGGER.error("Releasing the sync connection failed: %s", exc)

    async def _notify(self, batch: SyncBatch) -> List[str]:
        failures: List[str] = []
        for event in batch.events:
            try:
                await self.publisher.publish(EVENT_IPO_UPDATE, event.payload())
            except Exception as exc:
                message = f"Could not publish update for IPO {event.id}: {exc}"
                LOGGER.warning(message)
                failures.append(message)
        return failures

    async def sync_batch(self, category: str, status_filter: str) -> SyncResult:
        """Sync one (category, status) batch. Never raises; see SyncResult.outcome."""
        try:
            batch = SyncBatch(category=Category(category), status_filter=StatusFilter(status_filter))
        except ValueError as exc:
            LOGGER.error("Rejected sync request %s / %s: %s", category, status_filter, exc)
            return SyncResult(category=str(category), status_filter=str(status_filter),
                              outcome=SyncOutcome.FAILURE, diagnostics=[str(exc)])

        label = f"{batch.category.value.upper()} | {batch.status_filter.value.upper()}"
        try:
            await self._run(batch)
        except Exception as exc:
            await self._rollback(batch)
            LOGGER.error("Error syncing %s IPOs, batch rolled back: %s", label, exc)
            return SyncResult(
                category=batch.category.value,
                status_filter=batch.status_filter.value,
                outcome=SyncOutcome.FAILURE,
                diagnostics=[f"{type(exc).__name__}: {exc}"],
            )
        finally:
            await self._release(batch)

        # NOTIFYING
        failures = await self._notify(batch)
        for level, line in batch.log_lines:
            LOGGER.log(level, line)
        LOGGER.info("%d %s IPOs inserted or updated.", batch.changed, label)

        return SyncResult(
            category=batch.category.value,
            status_filter=batch.status_filter.value,
            outcome=SyncOutcome.PARTIAL_FAILURE if failures else SyncOutcome.SUCCESS,
            changed_count=batch.changed,
            skipped_count=batch.skipped,
            diagnostics=failures,
        )

    async def sync_count(self, category: str, status_filter: str) -> int:
        """Integer form of sync_batch: the number of changed rows, 0 on failure."""
        result = await self.sync_batch(category, status_filter)
        return result.changed_count
