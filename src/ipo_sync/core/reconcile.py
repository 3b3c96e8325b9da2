"""Diff and upsert of a single IPO row inside a caller-owned transaction.

The engine never commits, rolls back or publishes: it issues at most one
statement against the transaction it is handed and returns the notification
payload for the caller to dispatch after COMMIT.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from .compare import is_absent, is_date_string, parse_to_ist_date, to_ist_date, values_equal
from .models import (
    IPO_COLUMNS,
    WRITE_ONCE_COLUMNS,
    FieldChange,
    IpoRecord,
    IpoUpdateEvent,
    PrimaryIpoRow,
)
from .normalize import display_name, format_name_for_url, strip_html

LOGGER = logging.getLogger(__name__)

LogLine = Tuple[int, str]
SubscriptionFetcher = Callable[[int, str], Awaitable[Optional[str]]]

# compared with values_equal and overwritten whenever they differ
MUTABLE_COLUMNS = ("name", "status", "subscription", "gmp", "price_band", "image_url")


@dataclass
class ReconcileOutcome:
    changed: bool
    event: Optional[IpoUpdateEvent] = None
    changes: List[FieldChange] = field(default_factory=list)
    log_lines: List[LogLine] = field(default_factory=list)
    record: Optional[IpoRecord] = None


def derive_record(
    incoming: PrimaryIpoRow,
    details_ipo_id: Optional[str],
    url_rewrite: Optional[str],
    category: str,
) -> IpoRecord:
    """Build the candidate row from a primary-source row. No I/O."""
    status = incoming.current_status.strip().upper() if incoming.current_status else None
    return IpoRecord(
        id=incoming.id,
        name=display_name(incoming.name),
        category=category,
        details_ipo_id=details_ipo_id,
        url_rewrite=url_rewrite,
        status=status or None,
        subscription=incoming.subscription,
        gmp=strip_html(incoming.premium) or None,
        price_band=incoming.price or None,
        offer_start_date=to_ist_date(incoming.open),
        offer_end_date=to_ist_date(incoming.close),
        allotment_date=to_ist_date(incoming.allotment_date),
        listing_date=to_ist_date(incoming.listing_date),
        image_url=incoming.icon_url or None,
    )


def compute_changes(existing: IpoRecord, candidate: IpoRecord) -> List[FieldChange]:
    """
    Minimal ChangeSet between the stored row and the candidate.
    - cross-reference id and slug are only written when the candidate has one
      (the slug only when nothing is stored yet)
    - write-once dates are only filled in when the stored value is absent
    """
    changes: List[FieldChange] = []

    def add(column: str, old: Any, new: Any) -> None:
        changes.append(FieldChange(name=column, old_value=old, new_value=new))

    if not values_equal(existing.category, candidate.category):
        add("category", existing.category, candidate.category)
    if is_absent(existing.url_rewrite) and not is_absent(candidate.url_rewrite):
        add("url_rewrite", existing.url_rewrite, candidate.url_rewrite)
    if candidate.details_ipo_id and not values_equal(existing.details_ipo_id, candidate.details_ipo_id):
        add("details_ipo_id", existing.details_ipo_id, candidate.details_ipo_id)

    for column in MUTABLE_COLUMNS:
        old, new = getattr(existing, column), getattr(candidate, column)
        if not values_equal(old, new):
            add(column, old, new)

    for column in WRITE_ONCE_COLUMNS:
        old, new = getattr(existing, column), getattr(candidate, column)
        if not is_absent(old):
            continue
        if not values_equal(old, new):
            add(column, old, new)

    order = {name: idx for idx, name in enumerate(IPO_COLUMNS)}
    changes.sort(key=lambda c: order.get(c.name, len(order)))
    return changes


def apply_changes(existing: IpoRecord, changes: List[FieldChange]) -> IpoRecord:
    return existing.model_copy(update={c.name: c.new_value for c in changes})


def _event_for(ipo_id: int, record: IpoRecord) -> IpoUpdateEvent:
    return IpoUpdateEvent(
        id=ipo_id,
        name=record.name,
        subscription=record.subscription,
        gmp=record.gmp,
        price_band=record.price_band,
        image_url=record.image_url,
    )


def _fmt(value: Any) -> str:
    return "None" if value is None else str(value)


class UpsertEngine:
    """Decides insert / update / no-op for one incoming row.

    `store` must provide insert_ipo(tx, record) and update_ipo(tx, ipo_id, changes).
    `fetch_live_subscription(ipo_id, slug)` is only called for OPEN offers.
    """

    def __init__(self, store, fetch_live_subscription: Optional[SubscriptionFetcher] = None) -> None:
        self._store = store
        self._fetch_live_subscription = fetch_live_subscription

    async def _refresh_subscription(self, candidate: IpoRecord, log_lines: List[LogLine]) -> Optional[str]:
        if self._fetch_live_subscription is None:
            return candidate.subscription
        if candidate.status != "OPEN" or not candidate.id or not candidate.name:
            return candidate.subscription
        try:
            scraped = await self._fetch_live_subscription(candidate.id, format_name_for_url(candidate.name))
        except Exception as exc:
            # a failed refetch only costs this record its fresh value
            log_lines.append((logging.WARNING,
                              f'Could not scrape subscription for "{candidate.name}". {type(exc).__name__}: {exc}'))
            return candidate.subscription
        return scraped if scraped else candidate.subscription

    async def reconcile(
        self,
        tx,
        incoming: PrimaryIpoRow,
        details_ipo_id: Optional[str],
        url_rewrite: Optional[str],
        matched: Optional[IpoRecord],
        category: str,
    ) -> ReconcileOutcome:
        log_lines: List[LogLine] = []
        candidate = derive_record(incoming, details_ipo_id, url_rewrite, category)

        subscription = await self._refresh_subscription(candidate, log_lines)
        if is_absent(subscription):
            # missing fresh data must not erase what is stored
            subscription = matched.subscription if matched is not None and not is_absent(matched.subscription) else None
        candidate = candidate.model_copy(update={"subscription": subscription})

        if matched is None:
            await self._store.insert_ipo(tx, candidate)
            log_lines.append((logging.INFO, f'NEW IPO INSERTED: "{candidate.name}" (ID: {candidate.id})'))
            return ReconcileOutcome(
                changed=True,
                event=_event_for(candidate.id, candidate),
                log_lines=log_lines,
                record=candidate,
            )

        changes = compute_changes(matched, candidate)
        if not changes:
            return ReconcileOutcome(changed=False, log_lines=log_lines, record=matched)

        await self._store.update_ipo(tx, matched.id, changes)
        log_lines.append((logging.INFO, f'IPO UPDATED: "{candidate.name}" (ID: {matched.id})'))
        for change in changes:
            suffix = " (updated from scrape)" if change.name == "subscription" else ""
            log_lines.append((logging.INFO,
                              f'\tFIELD "{change.name}": "{_fmt(change.old_value)}" -> "{_fmt(change.new_value)}"{suffix}'))
        return ReconcileOutcome(
            changed=True,
            event=_event_for(matched.id, candidate),
            changes=changes,
            log_lines=log_lines,
            record=apply_changes(matched, changes),
        )


def offer_start_before(incoming: PrimaryIpoRow, cutoff) -> bool:
    """True when the row's offer opens before the cutoff date and must be skipped."""
    if not is_date_string(incoming.open):
        return False
    canonical = parse_to_ist_date(incoming.open)
    return canonical is not None and canonical < cutoff.isoformat()
