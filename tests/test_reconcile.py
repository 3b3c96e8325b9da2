import logging
from datetime import date

import pytest

from conftest import primary_row

from ipo_sync.core.models import IpoRecord, PrimaryIpoRow
from ipo_sync.core.reconcile import UpsertEngine, compute_changes, derive_record, offer_start_before


class FakeStore:
    def __init__(self):
        self.inserted = []
        self.updated = []

    async def insert_ipo(self, tx, record):
        self.inserted.append(record)

    async def update_ipo(self, tx, ipo_id, changes):
        self.updated.append((ipo_id, changes))


def stored(**fields):
    base = dict(
        id=101,
        name="Alpha",
        category="mainboard",
        status="CLOSED",
        subscription="4.2",
        gmp="12",
        price_band="100-110",
        offer_start_date=date(2025, 6, 1),
        offer_end_date=date(2025, 6, 5),
        allotment_date=date(2025, 6, 6),
        listing_date=date(2025, 6, 10),
        image_url="https://img.example/101.png",
    )
    base.update(fields)
    return IpoRecord(**base)


def row(**fields):
    return PrimaryIpoRow.model_validate(primary_row(101, "Alpha IPO", **fields))


def test_derive_record_cleans_fields():
    record = derive_record(row(premium="<b>15</b>", current_status="open"), "9", "alpha-ipo", "sme")
    assert record.name == "Alpha"
    assert record.gmp == "15"
    assert record.status == "OPEN"
    assert record.category == "sme"
    assert record.offer_start_date == date(2025, 6, 1)


def test_compute_changes_nothing_when_equal():
    candidate = derive_record(row(), None, None, "mainboard")
    assert compute_changes(stored(), candidate) == []


def test_compute_changes_write_once_dates():
    existing = stored(allotment_date=None)
    candidate = derive_record(row(allotment_date="2025-06-07", listing_date="2025-06-12"), None, None, "mainboard")
    changes = compute_changes(existing, candidate)
    # listing date is already set, so only the missing allotment date is filled in
    assert [(c.name, c.new_value) for c in changes] == [("allotment_date", date(2025, 6, 7))]


def test_compute_changes_keeps_existing_slug():
    existing = stored(details_ipo_id="9", url_rewrite="alpha-ipo")
    candidate = derive_record(row(), "9", "alpha-new", "mainboard")
    assert compute_changes(existing, candidate) == []


@pytest.mark.asyncio
async def test_reconcile_inserts_unmatched_row():
    store = FakeStore()
    outcome = await UpsertEngine(store).reconcile(None, row(), "9", "alpha-ipo", None, "mainboard")

    assert outcome.changed
    assert store.inserted[0].id == 101
    assert store.inserted[0].details_ipo_id == "9"
    assert outcome.event.payload()["priceBand"] == "100-110"
    assert outcome.log_lines[-1][0] == logging.INFO


@pytest.mark.asyncio
async def test_reconcile_gmp_only_update():
    store = FakeStore()
    outcome = await UpsertEngine(store).reconcile(None, row(premium="15"), None, None, stored(), "mainboard")

    assert outcome.changed
    assert [(c.name, c.old_value, c.new_value) for c in outcome.changes] == [("gmp", "12", "15")]
    assert store.updated == [(101, outcome.changes)]
    assert outcome.event.gmp == "15"
    assert outcome.record.gmp == "15"


@pytest.mark.asyncio
async def test_reconcile_no_change_is_silent():
    store = FakeStore()
    outcome = await UpsertEngine(store).reconcile(None, row(), None, None, stored(), "mainboard")
    assert not outcome.changed
    assert outcome.event is None
    assert store.updated == [] and store.inserted == []


@pytest.mark.asyncio
async def test_absent_subscription_never_overwrites_stored_value():
    store = FakeStore()
    outcome = await UpsertEngine(store).reconcile(None, row(subscription=None), None, None, stored(), "mainboard")
    assert not outcome.changed

    outcome = await UpsertEngine(store).reconcile(None, row(subscription="N/A"), None, None, stored(), "mainboard")
    assert not outcome.changed


@pytest.mark.asyncio
async def test_open_offer_uses_live_subscription():
    calls = []

    async def live(ipo_id, slug):
        calls.append((ipo_id, slug))
        return "7.85"

    store = FakeStore()
    outcome = await UpsertEngine(store, live).reconcile(
        None, row(current_status="OPEN"), None, None, stored(status="OPEN"), "mainboard")

    assert calls == [(101, "alpha")]
    assert [c.name for c in outcome.changes] == ["subscription"]
    assert outcome.changes[0].new_value == "7.85"


@pytest.mark.asyncio
async def test_live_fetch_failure_falls_back_with_warning(live_error):
    async def live(ipo_id, slug):
        raise live_error

    store = FakeStore()
    outcome = await UpsertEngine(store, live).reconcile(
        None, row(current_status="OPEN", subscription="5.1"), None, None, stored(status="OPEN"), "mainboard")

    assert outcome.changes[0].new_value == "5.1"
    assert any(level == logging.WARNING and "Could not scrape" in line for level, line in outcome.log_lines)


@pytest.mark.asyncio
async def test_live_fetch_skipped_for_closed_offers():
    calls = []

    async def live(ipo_id, slug):
        calls.append(ipo_id)
        return "99"

    outcome = await UpsertEngine(FakeStore(), live).reconcile(None, row(), None, None, stored(), "mainboard")
    assert not outcome.changed
    assert calls == []


def test_offer_start_before_cutoff():
    cutoff = date(2025, 1, 1)
    assert offer_start_before(row(open="2024-11-01"), cutoff)
    assert not offer_start_before(row(open="2025-01-01"), cutoff)
    assert not offer_start_before(row(open="TBA"), cutoff)


@pytest.mark.asyncio
async def test_any_live_fetch_error_falls_back():
    async def live(ipo_id, slug):
        raise ValueError("unparsable page")

    outcome = await UpsertEngine(FakeStore(), live).reconcile(
        None, row(current_status="OPEN"), None, None, stored(status="OPEN"), "mainboard")

    assert not outcome.changed
    assert any("ValueError: unparsable page" in line for _, line in outcome.log_lines)
