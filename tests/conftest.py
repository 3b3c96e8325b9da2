import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

import pytest
import pytest_asyncio

from ipo_sync.core.errors import SourceFetchError
from ipo_sync.core.models import CrossReference
from ipo_sync.db import SqliteAdapter


def primary_row(ipo_id, name, **fields):
    """A listing-feed row as the primary source sends it."""
    row = {
        "id": ipo_id,
        "name": name,
        "current_status": "CLOSED",
        "price": "100-110",
        "open": "2025-06-01",
        "close": "2025-06-05",
        "allotment_date": "2025-06-06",
        "listing_date": "2025-06-10",
        "icon_url": f"https://img.example/{ipo_id}.png",
        "premium": "12",
        "subscription": "4.2",
    }
    row.update(fields)
    return row


class FakePrimary:
    def __init__(self, rows=None, live=None, live_error=None, error=None):
        self.rows = list(rows or [])
        self.error = error
        self.live = live
        self.live_error = live_error
        self.live_calls = []

    async def fetch_ipos(self, category, status):
        if self.error is not None:
            raise self.error
        return [dict(r) for r in self.rows]

    async def fetch_live_subscription(self, ipo_id, slug):
        self.live_calls.append((ipo_id, slug))
        if self.live_error is not None:
            raise self.live_error
        return self.live


class FakeSecondary:
    def __init__(self, mainboard=None, sme=None, error=None):
        self.refs = {"mainboard": dict(mainboard or {}), "sme": dict(sme or {})}
        self.error = error

    async def fetch_cross_references(self, category):
        if self.error is not None:
            raise self.error
        return self.refs[category]


class RecordingPublisher:
    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    async def publish(self, event_name, payload):
        if self.fail:
            raise RuntimeError("sink down")
        self.events.append((event_name, payload))


def xref(details_ipo_id, slug, listing_at="BSE, NSE"):
    return CrossReference(
        details_ipo_id=details_ipo_id,
        url_rewrite=slug,
        listing_at=listing_at.lower(),
        is_sme="sme" in listing_at.lower(),
    )


@pytest.fixture
def live_error():
    return SourceFetchError("timed out")


@pytest_asyncio.fixture
async def sqlite_db():
    db = SqliteAdapter(db_path=":memory:")
    await db.init()
    yield db
    await db.close()
