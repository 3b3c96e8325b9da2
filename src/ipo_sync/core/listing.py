"""Read-side view of stored IPOs: display status and the API row shape."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from .compare import IST
from .models import IpoRecord

UPCOMING = "UPCOMING"
LIVE = "LIVE"
ALLOTMENT_PENDING = "ALLOTMENT PENDING"
CLOSED = "CLOSED"

STATUS_FILTERS = {
    "live": {LIVE, ALLOTMENT_PENDING},
    "upcoming": {UPCOMING},
    "closed": {CLOSED},
}


def ist_today() -> date:
    return datetime.now(IST).date()


def derive_display_status(record: IpoRecord, today: date) -> Optional[str]:
    """Status from the offer calendar; falls back to the stored source status."""
    opens, closes, allots = record.offer_start_date, record.offer_end_date, record.allotment_date
    if opens and today < opens:
        return UPCOMING
    if opens and closes and opens <= today <= closes:
        return LIVE
    if closes and allots and closes < today <= allots:
        return ALLOTMENT_PENDING
    if allots and today > allots:
        return CLOSED
    return record.status


def format_listing_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%b %d, %Y")


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def to_listing(record: IpoRecord, today: date) -> Dict[str, Any]:
    if record.offer_start_date and record.offer_end_date:
        offer_range = (f"{format_listing_date(record.offer_start_date)} to "
                       f"{format_listing_date(record.offer_end_date)}")
    else:
        offer_range = "N/A"
    return {
        "id": record.id,
        "name": record.name,
        "details_ipo_id": record.details_ipo_id,
        "url_rewrite": record.url_rewrite,
        "imageUrl": record.image_url,
        "priceBand": record.price_band,
        "gmp": record.gmp,
        "openDate": _iso(record.offer_start_date),
        "closeDate": _iso(record.offer_end_date),
        "offerDateRange": offer_range,
        "status": derive_display_status(record, today),
        "category": record.category,
        "subscription": record.subscription or "N/A",
        "allotmentDate": _iso(record.allotment_date),
        "listingDate": _iso(record.listing_date),
    }


def filter_by_status(rows: Iterable[Dict[str, Any]], status: Optional[str]) -> List[Dict[str, Any]]:
    wanted = STATUS_FILTERS.get((status or "").lower())
    if wanted is None:
        return list(rows)
    return [row for row in rows if row["status"] in wanted]
