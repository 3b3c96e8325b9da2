import asyncio
import logging
import re
from datetime import datetime
from typing import Dict, Optional

import aiohttp
from pydantic import ValidationError

from ..core.errors import MalformedSourceError, SourceFetchError
from ..core.models import Category, CrossReference
from ..core.normalize import extract_company_name, normalize_name
from .ipopremium_client import DEFAULT_USER_AGENT

LOGGER = logging.getLogger(__name__)

CHITTORGARH_BASE = "https://webnodejs.chittorgarh.com/cloud/report/data-read"
CATEGORY_REPORT_IDS = {Category.MAINBOARD: "82", Category.SME: "83"}
ISSUE_SIZE_COLUMN = "Total Issue Amount (Incl.Firm reservations) (Rs.cr.)"

_ipo_link_re = re.compile(r"/ipo/(.*?)/(\d+)/")


def financial_year(now: datetime) -> str:
    """Indian financial year label, April to March: '2025-26'."""
    start = now.year if now.month >= 4 else now.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def build_report_url(category: str, now: Optional[datetime] = None, base_url: str = CHITTORGARH_BASE) -> str:
    now = now or datetime.now()
    report_id = CATEGORY_REPORT_IDS[Category(category)]
    version = int(now.timestamp())
    path = f"{now.year}/{financial_year(now)}/0/all/0"
    return f"{base_url.rstrip('/')}/{report_id}/1/8/{path}?search=&v={version}"


def parse_report_rows(payload) -> Dict[str, CrossReference]:
    """Map normalized company name -> CrossReference from a report payload."""
    if not isinstance(payload, dict):
        raise MalformedSourceError("Unexpected Chittorgarh response format")
    rows = payload.get("reportTableData") or []
    if not isinstance(rows, list):
        raise MalformedSourceError("reportTableData is not a list")

    out: Dict[str, CrossReference] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        company_html = row.get("Company") or ""
        name = extract_company_name(company_html)
        link = _ipo_link_re.search(company_html)
        if not name or not link:
            LOGGER.debug("Skipping report row without company link: %r", company_html[:80])
            continue
        key = normalize_name(name)
        if not key:
            continue
        listing_at = str(row.get("Listing at") or "").lower()
        try:
            out[key] = CrossReference(
                details_ipo_id=link.group(2),
                url_rewrite=link.group(1),
                price_band=row.get("Issue Price (Rs.)") or None,
                issue_size=row.get(ISSUE_SIZE_COLUMN) or None,
                listing_at=listing_at,
                is_sme="sme" in listing_at,
            )
        except ValidationError as exc:
            LOGGER.warning("Skipping malformed report row %r: %s", name, exc)
    return out


class ChittorgarhClient:
    """Secondary source: cross-reference ids and slugs for the detail pages."""

    def __init__(self, base_url: str = CHITTORGARH_BASE, timeout: float = 15,
                 user_agent: str = DEFAULT_USER_AGENT) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.user_agent = user_agent

    async def fetch_cross_references(self, category: str) -> Dict[str, CrossReference]:
        url = build_report_url(category, base_url=self.base_url)
        headers = {"User-Agent": self.user_agent}
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            try:
                async with session.get(url, headers=headers) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise SourceFetchError(f"Chittorgarh report request failed: {e!r}") from e
            except ValueError as e:
                raise MalformedSourceError(f"Chittorgarh report is not JSON: {e}") from e
        refs = parse_report_rows(data)
        LOGGER.debug("Fetched %d %s cross references", len(refs), category)
        return refs
