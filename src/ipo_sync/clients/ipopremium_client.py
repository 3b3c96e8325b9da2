import asyncio
import logging
import re
import time
from html.parser import HTMLParser
from typing import Dict, List, Optional

import aiohttp

from ..core.errors import MalformedSourceError, SourceFetchError
from ..core.models import Category, StatusFilter

LOGGER = logging.getLogger(__name__)

IPOPREMIUM_BASE = "https://www.ipopremium.in"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124 Safari/537.36"
)

_leading_number_re = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)")


def build_listing_params(category: str, status: str, now_ms: Optional[int] = None) -> Dict[str, str]:
    """Query string of the listing table endpoint for one category/status slice."""
    category = Category(category)
    status = StatusFilter(status)
    params = {
        "draw": "2",
        "start": "0",
        "length": "1000",
        "search[value]": "",
        "search[regex]": "false",
        "all": "true",
        "upcoming_ipos": "false",
        "open_ipos": "false",
        "closed_ipos": "false",
        "_": str(now_ms if now_ms is not None else int(time.time() * 1000)),
    }
    params["eq"] = "true" if category is Category.MAINBOARD else "false"
    params["sme"] = "true" if category is Category.SME else "false"
    if status is StatusFilter.UPCOMING:
        params["upcoming_ipos"] = "true"
    elif status is StatusFilter.LIVE:
        params["open_ipos"] = "true"
    elif status is StatusFilter.CLOSED:
        params["closed_ipos"] = "true"
    return params


class _SubscriptionTableParser(HTMLParser):
    """Collects every table row as a list of cells; each cell keeps its bold text."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.rows: List[List[Dict[str, str]]] = []
        self._row: Optional[List[Dict[str, str]]] = None
        self._cell: Optional[Dict[str, str]] = None
        self._bold_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag == "tr":
            self._row = []
        elif tag in ("td", "th") and self._row is not None:
            self._cell = {"text": "", "bold": ""}
        elif tag in ("b", "strong"):
            self._bold_depth += 1

    def handle_endtag(self, tag):
        if tag in ("b", "strong"):
            self._bold_depth = max(0, self._bold_depth - 1)
        elif tag in ("td", "th") and self._row is not None and self._cell is not None:
            self._row.append(self._cell)
            self._cell = None
        elif tag == "tr" and self._row is not None:
            if self._cell is not None:
                self._row.append(self._cell)
                self._cell = None
            self.rows.append(self._row)
            self._row = None

    def handle_data(self, data):
        if self._cell is None:
            return
        self._cell["text"] += data
        if self._bold_depth:
            self._cell["bold"] += data


def extract_total_subscription(page_html: str) -> Optional[str]:
    """
    Find the row whose bold label reads 'Total' and return the bold value of its
    last cell, e.g. '12.45'. None when the table is missing or the value is not numeric.
    """
    parser = _SubscriptionTableParser()
    parser.feed(page_html or "")
    parser.close()
    for row in parser.rows:
        if not any(cell["bold"].strip() == "Total" for cell in row):
            continue
        value = row[-1]["bold"].strip()
        if value and _leading_number_re.match(value):
            return value
        return None
    return None


class IpoPremiumClient:
    """Primary source: listing table rows and per-IPO subscription pages."""

    def __init__(self, base_url: str = IPOPREMIUM_BASE, timeout: float = 15,
                 user_agent: str = DEFAULT_USER_AGENT) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout)

    async def fetch_ipos(self, category: str, status: str) -> List[Dict]:
        """
        Call the listing endpoint and return the raw row dicts.
        Raises SourceFetchError on network/HTTP failure, MalformedSourceError on a bad payload.
        """
        url = f"{self.base_url}/ipo"
        params = build_listing_params(category, status)
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json, text/plain, */*",
            "Referer": url,
            "X-Requested-With": "XMLHttpRequest",
        }
        async with aiohttp.ClientSession(timeout=self._timeout()) as session:
            try:
                async with session.get(url, params=params, headers=headers) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise SourceFetchError(f"IPO listing request failed: {e!r}") from e
            except ValueError as e:
                raise MalformedSourceError(f"IPO listing is not JSON: {e}") from e

        rows = data.get("data") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise MalformedSourceError("Unexpected IPO listing response format")
        LOGGER.debug("Fetched %d %s/%s rows", len(rows), category, status)
        return rows

    async def fetch_live_subscription(self, ipo_id: int, slug: str) -> Optional[str]:
        """Best-effort 'times subscribed' from the IPO's own page."""
        url = f"{self.base_url}/view/ipo/{ipo_id}/{slug}"
        headers = {"User-Agent": self.user_agent}
        async with aiohttp.ClientSession(timeout=self._timeout()) as session:
            try:
                async with session.get(url, headers=headers) as response:
                    response.raise_for_status()
                    page_html = await response.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise SourceFetchError(f"subscription page {url} failed: {e!r}") from e
            except ValueError as e:
                # undecodable body
                raise MalformedSourceError(f"subscription page {url} is unreadable: {e}") from e
        return extract_total_subscription(page_html)
