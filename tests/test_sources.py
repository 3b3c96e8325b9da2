from datetime import datetime

import pytest

from ipo_sync.clients.chittorgarh_client import build_report_url, financial_year, parse_report_rows
from ipo_sync.clients.ipopremium_client import build_listing_params, extract_total_subscription
from ipo_sync.core.errors import MalformedSourceError

SUBSCRIPTION_PAGE = """
<html><body>
<table>
  <tr><th>Category</th><th>Subscription</th></tr>
  <tr><td>QIB</td><td><b>20.1</b></td></tr>
  <tr><td><b>Total</b></td><td>x</td><td><b>12.45</b></td></tr>
</table>
</body></html>
"""


def test_build_listing_params_flags():
    params = build_listing_params("sme", "upcoming", now_ms=123)
    assert params["sme"] == "true"
    assert params["eq"] == "false"
    assert params["upcoming_ipos"] == "true"
    assert params["open_ipos"] == "false"
    assert params["_"] == "123"
    assert params["length"] == "1000"

    live = build_listing_params("mainboard", "live", now_ms=1)
    assert live["eq"] == "true" and live["open_ipos"] == "true"


def test_build_listing_params_rejects_unknown():
    with pytest.raises(ValueError):
        build_listing_params("reit", "live")


def test_extract_total_subscription():
    assert extract_total_subscription(SUBSCRIPTION_PAGE) == "12.45"


def test_extract_total_subscription_missing_or_non_numeric():
    assert extract_total_subscription("<p>nothing</p>") is None
    page = "<table><tr><td><b>Total</b></td><td><b>--</b></td></tr></table>"
    assert extract_total_subscription(page) is None
    assert extract_total_subscription("") is None


def test_financial_year_starts_in_april():
    assert financial_year(datetime(2025, 3, 31)) == "2024-25"
    assert financial_year(datetime(2025, 4, 1)) == "2025-26"


def test_build_report_url():
    url = build_report_url("sme", now=datetime(2025, 7, 1))
    assert "/83/1/8/2025/2025-26/0/all/0?search=&v=" in url
    assert "/82/" in build_report_url("mainboard", now=datetime(2025, 7, 1))


def test_parse_report_rows():
    payload = {
        "reportTableData": [
            {
                "Company": '<a href="https://www.chittorgarh.com/ipo/beta-tech-ipo/501/">Beta Tech Ltd.</a>',
                "Listing at": "BSE SME",
                "Issue Price (Rs.)": 105,
            },
            {"Company": "plain text without link"},
            "not a row",
        ]
    }
    refs = parse_report_rows(payload)
    assert list(refs) == ["beta tech"]
    ref = refs["beta tech"]
    assert ref.details_ipo_id == "501"
    assert ref.url_rewrite == "beta-tech-ipo"
    assert ref.price_band == "105"
    assert ref.is_sme


def test_parse_report_rows_rejects_bad_payload():
    with pytest.raises(MalformedSourceError):
        parse_report_rows(["not", "a", "dict"])
    with pytest.raises(MalformedSourceError):
        parse_report_rows({"reportTableData": "oops"})
    assert parse_report_rows({}) == {}
