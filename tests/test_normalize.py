import pytest

from ipo_sync.core.normalize import (
    display_name,
    extract_company_name,
    format_name_for_url,
    normalize_name,
    strip_html,
)


@pytest.mark.parametrize(
    "raw",
    ["Alpha Ltd.", "ALPHA LIMITED", "Alpha (India) Pvt. Co.", "  alpha  ", "Alpha IPO"],
)
def test_normalize_name_strips_suffixes_and_noise(raw):
    assert normalize_name(raw) == "alpha"


def test_normalize_name_is_idempotent():
    for raw in ["Shree Tirupati Balajee Agro Trading Co. Ltd.", "Tata Capital (NSE) Limited", "Ola Electric"]:
        once = normalize_name(raw)
        assert normalize_name(once) == once


def test_normalize_name_handles_accents_apostrophes_and_ampersand():
    assert normalize_name("Café O'Brien & Sons") == "cafe obrien and sons"


def test_normalize_name_keeps_stopwords_inside_words():
    # "co" and "india" only drop as whole words
    assert normalize_name("Cochin Indiabulls") == "cochin indiabulls"


def test_normalize_name_empty():
    assert normalize_name(None) == ""
    assert normalize_name("") == ""
    assert normalize_name("Ltd.") == ""


def test_display_name_drops_markup_and_trailing_ipo():
    assert display_name("<b>Beta Tech IPO</b>") == "Beta Tech"
    assert display_name("IPO Hub Ltd") == "IPO Hub Ltd"


def test_strip_html():
    assert strip_html("<span class='x'>12</span> ") == "12"
    assert strip_html(None) == ""


def test_format_name_for_url():
    assert format_name_for_url("Beta Tech (India) Ltd.") == "beta-tech-india-ltd"
    assert format_name_for_url(None) == ""


def test_extract_company_name():
    cell = '<a href="https://www.chittorgarh.com/ipo/beta-tech-ipo/501/">Beta Tech Ltd.</a>'
    assert extract_company_name(cell) == "Beta Tech Ltd."
    assert extract_company_name("no markup") is None
