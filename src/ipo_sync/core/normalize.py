# Text helpers: company-name matching keys, markup stripping, url slugs.

import re
import unicodedata
from typing import Optional

STOPWORDS = (
    "ipo",
    "ltd",
    "limited",
    "pvt",
    "private",
    "co",
    "nse",
    "sme",
    "bse",
    "mainboard",
    "reit",
    "trust",
    "india",
)

_tag_re = re.compile(r"<[^>]*>")
_parens_re = re.compile(r"\([^)]*\)")
_apostrophe_re = re.compile(r"['’‘`]")
_non_alnum_re = re.compile(r"[^a-zA-Z0-9 ]+")
_stopword_re = re.compile(r"\b(" + "|".join(STOPWORDS) + r")\b", re.IGNORECASE)
_space_re = re.compile(r"\s+")
_trailing_ipo_re = re.compile(r"\s+ipo\s*$", re.IGNORECASE)
_company_cell_re = re.compile(r">([^<]+)<")


def strip_html(value: Optional[str]) -> str:
    if not value:
        return ""
    return _tag_re.sub("", value).strip()


def normalize_name(raw_name: Optional[str]) -> str:
    """
    Canonical matching key for a company name.
    'Alpha Ltd.', 'ALPHA LIMITED' and 'Alpha (India) Pvt. Co.' all map to 'alpha'.
    normalize_name(normalize_name(x)) == normalize_name(x).
    """
    if not raw_name:
        return ""
    name = _parens_re.sub("", raw_name)
    name = unicodedata.normalize("NFKD", name)
    name = "".join(ch for ch in name if not unicodedata.combining(ch))
    name = _apostrophe_re.sub("", name)
    name = name.replace("&", " and ")
    name = _non_alnum_re.sub(" ", name)
    name = _stopword_re.sub("", name)
    return _space_re.sub(" ", name).lower().strip()


def display_name(raw_name: Optional[str]) -> str:
    """Markup-free name without the trailing 'IPO' the listing sites append."""
    name = strip_html(raw_name)
    return _trailing_ipo_re.sub("", name).strip() or name


def format_name_for_url(name: Optional[str]) -> str:
    if not name:
        return ""
    slug = re.sub(r"[^a-z0-9\s]", "", name.lower())
    return re.sub(r"\s+", "-", slug).strip("-")


def extract_company_name(company_html: Optional[str]) -> Optional[str]:
    """Plain company name out of a '<a ...>Name</a>' table cell."""
    if not company_html:
        return None
    m = _company_cell_re.search(company_html)
    return m.group(1).strip() if m else None
