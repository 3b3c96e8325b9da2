"""
Data models for the IPO sync subsystem.
Pydantic models for persisted rows, validated source rows and sync results.
"""

from datetime import date
from enum import Enum
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


EVENT_IPO_UPDATE = "ipoUpdate"


class Category(str, Enum):
    MAINBOARD = "mainboard"
    SME = "sme"


class StatusFilter(str, Enum):
    LIVE = "live"
    UPCOMING = "upcoming"
    CLOSED = "closed"


class SyncOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    FAILURE = "FAILURE"


def _text_or_none(value: Any) -> Any:
    # sources send numbers and strings interchangeably for text columns
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    return value


class IpoRecord(BaseModel):
    """Canonical row stored in the ipos table.
    Only the DB adapters write to this table.
    The reconciliation engine builds this model and passes it to insert_ipo().
    """
    id: int = Field(..., description="Primary source identifier, stable across syncs")
    name: str = Field(..., description="Display name")
    category: str = Field(Category.MAINBOARD.value, description="mainboard or sme")
    details_ipo_id: Optional[str] = Field(None, description="Secondary source cross-reference id")
    url_rewrite: Optional[str] = Field(None, description="Secondary source url slug")
    status: Optional[str] = Field(None, description="Source status, stored verbatim")
    subscription: Optional[str] = Field(None, description="Times subscribed")
    gmp: Optional[str] = Field(None, description="Grey market premium")
    price_band: Optional[str] = Field(None, description="Issue price band")
    offer_start_date: Optional[date] = Field(None, description="Write-once")
    offer_end_date: Optional[date] = Field(None, description="Write-once")
    allotment_date: Optional[date] = Field(None, description="Write-once")
    listing_date: Optional[date] = Field(None, description="Write-once")
    image_url: Optional[str] = Field(None, description="Company logo")

    @field_validator("details_ipo_id", "url_rewrite", "status", "subscription", "gmp",
                     "price_band", "image_url", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _text_or_none(value)


IPO_COLUMNS = tuple(IpoRecord.model_fields)
WRITE_ONCE_COLUMNS = ("offer_start_date", "offer_end_date", "allotment_date", "listing_date")


class PrimaryIpoRow(BaseModel):
    """One row of the primary listing feed, validated at the ingestion boundary."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    name: str = Field(..., min_length=1)
    current_status: Optional[str] = Field(
        None, validation_alias=AliasChoices("current_status", "status"))
    price: Optional[str] = None
    open: Optional[str] = None
    close: Optional[str] = None
    allotment_date: Optional[str] = None
    listing_date: Optional[str] = None
    icon_url: Optional[str] = None
    premium: Optional[str] = None
    subscription: Optional[str] = None

    @field_validator("current_status", "price", "open", "close", "allotment_date",
                     "listing_date", "icon_url", "premium", "subscription", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _text_or_none(value)


class CrossReference(BaseModel):
    """Secondary source entry linking an IPO to its detail pages."""
    details_ipo_id: str
    url_rewrite: str
    price_band: Optional[str] = None
    issue_size: Optional[str] = None
    listing_at: str = ""
    is_sme: bool = False

    @field_validator("price_band", "issue_size", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _text_or_none(value)


class FieldChange(BaseModel):
    name: str
    old_value: Any = None
    new_value: Any = None


class IpoUpdateEvent(BaseModel):
    """Payload published on the ipoUpdate channel."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    subscription: Optional[str] = None
    gmp: Optional[str] = None
    price_band: Optional[str] = Field(None, alias="priceBand")
    image_url: Optional[str] = Field(None, alias="imageUrl")

    def payload(self) -> dict:
        return self.model_dump(by_alias=True)


class SyncResult(BaseModel):
    category: str
    status_filter: str
    outcome: SyncOutcome = SyncOutcome.SUCCESS
    changed_count: int = 0
    skipped_count: int = 0
    diagnostics: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is SyncOutcome.SUCCESS
