"""Pydantic models for Commerce7 order and customer records.

Parsing is lenient: a malformed or missing field becomes absent
(None / empty list / empty dict) rather than failing validation, so one odd
record never aborts a metrics run.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


UNKNOWN_STAFF = "Unknown"
ATTRIBUTION_METADATA_KEY = "associate-sign-up-attribution"
SUBSCRIBED_STATUS = "Subscribed"
TAG_PREFIX = "tag/"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _safe_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _string_list(value: Any, key: str) -> list[str]:
    """Flatten ``[{key: "x"}, "y", ...]`` into ``["x", "y"]``, dropping blanks."""
    if not isinstance(value, list):
        return []

    results: list[str] = []
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get(key)
        text = _optional_str(entry)
        if text:
            results.append(text)
    return results


def strip_tag_prefix(tag_id: str) -> str:
    if tag_id.startswith(TAG_PREFIX):
        return tag_id[len(TAG_PREFIX):]
    return tag_id


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class LineItem(_Record):
    """Order line item."""

    product_id: Optional[str] = Field(None, alias="productId")
    quantity: int = 0

    @field_validator("product_id", mode="before")
    @classmethod
    def _coerce_product_id(cls, value: Any) -> Optional[str]:
        return _optional_str(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, value: Any) -> int:
        return _safe_int(value)


class StaffRef(_Record):
    """Sales associate reference attached to an order."""

    name: Optional[str] = None
    account_id: Optional[str] = Field(None, alias="accountId")

    @field_validator("name", "account_id", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _optional_str(value)


class CustomerRef(_Record):
    """Customer reference attached to an order."""

    id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Optional[str]:
        return _optional_str(value)


class Order(_Record):
    """Commerce7 order (only the fields the metrics engine reads)."""

    id: Optional[str] = None
    order_number: Optional[int] = Field(None, alias="orderNumber")
    paid_date: Optional[datetime] = Field(None, alias="orderPaidDate")
    submitted_date: Optional[datetime] = Field(None, alias="orderSubmittedDate")
    items: list[LineItem] = Field(default_factory=list)
    sales_associate: Optional[StaffRef] = Field(None, alias="salesAssociate")
    customer: Optional[CustomerRef] = None

    @model_validator(mode="before")
    @classmethod
    def _fill_customer_from_id(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if not isinstance(data.get("customer"), dict) and data.get("customerId"):
            data = {**data, "customer": {"id": data["customerId"]}}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Optional[str]:
        return _optional_str(value)

    @field_validator("order_number", mode="before")
    @classmethod
    def _coerce_order_number(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        return _safe_int(value)

    @field_validator("paid_date", "submitted_date", mode="before")
    @classmethod
    def _coerce_dates(cls, value: Any) -> Optional[datetime]:
        return _parse_datetime(value)

    @field_validator("items", mode="before")
    @classmethod
    def _coerce_items(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("sales_associate", mode="before")
    @classmethod
    def _coerce_sales_associate(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"name": value}
        if isinstance(value, dict):
            return value
        return None

    @field_validator("customer", mode="before")
    @classmethod
    def _coerce_customer(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @property
    def staff_name(self) -> str:
        """Display name of the order's sales associate, or ``"Unknown"``."""
        if self.sales_associate and self.sales_associate.name:
            return self.sales_associate.name
        return UNKNOWN_STAFF

    @property
    def customer_id(self) -> Optional[str]:
        return self.customer.id if self.customer else None

    @property
    def sort_key(self) -> datetime:
        """Chronological key: paid date, then submitted date."""
        return self.paid_date or self.submitted_date or _EPOCH


class CustomerProfile(_Record):
    """Commerce7 customer profile."""

    id: Optional[str] = None
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    emails: list[str] = Field(default_factory=list)
    phone: Optional[str] = None
    phones: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    email_marketing_status: Optional[str] = Field(None, alias="emailMarketingStatus")
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict, alias="metaData")

    @field_validator(
        "id",
        "first_name",
        "last_name",
        "email",
        "phone",
        "email_marketing_status",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _optional_str(value)

    @field_validator("emails", mode="before")
    @classmethod
    def _coerce_emails(cls, value: Any) -> list[str]:
        return _string_list(value, "email")

    @field_validator("phones", mode="before")
    @classmethod
    def _coerce_phones(cls, value: Any) -> list[str]:
        return _string_list(value, "phone")

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> list[str]:
        return [strip_tag_prefix(tag) for tag in _string_list(value, "id")]

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Optional[datetime]:
        return _parse_datetime(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> dict:
        return value if isinstance(value, dict) else {}

    @property
    def name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def contact_emails(self) -> list[str]:
        """All email addresses, list entries first, de-duplicated."""
        return _merge_unique(self.emails, self.email)

    def contact_phones(self) -> list[str]:
        """All phone numbers, list entries first, de-duplicated."""
        return _merge_unique(self.phones, self.phone)

    @property
    def is_subscribed(self) -> bool:
        return self.email_marketing_status == SUBSCRIBED_STATUS

    @property
    def manual_attribution(self) -> Optional[str]:
        """Staff name typed into the sign-up tool, if any."""
        return _optional_str(self.metadata.get(ATTRIBUTION_METADATA_KEY))

    def has_tag(self, tag_id: str) -> bool:
        return strip_tag_prefix(tag_id) in self.tags


class StaffMember(_Record):
    """Sales associate derived from order history."""

    id: str
    name: str


def _merge_unique(values: list[str], single: Optional[str]) -> list[str]:
    merged: list[str] = []
    for value in [*values, single]:
        if value and value not in merged:
            merged.append(value)
    return merged
