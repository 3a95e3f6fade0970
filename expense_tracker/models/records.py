"""
Core Data Models for the Expense Tracker

These models describe what one user keeps in the document store:
a paycheck, a list of expenses, a list of budgets and the API keys
they have registered.

Documents in the store are schema-flexible. The models therefore allow
extra fields, so anything a newer client wrote round-trips untouched.
Field names are snake_case in Python and camelCase in the store
(`gross_salary` <-> `grossSalary`).
"""

import math
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS
# =============================================================================

class Collection(str, Enum):
    """Collections owned by the data layer."""
    PAYCHECKS = "paychecks"
    EXPENSES = "expenses"
    BUDGETS = "budgets"
    API_KEYS = "apiKeys"


class ExpenseType(str, Enum):
    """How often an expense occurs."""
    FIXED = "fixed"
    RECURRING = "recurring"
    ONE_TIME = "one_time"


class ExpenseCategory(str, Enum):
    """
    Categories offered when entering an expense.

    Stored expenses may carry any category string; these are the
    values the application itself produces.
    """
    HOUSING = "housing"
    TRANSPORTATION = "transportation"
    FOOD = "food"
    UTILITIES = "utilities"
    INSURANCE = "insurance"
    HEALTHCARE = "healthcare"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    EDUCATION = "education"
    SAVINGS = "savings"
    DEBT = "debt"
    OTHER = "other"


# =============================================================================
# COERCION
# =============================================================================

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def coerce_amount(value: Any) -> float:
    """
    Coerce user input to a float amount.

    Strings are read up to the first character that cannot continue a
    number ("12.5 USD" -> 12.5). Anything without a leading number,
    including None, booleans and NaN, becomes 0.0. Values too large
    for a float become infinity.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        try:
            number = float(value)
        except OverflowError:
            number = math.inf if value > 0 else -math.inf
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if not match:
            return 0.0
        number = float(match.group(0))
    else:
        return 0.0

    if math.isnan(number) or number == 0:
        return 0.0
    return number


def coerce_date(value: Any) -> datetime:
    """
    Coerce user input to a timezone-aware datetime.

    Accepts datetimes, dates (midnight), ISO 8601 strings and epoch
    milliseconds. Naive values are interpreted as UTC.

    Raises:
        ValueError: If the value cannot be read as a date
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid date: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            result = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"Invalid date: {value!r}") from e
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid date: {value!r}") from e
    else:
        raise ValueError(f"Invalid date: {value!r}")

    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


# =============================================================================
# RECORDS
# =============================================================================

# Keys the store assigns itself; never taken from caller data.
RESERVED_FIELDS = ("id", "userId", "createdAt", "updatedAt")


class AuthenticatedUser(BaseModel):
    """Identity handed over by the hosted identity provider."""

    uid: str = Field(..., min_length=1, description="Provider user id")
    email: Optional[str] = None
    display_name: Optional[str] = None


class StoredRecord(BaseModel):
    """Fields every document carries once it is in the store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_document(self) -> dict[str, Any]:
        """Dump the caller-owned fields in store (camelCase) form."""
        return self.model_dump(
            by_alias=True,
            exclude={"id", "user_id", "created_at", "updated_at"},
            exclude_none=True,
        )


class PaycheckData(StoredRecord):
    """
    A user's current paycheck.

    The application keeps a single paycheck per user; saving
    overwrites it.
    """

    gross_salary: float = Field(default=0.0, description="Annual gross salary")
    state: str = Field(default="CA", description="US state used for tax estimates")
    visa_status: str = Field(default="citizen")
    filing_status: str = Field(default="single")

    @field_validator("gross_salary", mode="before")
    @classmethod
    def coerce_gross_salary(cls, v: Any) -> float:
        return coerce_amount(v)


class Expense(StoredRecord):
    """A single expense entry."""

    name: Optional[str] = None
    amount: float = Field(default=0.0)
    type: str = Field(default=ExpenseType.FIXED.value)
    category: str = Field(default=ExpenseCategory.HOUSING.value)
    date: Optional[datetime] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_expense_amount(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("type", "category", mode="before")
    @classmethod
    def unwrap_enum(cls, v: Any) -> Any:
        return _enum_value(v)

    @field_validator("date", mode="before")
    @classmethod
    def coerce_expense_date(cls, v: Any) -> Optional[datetime]:
        if v is None:
            return None
        return coerce_date(v)


class Budget(StoredRecord):
    """A budget. Budgets are free-form; every field is kept as given."""

    name: Any = None


class ApiKeyInfo(StoredRecord):
    """
    A stored third-party API key, as listed to its owner.

    The key itself is never part of a listing; only `masked_key` is.
    """

    label: Any = "Default"
    key_type: Any = "openai"
    is_active: bool = True
    masked_key: str = "••••••••••••••••"
    last_used: Optional[datetime] = None
    usage_count: int = 0

    @field_validator("is_active", mode="before")
    @classmethod
    def coerce_is_active(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("masked_key", mode="before")
    @classmethod
    def default_masked_key(cls, v: Any) -> str:
        return v if isinstance(v, str) and v else "••••••••••••••••"

    @field_validator("usage_count", mode="before")
    @classmethod
    def coerce_usage_count(cls, v: Any) -> int:
        number = coerce_amount(v)
        return int(number) if math.isfinite(number) else 0

    @field_validator("last_used", mode="before")
    @classmethod
    def coerce_last_used(cls, v: Any) -> Optional[datetime]:
        if v is None:
            return None
        try:
            return coerce_date(v)
        except ValueError:
            return None


RecordT = TypeVar("RecordT", bound=StoredRecord)


def parse_records(
    model: type[RecordT],
    documents: Iterable[Mapping[str, Any]],
) -> tuple[list[RecordT], list[tuple[Optional[str], str]]]:
    """
    Validate stored documents one by one.

    A document that does not fit the model is set aside instead of
    failing the batch.

    Returns:
        (records, rejected) - rejected holds (document id, error) pairs
    """
    records: list[RecordT] = []
    rejected: list[tuple[Optional[str], str]] = []
    for document in documents:
        try:
            records.append(model.model_validate(document))
        except ValidationError as e:
            rejected.append((document.get("id"), str(e)))
    return records, rejected


def document_data(data: Union[Mapping[str, Any], BaseModel]) -> dict[str, Any]:
    """Normalize caller input (mapping or model) to a plain store document."""
    if isinstance(data, StoredRecord):
        return data.to_document()
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, exclude_none=True)
    return {key: _enum_value(value) for key, value in dict(data).items()}
