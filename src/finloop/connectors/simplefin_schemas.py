"""Pydantic schemas for SimpleFIN Bridge payloads.

These mirror the upstream ``/accounts`` response. They only validate shape and
coerce primitive types; conversion into the domain model lives in
``finloop.normalize``.
"""

import logging
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from finloop.errors import MalformedResponseError

logger = logging.getLogger(__name__)


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
        populate_by_name=True,
    )


class OrganizationSchema(BaseSchema):
    """Institution that holds an account."""

    domain: str | None = None
    name: str | None = None
    sfin_url: str | None = Field(None, alias="sfin-url")
    url: str | None = None


class TransactionSchema(BaseSchema):
    """Schema for one SimpleFIN transaction."""

    id: str = Field(..., description="Provider transaction id")
    posted: int = Field(..., description="Posted time, epoch seconds")
    amount: Decimal = Field(..., description="Signed decimal amount")
    description: str = ""
    payee: str | None = None
    memo: str | None = None
    transacted_at: int | None = Field(None, description="Transaction time, epoch seconds")
    pending: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Provider ids are opaque; keep numeric ids as strings."""
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("pending", mode="before")
    @classmethod
    def coerce_pending(cls, v: Any) -> Any:
        """Treat a missing/null pending flag as posted."""
        return bool(v) if v is not None else False


class AccountSchema(BaseSchema):
    """Schema for one SimpleFIN account with its embedded transactions."""

    id: str = Field(..., description="Provider account id")
    org: OrganizationSchema
    name: str
    currency: str = "CAD"
    balance: Decimal
    available_balance: Decimal | None = Field(None, alias="available-balance")
    balance_date: int = Field(..., alias="balance-date")
    transactions: list[TransactionSchema] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("available_balance", mode="before")
    @classmethod
    def blank_available_balance(cls, v: Any) -> Any:
        """An empty string means the institution reports no available balance."""
        if v == "":
            return None
        return v

    @field_validator("transactions", mode="before")
    @classmethod
    def coerce_transactions(cls, v: Any) -> Any:
        """``balances-only`` responses omit the transactions array."""
        return [] if v is None else v


class SimplefinAccountSet(BaseSchema):
    """Complete schema for the ``/accounts`` response."""

    errors: list[str] = Field(default_factory=list)
    accounts: list[AccountSchema]

    @field_validator("errors", mode="before")
    @classmethod
    def coerce_errors(cls, v: Any) -> Any:
        """Upstream errors are displayed verbatim; stringify anything else."""
        if v is None:
            return []
        if isinstance(v, list):
            return [item if isinstance(item, str) else str(item) for item in v]
        return [str(v)]


def parse_account_set(data: Any) -> SimplefinAccountSet:
    """Validate a decoded ``/accounts`` body.

    Args:
        data: Decoded JSON body

    Returns:
        SimplefinAccountSet: The validated payload

    Raises:
        MalformedResponseError: If the body is not an object with an
            ``accounts`` array, or any record fails validation
    """
    if not isinstance(data, dict) or not isinstance(data.get("accounts"), list):
        logger.error("Invalid data structure - missing accounts array")
        raise MalformedResponseError()

    try:
        return SimplefinAccountSet.model_validate(data)
    except ValidationError as e:
        logger.error(f"SimpleFIN payload failed validation: {e.error_count()} errors")
        raise MalformedResponseError(
            f"SimpleFIN returned an unexpected data structure: {e.errors()[0]['msg']}"
        ) from e
