"""Domain model for synced finance data.

Accounts and transactions are split into provider-owned and user-owned field
sets. The provider half is replaced wholesale by each sync, the user half is
only ever written by the application, so the reconciliation engine can merge
records by swapping one frozen value for another instead of copying fields.

All models are frozen pydantic models. Python attributes are snake_case; the
store and wire representation (``to_record``/``from_record``) is the flat
camelCase shape the rest of the app expects.
"""

import datetime as dt
from enum import Enum
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AccountType = Literal["checking", "savings", "credit", "investment", "other"]
Currency = Literal["CAD", "USD"]
PatternType = Literal["contains", "starts_with", "regex"]


class ConnectionStatus(str, Enum):
    """Connection state, only transitioned by the sync orchestrator."""

    ACTIVE = "active"
    NEEDS_REAUTH = "needs_reauth"
    ERROR = "error"


class PaymentStatus(str, Enum):
    """Scheduled payment state."""

    PENDING = "pending"
    MATCHED = "matched"


class DomainModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _pick_fields(model_cls: type[BaseModel], record: dict[str, Any]) -> dict[str, Any]:
    """Select the keys of a flat record that belong to ``model_cls``."""
    picked: dict[str, Any] = {}
    for name, field in model_cls.model_fields.items():
        alias = field.alias or name
        if alias in record:
            picked[alias] = record[alias]
        elif name in record:
            picked[name] = record[name]
    return picked


# Accounts


class AccountProviderFields(DomainModel):
    """Account fields owned by the aggregator."""

    name: str
    institution: str
    institution_domain: str | None = None
    type: AccountType = "checking"
    currency: Currency = "CAD"
    balance: int = Field(..., description="Balance in minor units")
    available_balance: int | None = Field(
        None, description="Available balance in minor units"
    )
    balance_date: dt.datetime


class AccountUserFields(DomainModel):
    """Account fields owned by the user."""

    is_hidden: bool = False


class Account(DomainModel):
    """A provider-scoped bank account attached to a connection."""

    id: str
    connection_id: str = ""
    provider: AccountProviderFields
    user: AccountUserFields = Field(default_factory=AccountUserFields)

    @property
    def type(self) -> AccountType:
        return self.provider.type

    @property
    def balance(self) -> int:
        return self.provider.balance

    def to_record(self) -> dict[str, Any]:
        """Flatten into the camelCase store representation."""
        return {
            "id": self.id,
            "connectionId": self.connection_id,
            **self.provider.model_dump(mode="json", by_alias=True),
            **self.user.model_dump(mode="json", by_alias=True),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        """Build an account from its flat camelCase representation."""
        return cls(
            id=record["id"],
            connection_id=record.get("connectionId", ""),
            provider=AccountProviderFields.model_validate(
                _pick_fields(AccountProviderFields, record)
            ),
            user=AccountUserFields.model_validate(
                _pick_fields(AccountUserFields, record)
            ),
        )


# Transactions


class TransactionProviderFields(DomainModel):
    """Transaction fields owned by the aggregator.

    A settled transaction may differ from its pending version in every one of
    these fields, which is why they are replaced together.
    """

    date: dt.date
    posted_at: dt.datetime
    transacted_at: dt.datetime | None = None
    amount: int = Field(..., description="Signed amount in minor units")
    description: str
    clean_description: str
    pending: bool = False


class TransactionUserFields(DomainModel):
    """Transaction fields owned by the user."""

    category_id: str | None = None
    loop: str | None = None
    subcategory: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()
    is_reviewed: bool = False
    is_recurring: bool = False
    recurring_group_id: str | None = None
    splits: tuple[dict[str, Any], ...] | None = None


class Transaction(DomainModel):
    """A single account transaction, keyed for dedup by ``external_id``."""

    id: str
    external_id: str
    account_id: str
    source: Literal["simplefin"] = "simplefin"
    provider: TransactionProviderFields
    user: TransactionUserFields = Field(default_factory=TransactionUserFields)

    @property
    def amount(self) -> int:
        return self.provider.amount

    @property
    def pending(self) -> bool:
        return self.provider.pending

    @property
    def date(self) -> dt.date:
        return self.provider.date

    @property
    def description(self) -> str:
        return self.provider.description

    @property
    def clean_description(self) -> str:
        return self.provider.clean_description

    @property
    def category_id(self) -> str | None:
        return self.user.category_id

    @property
    def is_reviewed(self) -> bool:
        return self.user.is_reviewed

    def with_user(self, **changes: Any) -> Self:
        """Return a copy with the given user-owned fields replaced."""
        return self.model_copy(update={"user": self.user.model_copy(update=changes)})

    def to_record(self) -> dict[str, Any]:
        """Flatten into the camelCase store representation."""
        return {
            "id": self.id,
            "externalId": self.external_id,
            "accountId": self.account_id,
            "source": self.source,
            **self.provider.model_dump(mode="json", by_alias=True),
            **self.user.model_dump(mode="json", by_alias=True),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        """Build a transaction from its flat camelCase representation."""
        return cls(
            id=record["id"],
            external_id=record["externalId"],
            account_id=record["accountId"],
            provider=TransactionProviderFields.model_validate(
                _pick_fields(TransactionProviderFields, record)
            ),
            user=TransactionUserFields.model_validate(
                _pick_fields(TransactionUserFields, record)
            ),
        )


# Categorization


class Category(DomainModel):
    """A category definition; ``loop`` is the life-domain bucket it rolls up to."""

    id: str
    name: str = ""
    loop: str | None = None
    subcategory: str | None = None


class CategoryRule(DomainModel):
    """A pattern rule assigning ``category_id`` to matching descriptions."""

    pattern: str
    pattern_type: PatternType = "contains"
    category_id: str
    priority: int = 0


# Connections


class Connection(DomainModel):
    """A SimpleFIN connection and its last sync state."""

    id: str
    provider: Literal["simplefin"] = "simplefin"
    access_url: str = Field(..., repr=False, description="Opaque credential bundle")
    status: ConnectionStatus = ConnectionStatus.ACTIVE
    last_sync_at: dt.datetime | None = None
    last_sync_error: str | None = None


def create_connection(access_url: str, now: dt.datetime | None = None) -> Connection:
    """Create a new active connection for a freshly claimed access URL.

    Args:
        access_url: Access URL returned by the setup-token claim
        now: Creation time, defaults to the current time

    Returns:
        Connection: An active connection that has never synced
    """
    created = now or dt.datetime.now(dt.timezone.utc)
    millis = int(created.timestamp() * 1000)
    return Connection(id=f"conn_{millis}", access_url=access_url)


# Scheduled payments


class BabysitterPayment(DomainModel):
    """An expected e-transfer identified by a short reference code."""

    reference_code: str
    amount: int = Field(..., description="Expected amount in minor units")
    status: PaymentStatus = PaymentStatus.PENDING
    id: str | None = None
    payee_name: str | None = None
    matched_transaction_id: str | None = None
