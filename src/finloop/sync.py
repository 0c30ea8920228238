"""Sync orchestration for SimpleFIN connections.

One sync attempt runs fetch -> normalize -> merge/reconcile -> categorize and
returns a ``SyncOutcome`` holding the complete change-set. The engine never
writes to a store itself; the caller applies the commands in order. They are
separate commands, not one transaction, so a crash part-way through applying
them can leave the store partially updated.

Merge, reconcile and categorize only run on a complete, validated payload, so
a failed fetch never produces account or transaction commands.

Callers must not run two attempts for the same connection concurrently; this
module does no locking.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Literal

from pydantic import Field, ValidationError, field_validator

from finloop.categorize import categorize_transactions
from finloop.config import FinloopSettings, get_settings
from finloop.connectors.credentials import parse_access_url
from finloop.connectors.simplefin_client import FetchFilters, SimplefinClient
from finloop.errors import AuthExpiredError, FinloopError, UnexpectedFailure
from finloop.models import (
    Account,
    Category,
    CategoryRule,
    Connection,
    ConnectionStatus,
    DomainModel,
    Transaction,
)
from finloop.normalize import normalize_account_set
from finloop.reconcile import PostedPolicy, merge_accounts, reconcile_transactions

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Change-set commands


class SetAccounts(DomainModel):
    """Replace the stored account list."""

    kind: Literal["set_accounts"] = "set_accounts"
    accounts: tuple[Account, ...]


class UpsertTransactions(DomainModel):
    """Insert or replace transactions by id."""

    kind: Literal["upsert_transactions"] = "upsert_transactions"
    transactions: tuple[Transaction, ...]


class UpdateConnection(DomainModel):
    """Replace the stored connection record."""

    kind: Literal["update_connection"] = "update_connection"
    connection: Connection


class SetSyncStatus(DomainModel):
    """Report sync progress to the app."""

    kind: Literal["set_sync_status"] = "set_sync_status"
    is_syncing: bool
    error: str | None = None
    last_sync_at: datetime | None = None


SyncCommand = Annotated[
    SetAccounts | UpsertTransactions | UpdateConnection | SetSyncStatus,
    Field(discriminator="kind"),
]


class ChangeSet(DomainModel):
    """Ordered, idempotent commands for the external store."""

    commands: tuple[SyncCommand, ...] = ()

    def of_kind(self, kind: str) -> list[Any]:
        """Return the commands with the given ``kind``, in order."""
        return [c for c in self.commands if c.kind == kind]


@dataclass
class SyncOutcome:
    """Result of one sync attempt."""

    success: bool
    connection: Connection
    change_set: ChangeSet
    accounts: list[Account] = field(default_factory=list)
    new_transactions: list[Transaction] = field(default_factory=list)
    updated_transactions: list[Transaction] = field(default_factory=list)
    upstream_errors: list[str] = field(default_factory=list)
    error_code: str | None = None
    error_message: str | None = None


class SyncOrchestrator:
    """Runs sync attempts for SimpleFIN connections."""

    def __init__(
        self,
        client: SimplefinClient | None = None,
        settings: FinloopSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the orchestrator.

        Args:
            client: SimpleFIN client. Defaults to one built from settings.
            settings: Configuration. Defaults to the current profile's.
            clock: Returns the current time (timezone-aware)
        """
        self.settings = settings or get_settings()
        self.client = client or SimplefinClient.from_settings(self.settings)
        self.clock = clock
        self.policy = PostedPolicy(self.settings.sync.posted_policy)

    def lookback_start(self, connection: Connection, now: datetime) -> datetime:
        """Start of the requested window, at midnight UTC.

        A connection that never synced asks for the long initial window;
        afterwards only the shorter incremental window is re-read.
        """
        simplefin = self.settings.simplefin
        days = (
            simplefin.initial_lookback_days
            if connection.last_sync_at is None
            else simplefin.incremental_lookback_days
        )
        start_day = (now - timedelta(days=days)).date()
        return datetime(
            start_day.year, start_day.month, start_day.day, tzinfo=timezone.utc
        )

    def run(
        self,
        connection: Connection,
        accounts: Iterable[Account] = (),
        transactions: Iterable[Transaction] = (),
        rules: Iterable[CategoryRule] = (),
        categories: Iterable[Category] = (),
    ) -> SyncOutcome:
        """Run one sync attempt.

        Args:
            connection: Connection to sync
            accounts: Currently stored accounts
            transactions: Currently stored transactions for the connection
            rules: Category rules
            categories: Category definitions

        Returns:
            SyncOutcome: The updated connection and the change-set to apply.
                Failures are reported in the outcome, never raised.
        """
        now = self.clock()
        started = SetSyncStatus(is_syncing=True)
        start_date = self.lookback_start(connection, now)
        logger.info(
            f"Syncing connection {connection.id} from {start_date.date().isoformat()}"
        )

        try:
            credentials = parse_access_url(connection.access_url)
            account_set = self.client.fetch_accounts(
                credentials, FetchFilters(start_date=start_date)
            )
        except AuthExpiredError as e:
            logger.warning(f"Connection {connection.id} needs to be reconnected")
            reauth = connection.model_copy(
                update={
                    "status": ConnectionStatus.NEEDS_REAUTH,
                    "last_sync_error": e.message,
                }
            )
            return self._failed(
                reauth,
                e,
                started,
                SetSyncStatus(is_syncing=False, error=e.message),
                UpdateConnection(connection=reauth),
            )
        except FinloopError as e:
            logger.error(f"Sync failed for connection {connection.id}: {e.message}")
            return self._failed(
                connection,
                e,
                started,
                SetSyncStatus(is_syncing=False, error=e.message),
            )
        except Exception as e:
            failure = UnexpectedFailure(e)
            logger.exception(f"Fetch failed for connection {connection.id}")
            return self._failed(
                connection,
                failure,
                started,
                SetSyncStatus(is_syncing=False, error=failure.message),
            )

        try:
            payload = normalize_account_set(
                account_set,
                connection.id,
                self.settings.simplefin.transaction_id_prefix,
            )
            account_merge = merge_accounts(accounts, payload.accounts, connection.id)
            reconciled = reconcile_transactions(
                transactions, payload.transactions, self.policy
            )
            categorized = categorize_transactions(
                reconciled.changed, rules, categories, keep_assigned=True
            )
            new_count = len(reconciled.new)

            synced = connection.model_copy(
                update={
                    "status": ConnectionStatus.ACTIVE,
                    "last_sync_at": now,
                    "last_sync_error": None,
                }
            )
            commands: list[SyncCommand] = [
                started,
                SetAccounts(accounts=tuple(account_merge.accounts)),
            ]
            if categorized:
                commands.append(UpsertTransactions(transactions=tuple(categorized)))
            commands.append(UpdateConnection(connection=synced))
            commands.append(SetSyncStatus(is_syncing=False, last_sync_at=now))
            change_set = ChangeSet(commands=tuple(commands))
        except Exception as e:
            failure = e if isinstance(e, FinloopError) else UnexpectedFailure(e)
            logger.exception(f"Sync failed for connection {connection.id}")
            errored = connection.model_copy(
                update={
                    "status": ConnectionStatus.ERROR,
                    "last_sync_error": failure.message,
                }
            )
            return self._failed(
                errored,
                failure,
                started,
                SetSyncStatus(is_syncing=False, error=failure.message),
                UpdateConnection(connection=errored),
            )

        logger.info(
            f"Sync finished for connection {connection.id}: "
            f"{new_count} new, {len(categorized) - new_count} updated transactions"
        )
        return SyncOutcome(
            success=True,
            connection=synced,
            change_set=change_set,
            accounts=account_merge.accounts,
            new_transactions=categorized[:new_count],
            updated_transactions=categorized[new_count:],
            upstream_errors=payload.errors,
        )

    def _failed(
        self,
        connection: Connection,
        error: FinloopError,
        *commands: SyncCommand,
    ) -> SyncOutcome:
        return SyncOutcome(
            success=False,
            connection=connection,
            change_set=ChangeSet(commands=commands),
            error_code=error.code,
            error_message=error.message,
        )


# Stateless sync entrypoint


class SyncRequest(DomainModel):
    """Body of a sync request."""

    access_url: str = Field(..., min_length=1, repr=False)
    start_date: datetime | None = None
    end_date: datetime | None = None
    balances_only: bool = False

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_iso_date(cls, v: Any) -> Any:
        """Accept plain ``YYYY-MM-DD`` dates as well as full timestamps."""
        if isinstance(v, str):
            if not v.strip():
                return None
            return datetime.fromisoformat(v.strip())
        return v


@dataclass
class SyncResponse:
    """HTTP-style response of the sync entrypoint."""

    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def _error_response(status_code: int, code: str, message: str) -> SyncResponse:
    return SyncResponse(status_code=status_code, body={"error": code, "message": message})


def handle_sync_request(
    request: dict[str, Any] | SyncRequest,
    client: SimplefinClient | None = None,
    settings: FinloopSettings | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> SyncResponse:
    """Fetch and normalize accounts for one access URL.

    This is the stateless read used by the app: it returns every account and
    transaction in the requested window without reconciling anything.

    Args:
        request: Request body (``accessUrl``, ``startDate``, ``endDate``,
            ``balancesOnly``) or an already validated ``SyncRequest``
        client: SimpleFIN client. Defaults to one built from settings.
        settings: Configuration. Defaults to the current profile's.
        clock: Returns the current time

    Returns:
        SyncResponse: 200 with accounts/transactions, or an error body with
            the status mapped from the error class
    """
    settings = settings or get_settings()

    if isinstance(request, SyncRequest):
        sync_request = request
    else:
        if not isinstance(request, dict) or not isinstance(
            request.get("accessUrl"), str
        ) or not request.get("accessUrl"):
            logger.info("Sync request rejected: missing or invalid accessUrl")
            return _error_response(
                400, "MISSING_ACCESS_URL", "Please provide the SimpleFIN access URL."
            )
        try:
            sync_request = SyncRequest.model_validate(request)
        except ValidationError as e:
            logger.info(f"Sync request rejected: {e.error_count()} invalid fields")
            return _error_response(
                400, "INVALID_REQUEST", f"Invalid sync request: {e.errors()[0]['msg']}"
            )

    try:
        credentials = parse_access_url(sync_request.access_url)
        client = client or SimplefinClient.from_settings(settings)
        account_set = client.fetch_accounts(
            credentials,
            FetchFilters(
                start_date=sync_request.start_date,
                end_date=sync_request.end_date,
                balances_only=sync_request.balances_only,
            ),
        )
        payload = normalize_account_set(
            account_set, id_prefix=settings.simplefin.transaction_id_prefix
        )
    except FinloopError as e:
        return _error_response(e.http_status, e.code, e.message)
    except Exception as e:
        logger.exception("Unexpected error while handling sync request")
        failure = UnexpectedFailure(e)
        return _error_response(failure.http_status, failure.code, failure.message)

    return SyncResponse(
        status_code=200,
        body={
            "success": True,
            "accounts": [a.to_record() for a in payload.accounts],
            "transactions": [t.to_record() for t in payload.transactions],
            "errors": payload.errors,
            "syncedAt": clock().isoformat(),
        },
    )
