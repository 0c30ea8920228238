"""File-backed state store for running syncs from the command line.

The application keeps its state in its own storage layer; this store exists so
that a sync can be run and inspected locally. State is one JSON document with
camelCase records, the same shape the app stores:

    {
        "connections": [...],
        "accounts": [...],
        "transactions": [...],
        "categories": [...],
        "rules": [...],
        "payments": [...],
        "syncStatus": {"isSyncing": false, "error": null, "lastSyncAt": null}
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from finloop.models import (
    Account,
    BabysitterPayment,
    Category,
    CategoryRule,
    Connection,
    Transaction,
)
from finloop.sync import ChangeSet, SetSyncStatus

logger = logging.getLogger(__name__)


@dataclass
class StateSnapshot:
    """In-memory copy of the stored state."""

    connections: list[Connection] = field(default_factory=list)
    accounts: list[Account] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    rules: list[CategoryRule] = field(default_factory=list)
    payments: list[BabysitterPayment] = field(default_factory=list)
    sync_status: SetSyncStatus = field(
        default_factory=lambda: SetSyncStatus(is_syncing=False)
    )

    def get_connection(self, connection_id: str | None = None) -> Connection:
        """Look up a connection, or the only one when no id is given.

        Raises:
            KeyError: If no matching connection exists
        """
        if connection_id is None:
            if len(self.connections) != 1:
                raise KeyError(
                    f"Expected exactly one connection, found {len(self.connections)}"
                )
            return self.connections[0]
        for connection in self.connections:
            if connection.id == connection_id:
                return connection
        raise KeyError(f"Connection not found: {connection_id}")

    def transactions_for(self, connection_id: str) -> list[Transaction]:
        """Stored transactions on accounts attached to ``connection_id``."""
        account_ids = {a.id for a in self.accounts if a.connection_id == connection_id}
        return [t for t in self.transactions if t.account_id in account_ids]

    def apply(self, change_set: ChangeSet) -> None:
        """Apply change-set commands in order.

        Every command replaces state by key, so applying the same change-set
        twice leaves the state as applying it once.
        """
        for command in change_set.commands:
            if command.kind == "set_accounts":
                self.accounts = list(command.accounts)
            elif command.kind == "upsert_transactions":
                by_id = {t.id: t for t in self.transactions}
                for tx in command.transactions:
                    by_id[tx.id] = tx
                self.transactions = list(by_id.values())
            elif command.kind == "update_connection":
                self.connections = [
                    command.connection if c.id == command.connection.id else c
                    for c in self.connections
                ]
                if command.connection.id not in {c.id for c in self.connections}:
                    self.connections.append(command.connection)
            elif command.kind == "set_sync_status":
                self.sync_status = command


class JsonStateStore:
    """Loads and saves a ``StateSnapshot`` as a JSON file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> StateSnapshot:
        """Read the state file; a missing file is an empty state."""
        if not self.path.exists():
            logger.debug(f"No state file at {self.path}, starting empty")
            return StateSnapshot()

        data: dict[str, Any] = json.loads(self.path.read_text(encoding="utf-8"))
        snapshot = StateSnapshot(
            connections=[
                Connection.model_validate(c) for c in data.get("connections", [])
            ],
            accounts=[Account.from_record(a) for a in data.get("accounts", [])],
            transactions=[
                Transaction.from_record(t) for t in data.get("transactions", [])
            ],
            categories=[Category.model_validate(c) for c in data.get("categories", [])],
            rules=[CategoryRule.model_validate(r) for r in data.get("rules", [])],
            payments=[
                BabysitterPayment.model_validate(p) for p in data.get("payments", [])
            ],
        )
        if "syncStatus" in data:
            snapshot.sync_status = SetSyncStatus.model_validate(data["syncStatus"])
        logger.debug(
            f"Loaded state from {self.path}: {len(snapshot.accounts)} accounts, "
            f"{len(snapshot.transactions)} transactions"
        )
        return snapshot

    def save(self, snapshot: StateSnapshot) -> None:
        """Write the state file, creating parent directories."""
        data = {
            "connections": [
                c.model_dump(mode="json", by_alias=True) for c in snapshot.connections
            ],
            "accounts": [a.to_record() for a in snapshot.accounts],
            "transactions": [t.to_record() for t in snapshot.transactions],
            "categories": [
                c.model_dump(mode="json", by_alias=True) for c in snapshot.categories
            ],
            "rules": [r.model_dump(mode="json", by_alias=True) for r in snapshot.rules],
            "payments": [
                p.model_dump(mode="json", by_alias=True) for p in snapshot.payments
            ],
            "syncStatus": snapshot.sync_status.model_dump(
                mode="json", by_alias=True, exclude={"kind"}
            ),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        logger.debug(f"Saved state to {self.path}")
