"""SimpleFIN Bridge HTTP client.

Issues the authenticated ``GET {base}accounts`` read and classifies every
failure into the ``finloop.errors`` taxonomy. The client performs no retries;
a failed read is reported to the caller as-is. The read runs in a worker
thread so the caller gets control back once the wait bound expires, even when
the server keeps trickling bytes.
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import requests

from finloop.config import FinloopSettings, get_settings
from finloop.errors import (
    AuthExpiredError,
    MalformedResponseError,
    NetworkError,
    NetworkTimeoutError,
    ServerError,
    TokenAlreadyClaimedError,
)

from .credentials import AccessCredentials
from .simplefin_schemas import SimplefinAccountSet, parse_account_set

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 8 * 1024


def _epoch_seconds(value: date | datetime) -> int:
    """Convert a date or datetime to epoch seconds, treating naive values as UTC."""
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


@dataclass(frozen=True)
class FetchFilters:
    """Optional filters for the ``/accounts`` read."""

    start_date: date | datetime | None = None
    end_date: date | datetime | None = None
    account_ids: tuple[str, ...] = ()
    pending_only: bool = False
    balances_only: bool = False

    def to_params(self) -> list[tuple[str, str]]:
        """Build query parameters, including only the filters that are set."""
        params: list[tuple[str, str]] = []
        if self.start_date is not None:
            params.append(("start-date", str(_epoch_seconds(self.start_date))))
        if self.end_date is not None:
            params.append(("end-date", str(_epoch_seconds(self.end_date))))
        for account_id in self.account_ids:
            params.append(("account", account_id))
        if self.pending_only:
            params.append(("pending", "1"))
        if self.balances_only:
            params.append(("balances-only", "1"))
        return params


class SimplefinClient:
    """Read-only client for a SimpleFIN Bridge server."""

    def __init__(
        self,
        timeout_seconds: float = 25.0,
        session: requests.Session | None = None,
    ):
        """Initialize the client.

        Args:
            timeout_seconds: Hard bound on the whole read, connect through body
            session: Optional requests session, mainly for tests
        """
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: FinloopSettings | None = None) -> "SimplefinClient":
        """Build a client using the configured timeout."""
        settings = settings or get_settings()
        return cls(timeout_seconds=settings.simplefin.timeout_seconds)

    def fetch_accounts(
        self,
        credentials: AccessCredentials,
        filters: FetchFilters | None = None,
    ) -> SimplefinAccountSet:
        """Fetch accounts and transactions for one access URL.

        Args:
            credentials: Parsed access URL
            filters: Optional date/account filters

        Returns:
            SimplefinAccountSet: The validated upstream payload

        Raises:
            AuthExpiredError: Upstream rejected the credentials (401/403) or the
                access URL is gone (404)
            NetworkTimeoutError: The read exceeded ``timeout_seconds``
            NetworkError: The server could not be reached
            ServerError: Any other non-success status
            MalformedResponseError: The body is not a valid account set
        """
        filters = filters or FetchFilters()
        url = f"{credentials.base_url}accounts"
        host = urlsplit(credentials.base_url).hostname
        deadline = time.monotonic() + self.timeout_seconds
        opened: list[requests.Response] = []

        logger.info(f"Fetching accounts from SimpleFIN host {host}")
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="simplefin")
        future = executor.submit(
            self._get_accounts, url, filters, credentials, deadline, opened
        )
        try:
            status, text = future.result(timeout=self.timeout_seconds)
        except (FutureTimeoutError, requests.Timeout) as e:
            for response in opened:
                response.close()
            logger.error(f"SimpleFIN read timed out after {self.timeout_seconds}s")
            raise NetworkTimeoutError() from e
        except requests.RequestException as e:
            logger.error(f"SimpleFIN fetch error: {type(e).__name__}: {e}")
            raise NetworkError(str(e)) from e
        finally:
            executor.shutdown(wait=False)

        logger.debug(f"SimpleFIN response status {status}, {len(text)} chars")

        if status in (401, 403):
            logger.warning(f"SimpleFIN rejected credentials (HTTP {status})")
            raise AuthExpiredError()
        if status == 404:
            logger.warning("SimpleFIN access URL not found (HTTP 404)")
            raise AuthExpiredError(
                "SimpleFIN access URL not found. The token may have expired. "
                "Please reconnect."
            )
        if status >= 400:
            logger.error(f"SimpleFIN API error {status}: {text[:200]}")
            raise ServerError(status, text)

        try:
            data: Any = json.loads(text)
        except ValueError as e:
            logger.error("SimpleFIN returned a body that is not JSON")
            raise MalformedResponseError(
                "SimpleFIN returned invalid JSON response"
            ) from e

        account_set = parse_account_set(data)
        logger.info(
            f"SimpleFIN returned {len(account_set.accounts)} accounts, "
            f"{len(account_set.errors)} upstream errors"
        )
        return account_set

    def _get_accounts(
        self,
        url: str,
        filters: FetchFilters,
        credentials: AccessCredentials,
        deadline: float,
        opened: list[requests.Response],
    ) -> tuple[int, str]:
        """Issue the read and return the status and body text; runs in a worker."""
        response = self.session.get(
            url,
            params=filters.to_params(),
            headers={"Accept": "application/json"},
            auth=credentials.basic_auth,
            timeout=self.timeout_seconds,
            stream=True,
        )
        opened.append(response)
        with response:
            return response.status_code, self._read_body(response, deadline)

    def _read_body(self, response: requests.Response, deadline: float) -> str:
        """Stream the body, aborting once the wall-clock deadline passes."""
        chunks: list[bytes] = []
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise requests.Timeout("SimpleFIN read exceeded the wait bound")
            if chunk:
                chunks.append(chunk)
        body = b"".join(chunks)
        encoding = response.encoding or "utf-8"
        try:
            return body.decode(encoding, errors="replace")
        except LookupError:
            logger.warning(f"Unknown response charset {encoding!r}, decoding as UTF-8")
            return body.decode("utf-8", errors="replace")

    def claim_access_url(self, claim_url: str) -> str:
        """Exchange a claim URL for a long-lived access URL.

        This is a one-time operation: the bridge answers 403 for a token that
        was already claimed.

        Args:
            claim_url: URL decoded from the setup token

        Returns:
            str: The access URL (contains credentials, store it securely)

        Raises:
            TokenAlreadyClaimedError: The token was already used
            NetworkTimeoutError: The claim exceeded ``timeout_seconds``
            NetworkError: The server could not be reached
            ServerError: Any other non-success status
            MalformedResponseError: The response is not an access URL
        """
        try:
            response = self.session.post(
                claim_url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout_seconds,
            )
        except requests.Timeout as e:
            raise NetworkTimeoutError() from e
        except requests.RequestException as e:
            logger.error(f"SimpleFIN claim error: {type(e).__name__}: {e}")
            raise NetworkError(str(e)) from e

        if response.status_code == 403:
            raise TokenAlreadyClaimedError()
        if response.status_code >= 400:
            logger.error(f"SimpleFIN claim error: {response.status_code}")
            raise ServerError(response.status_code, response.text)

        access_url = response.text.strip()
        if "@" not in access_url or not access_url.startswith("https://"):
            raise MalformedResponseError(
                "SimpleFIN returned an unexpected response. Please try again."
            )

        logger.info("Claimed SimpleFIN setup token")
        return access_url
