"""Connectors for the SimpleFIN Bridge aggregator.

This package parses access URLs and setup tokens, validates upstream payloads,
and performs the authenticated HTTP reads.
"""

from .credentials import AccessCredentials, parse_access_url, parse_setup_token
from .simplefin_client import FetchFilters, SimplefinClient
from .simplefin_schemas import (
    AccountSchema,
    SimplefinAccountSet,
    TransactionSchema,
    parse_account_set,
)

__all__ = [
    "AccessCredentials",
    "AccountSchema",
    "FetchFilters",
    "SimplefinAccountSet",
    "SimplefinClient",
    "TransactionSchema",
    "parse_access_url",
    "parse_account_set",
    "parse_setup_token",
]
