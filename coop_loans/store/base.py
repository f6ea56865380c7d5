"""Document store interface and shared query helpers."""

import operator
from typing import Any, Callable, Iterable, Protocol

from coop_loans.store.codec import serialize_value

Filter = tuple[str, str, Any]

OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda field_value, options: field_value in options,
}

# Collection names
LOANS = "loans"
LOAN_SCHEDULES = "loan_schedules"
GUARANTOR_APPROVALS = "guarantor_approvals"
USERS = "users"
WALLETS = "wallets"
NOTIFICATIONS = "notifications"
TRANSACTIONS = "transactions"


class DocumentStore(Protocol):
    """Collection/document persistence used by every service.

    Documents are plain dicts of JSON-compatible values. ``update`` merges
    fields into an existing document (last write wins) and raises
    ``EntityNotFoundError`` if it does not exist. ``query`` results are
    unordered.
    """

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    def add(self, collection: str, data: dict[str, Any]) -> str: ...

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None: ...

    def query(
        self, collection: str, filters: Iterable[Filter] = ()
    ) -> list[dict[str, Any]]: ...


def normalize_filters(filters: Iterable[Filter]) -> list[Filter]:
    """Validate operators and serialize filter values to their stored form."""
    normalized = []
    for field_name, op, value in filters:
        if op not in OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")
        normalized.append((field_name, op, serialize_value(value)))
    return normalized


def matches(document: dict[str, Any], filters: Iterable[Filter]) -> bool:
    """Whether a document satisfies every predicate.

    A document missing the field never matches. ``filters`` must already be
    normalized.
    """
    for field_name, op, value in filters:
        if field_name not in document:
            return False
        try:
            if not OPERATORS[op](document[field_name], value):
                return False
        except TypeError:
            return False
    return True
