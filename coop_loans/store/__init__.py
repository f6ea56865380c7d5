"""Document stores holding loans, approvals, schedules and member data."""

from coop_loans.store.base import DocumentStore
from coop_loans.store.memory import InMemoryDocumentStore

__all__ = ["DocumentStore", "InMemoryDocumentStore"]
