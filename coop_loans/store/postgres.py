"""PostgreSQL-backed document store."""

import logging
import uuid
from typing import Any, Iterable

import psycopg
from psycopg.types.json import Jsonb

from coop_loans.exceptions import EntityNotFoundError, StoreError
from coop_loans.store.base import Filter, matches, normalize_filters

logger = logging.getLogger(__name__)


class PostgresDocumentStore:
    """Document store over a single ``documents(collection, id, data jsonb)`` table.

    Equality predicates are pushed down as a ``data @> ...`` containment
    filter; other operators are applied to the fetched rows.
    """

    TABLE = "documents"

    CREATE_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data JSONB NOT NULL,
            PRIMARY KEY (collection, id)
        )
    """

    def __init__(self, connection_string: str, create_table: bool = True) -> None:
        """Initialize PostgreSQL document store.

        Parameters
        ----------
        connection_string : str
            PostgreSQL connection string.
        create_table : bool
            Create the documents table if it does not exist.
        """
        try:
            self.conn = psycopg.connect(connection_string)
        except psycopg.Error as e:
            raise StoreError(f"Cannot connect to PostgreSQL: {e}") from e

        if create_table:
            self._execute(self.CREATE_TABLE_SQL)

    def _execute(self, sql: str, params: tuple = ()) -> Any:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
                rowcount = cur.rowcount
                rows = cur.fetchall() if cur.description else []
            self.conn.commit()
        except psycopg.Error as e:
            self.conn.rollback()
            logger.error("Document store statement failed: %s", e)
            raise StoreError(str(e)) from e
        return rows, rowcount

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Get a document by id, or None."""
        rows, _ = self._execute(
            f"SELECT data FROM {self.TABLE} WHERE collection = %s AND id = %s",
            (collection, doc_id),
        )
        return rows[0][0] if rows else None

    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Add a document under a generated id and return the id."""
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or replace a document."""
        self._execute(
            f"INSERT INTO {self.TABLE} (collection, id, data) VALUES (%s, %s, %s) "
            "ON CONFLICT (collection, id) DO UPDATE SET data = EXCLUDED.data",
            (collection, doc_id, Jsonb(data)),
        )

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        """Merge top-level fields into an existing document."""
        _, rowcount = self._execute(
            f"UPDATE {self.TABLE} SET data = data || %s WHERE collection = %s AND id = %s",
            (Jsonb(changes), collection, doc_id),
        )
        if rowcount == 0:
            raise EntityNotFoundError(f"{collection}/{doc_id} not found")

    def query(
        self, collection: str, filters: Iterable[Filter] = ()
    ) -> list[dict[str, Any]]:
        """Documents matching every filter, in no particular order."""
        normalized = normalize_filters(filters)
        equality = {name: value for name, op, value in normalized if op == "=="}
        remaining = [f for f in normalized if f[1] != "=="]

        if equality:
            rows, _ = self._execute(
                f"SELECT data FROM {self.TABLE} WHERE collection = %s AND data @> %s",
                (collection, Jsonb(equality)),
            )
        else:
            rows, _ = self._execute(
                f"SELECT data FROM {self.TABLE} WHERE collection = %s",
                (collection,),
            )

        return [row[0] for row in rows if matches(row[0], remaining)]

    def close(self) -> None:
        """Close the connection."""
        self.conn.close()
        logger.info("PostgreSQL document store closed")
