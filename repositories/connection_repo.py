"""
repositories/connection_repo.py
--------------------------------
Data access for the configured phoenixd node connections.
At most one row is active; the partial unique index in the schema enforces it.
"""

from typing import Optional

from db.connection import get_connection, release_connection, transaction
from models.connection import NodeConnection
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = "id, name, url, password, is_active, created_at"


def _row_to_connection(row) -> NodeConnection:
    return NodeConnection(
        id=row[0],
        name=row[1],
        url=row[2],
        password=row[3],
        is_active=row[4],
        created_at=row[5],
    )


class ConnectionRepository:
    """Repository for the node_connections table."""

    # ── READ ──────────────────────────────────────────────

    def get_active(self) -> Optional[NodeConnection]:
        """
        Return the currently active node connection.

        Returns:
            NodeConnection or None when no backend is active.
        """
        sql = f"""
            SELECT {_COLUMNS}
            FROM node_connections
            WHERE is_active = TRUE
            LIMIT 1;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                row = cur.fetchone()
                return _row_to_connection(row) if row else None
        finally:
            release_connection(conn)

    def get_by_id(self, connection_id: int) -> Optional[NodeConnection]:
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM node_connections WHERE id = %s;", (connection_id,))
                row = cur.fetchone()
                return _row_to_connection(row) if row else None
        finally:
            release_connection(conn)

    def get_all(self) -> list[NodeConnection]:
        """Every connection, oldest first."""
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM node_connections ORDER BY created_at, id;")
                return [_row_to_connection(row) for row in cur.fetchall()]
        finally:
            release_connection(conn)

    # ── CREATE ────────────────────────────────────────────

    def add(self, name: str, url: str, password: str = "") -> NodeConnection:
        """Insert an inactive connection."""
        with transaction() as cur:
            cur.execute(
                "INSERT INTO node_connections (name, url, password, is_active) "
                f"VALUES (%s, %s, %s, FALSE) RETURNING {_COLUMNS};",
                (name, url, password),
            )
            connection = _row_to_connection(cur.fetchone())
        logger.info(f"Node connection #{connection.id} added: {name} ({url})")
        return connection

    def add_default_if_empty(self, name: str, url: str, password: str = "") -> Optional[NodeConnection]:
        """
        Insert an active connection, but only when the table has no rows at all.

        Returns:
            The seeded connection, or None if connections already exist.
        """
        with transaction() as cur:
            cur.execute(
                "INSERT INTO node_connections (name, url, password, is_active) "
                "SELECT %s, %s, %s, TRUE "
                "WHERE NOT EXISTS (SELECT 1 FROM node_connections) "
                f"RETURNING {_COLUMNS};",
                (name, url, password),
            )
            row = cur.fetchone()
        return _row_to_connection(row) if row else None

    # ── UPDATE ────────────────────────────────────────────

    def set_active(self, connection_id: int) -> None:
        """
        Make `connection_id` the only active connection.

        Raises:
            LookupError: If the connection does not exist (nothing is changed).
        """
        with transaction() as cur:
            # Deactivate first: the partial unique index allows one active row.
            cur.execute(
                "UPDATE node_connections SET is_active = FALSE WHERE is_active AND id <> %s;",
                (connection_id,),
            )
            cur.execute(
                "UPDATE node_connections SET is_active = TRUE WHERE id = %s;",
                (connection_id,),
            )
            if cur.rowcount == 0:
                # Rolls back the deactivation above.
                raise LookupError(f"Connection #{connection_id} not found")

    # ── DELETE ────────────────────────────────────────────

    def delete(self, connection_id: int) -> bool:
        """Delete an inactive connection. Schedules bound to it become unbound."""
        with transaction() as cur:
            cur.execute(
                "DELETE FROM node_connections WHERE id = %s AND NOT is_active;",
                (connection_id,),
            )
            return cur.rowcount > 0
