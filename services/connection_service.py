"""
services/connection_service.py
-------------------------------
Manages the phoenixd node connections the scheduler pays through.

The node configured in `.env` is stored as the first connection on startup,
so a fresh database has an active backend without any operator action.
"""

from typing import Optional

import httpx

from config import PHOENIXD_PASSWORD, PHOENIXD_URL
from models.connection import NodeConnection
from repositories.connection_repo import ConnectionRepository
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONNECTION_NAME = "Default node"


def _check_url(url: Optional[str]) -> str:
    url = (url or "").strip()
    if not url:
        raise ValueError("URL is required")
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        raise ValueError("Invalid URL format") from None
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValueError("Invalid URL format")
    return url


class ConnectionService:
    """
    Service layer for node connections.

    Args:
        repo: ConnectionRepository (injectable for tests).
    """

    def __init__(self, repo: Optional[ConnectionRepository] = None):
        self.repo = repo or ConnectionRepository()

    def seed_default(self, url: str = PHOENIXD_URL, password: str = PHOENIXD_PASSWORD) -> Optional[NodeConnection]:
        """Store the configured node as the active connection when none exists yet."""
        seeded = self.repo.add_default_if_empty(DEFAULT_CONNECTION_NAME, url, password)
        if seeded:
            logger.info(f"No node connection stored, activated {seeded.url} as #{seeded.id}")
        return seeded

    def add_connection(self, name: str, url: str, password: str = "") -> NodeConnection:
        """
        Store a new, inactive connection.

        Raises:
            ValueError: If the name or URL is missing or the URL is malformed.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Name is required")
        return self.repo.add(name, _check_url(url), (password or "").strip())

    def use_connection(self, connection_id: int) -> NodeConnection:
        """
        Make a connection the active one. Schedules created from now on are
        bound to it and the poller pays through it.

        Raises:
            LookupError: If the connection does not exist.
        """
        self.repo.set_active(connection_id)
        connection = self.repo.get_by_id(connection_id)
        logger.info(f"Active node connection is now #{connection_id}")
        return connection

    def delete_connection(self, connection_id: int) -> str:
        existing = self.repo.get_by_id(connection_id)
        if existing is None:
            raise LookupError("Connection not found")
        if existing.is_active:
            raise ValueError("Cannot delete the active connection. Switch to another connection first.")
        if not self.repo.delete(connection_id):
            raise ValueError("Cannot delete the active connection. Switch to another connection first.")
        return f"🗑️ Connection #{connection_id} ({existing.name}) deleted."

    def list_connections(self) -> str:
        connections = self.repo.get_all()
        if not connections:
            return "📭 No node connections. Add one with /add_connection."
        lines = ["🔌 Node connections:\n"]
        for connection in connections:
            marker = "✅" if connection.is_active else "▫️"
            lines.append(f"{marker} #{connection.id} {connection.name} · {connection.url}")
        return "\n".join(lines)
