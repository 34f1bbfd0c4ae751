"""
models/connection.py
--------------------
A configured phoenixd backend. Exactly one connection is active at a time.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class NodeConnection:
    id: int
    name: str
    url: str
    password: str = ""
    is_active: bool = False
    created_at: Optional[datetime] = None

    def __repr__(self) -> str:
        # Never leak the node password into logs.
        return f"NodeConnection(id={self.id}, name={self.name!r}, url={self.url!r}, is_active={self.is_active})"
