"""
db/ - Database Layer
====================
Handles all PostgreSQL connections, transactions and schema initialization.
This layer is the lowest in the architecture; it only depends on config and exceptions.
"""
