"""
models/ - Domain Layer
======================
Plain dataclasses describing schedules, contacts, node connections and
execution outcomes. No I/O lives here.
"""
