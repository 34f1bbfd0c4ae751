"""
security/ - Access Control
==========================
Whitelist and rate limiting decorators for operator commands.
"""
