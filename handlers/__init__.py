"""
handlers/ - Presentation Layer
================================
Telegram bot handlers for the node operator. Each handler parses a command,
delegates to the appropriate Service, and sends the response back.
No business logic lives here.
"""
