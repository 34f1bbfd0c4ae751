"""
services/ - Business Layer
==========================
Schedule math, the phoenixd gateway client, LNURL fallback resolution,
payment execution, the due-payment scheduler and operator-facing management.
"""
