"""
SQLGate - Secure, auditable, whitelist-driven data access for PostgreSQL.
"""

__version__ = "0.1.0"
