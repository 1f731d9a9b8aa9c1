# anchor/__init__.py
"""
Anchor — fingerprint anchoring and verification client for a public, append-only ledger.
Registers 32-byte file digests idempotently and classifies whether a confirmed record exists.

The ledger is the sole source of truth; this client is a stateless lens onto it.
"""

__version__ = "0.1.0-dev"
