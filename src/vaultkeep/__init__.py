# vaultkeep - Main Package
#
# Self-hosted sync server for end-to-end encrypted password vaults.
# Clients register, log in and sync against two stores: a key-value store
# (accounts, vault index, devices) and a blob store (vault objects).
# The server never sees plaintext vault data or the master key.

__version__ = "1.0.0"
__author__ = "vaultkeep maintainers"
__description__ = "Self-hosted sync server for end-to-end encrypted password vaults"

from .core import (
    EventSeverity,
    EventType,
    Settings,
    get_audit_logger,
)

__all__ = [
    "__version__",
    "Settings",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
