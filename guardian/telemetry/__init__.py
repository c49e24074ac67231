"""
Telemetry module for the Guardian alert core.

Provides JSON Lines persistence of alert history.
"""

from .store import JsonlAlertStore, StoreRecord

__all__ = [
    "JsonlAlertStore",
    "StoreRecord",
]
