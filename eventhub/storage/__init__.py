from __future__ import annotations

from eventhub.storage.base import StorageAdapter
from eventhub.storage.factory import create_storage, get_storage
from eventhub.storage.local import LocalStorageAdapter

__all__ = ["StorageAdapter", "LocalStorageAdapter", "create_storage", "get_storage"]
