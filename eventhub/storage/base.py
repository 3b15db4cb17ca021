from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO


class StorageAdapter(ABC):
    @abstractmethod
    def put_file(self, key: str, fileobj: BinaryIO, content_type: str | None = None) -> str:
        """Store content from file-like object under key and return its public URL."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete key if it exists."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return whether key exists."""

    @abstractmethod
    def resolve_url(self, key: str) -> str:
        """Return the public URL a stored key is served from."""

    @abstractmethod
    def key_for_url(self, url: str) -> str | None:
        """Map a URL produced by this adapter back to its key, or None if foreign."""
