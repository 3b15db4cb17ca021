from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import BinaryIO

from eventhub.services.exceptions import StorageError
from eventhub.storage.base import StorageAdapter


class LocalStorageAdapter(StorageAdapter):
    def __init__(self, root: Path, url_prefix: str = "/media") -> None:
        self._root = root.resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._url_prefix = "/" + url_prefix.strip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _normalize_key(self, key: str) -> str:
        normalized = key.strip().lstrip("/")
        path_key = PurePosixPath(normalized)
        if not normalized or path_key.is_absolute() or ".." in path_key.parts:
            raise ValueError(f"invalid storage key: {key!r}")
        return str(path_key)

    def _path_for_key(self, key: str) -> Path:
        normalized = self._normalize_key(key)
        return self._root.joinpath(*PurePosixPath(normalized).parts)

    def put_file(self, key: str, fileobj: BinaryIO, content_type: str | None = None) -> str:
        path = self._path_for_key(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as out:
                while True:
                    chunk = fileobj.read(1024 * 1024)
                    if not chunk:
                        break
                    out.write(chunk)
        except OSError as exc:
            raise StorageError(f"failed to write {key}") from exc
        return self.resolve_url(key)

    def delete(self, key: str) -> None:
        path = self._path_for_key(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to delete {key}") from exc

    def exists(self, key: str) -> bool:
        return self._path_for_key(key).exists()

    def resolve_url(self, key: str) -> str:
        return f"{self._url_prefix}/{self._normalize_key(key)}"

    def key_for_url(self, url: str) -> str | None:
        prefix = f"{self._url_prefix}/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix):] or None
