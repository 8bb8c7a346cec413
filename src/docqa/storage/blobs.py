"""Object store for raw uploaded documents."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class BlobStore(Protocol):
    """Raw document bytes keyed by an opaque path."""

    def create_container_if_absent(self) -> None:
        ...

    def upload(self, blob_path: str, data: bytes, *, overwrite: bool = True) -> None:
        ...

    def download(self, blob_path: str) -> bytes:
        ...

    def exists(self, blob_path: str) -> bool:
        ...

    def delete_if_exists(self, blob_path: str) -> bool:
        ...


class LocalBlobStore:
    """Filesystem-backed blob container rooted at ``root``."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def create_container_if_absent(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)

    def upload(self, blob_path: str, data: bytes, *, overwrite: bool = True) -> None:
        destination = self._resolve(blob_path)
        if destination.exists() and not overwrite:
            raise FileExistsError(f"Blob already exists: {blob_path}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp = destination.with_name(destination.name + ".part")
        tmp.write_bytes(data)
        tmp.replace(destination)

    def download(self, blob_path: str) -> bytes:
        return self._resolve(blob_path).read_bytes()

    def exists(self, blob_path: str) -> bool:
        return self._resolve(blob_path).is_file()

    def delete_if_exists(self, blob_path: str) -> bool:
        target = self._resolve(blob_path)
        if not target.is_file():
            return False
        target.unlink()
        parent = target.parent
        if parent != self._root.resolve() and not any(parent.iterdir()):
            parent.rmdir()
        return True

    def _resolve(self, blob_path: str) -> Path:
        root = self._root.resolve()
        target = (root / blob_path).resolve()
        if root not in target.parents:
            raise ValueError(f"Blob path escapes container: {blob_path}")
        return target
