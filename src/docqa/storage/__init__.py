"""Object and status stores."""

from .blobs import BlobStore, LocalBlobStore
from .status import FileStatusStore, StatusStore

__all__ = ["BlobStore", "FileStatusStore", "LocalBlobStore", "StatusStore"]
