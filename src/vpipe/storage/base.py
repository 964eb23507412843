"""Object store interface. Implementations never retry; callers decide."""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO


class ObjectStore(ABC):
    @abstractmethod
    def get(self, key: str) -> BinaryIO:
        """Open the object for reading. Raises NotFoundError or StoreError."""
        ...

    @abstractmethod
    def put(self, key: str, data: bytes | BinaryIO, content_type: str) -> str:
        """Write (or overwrite) the object and return its public URL."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the object. Deleting a missing key is not an error."""
        ...

    @abstractmethod
    def public_url(self, key: str) -> str:
        ...

    def signed_url(self, key: str, expires_in: int | None = None) -> str:
        raise NotImplementedError("signed URLs not supported by this store")

    def download_to(self, key: str, path: Path) -> Path:
        body = self.get(key)
        try:
            with open(path, "wb") as f:
                shutil.copyfileobj(body, f)
        finally:
            body.close()
        return path

    def upload_file(self, path: Path, key: str, content_type: str) -> str:
        with open(path, "rb") as f:
            return self.put(key, f, content_type)
