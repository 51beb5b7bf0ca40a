"""
Object storage buckets for the in-memory remote data service.

Only what listing photos need: upload bytes to a path, remove paths, and
build the public URL for a path. Objects are kept in memory.
"""

import asyncio
import logging
from typing import Union

from backend.errors import RemoteError

logger = logging.getLogger("remote_storage")


class Bucket:
    """One named bucket. Paths are unique; uploading over a path fails."""

    def __init__(self, name: str, public_url: str):
        self.name = name
        self._public_url = public_url.rstrip("/")
        self._objects: dict[str, bytes] = {}

    async def upload(self, path: str, content: Union[bytes, str]) -> str:
        """
        Store an object.

        Returns:
            The stored path

        Raises:
            RemoteError: If an object already exists at ``path``
        """
        await asyncio.sleep(0)
        if path in self._objects:
            raise RemoteError(f"The resource already exists: {self.name}/{path}", code="409")
        self._objects[path] = content.encode() if isinstance(content, str) else bytes(content)
        logger.info(f"Uploaded {self.name}/{path} ({len(self._objects[path])} bytes)")
        return path

    async def remove(self, paths: list[str]) -> list[str]:
        """Delete objects; missing paths are ignored. Returns the paths removed."""
        await asyncio.sleep(0)
        removed = [p for p in paths if self._objects.pop(p, None) is not None]
        logger.info(f"Removed {len(removed)} object(s) from {self.name}")
        return removed

    def get_public_url(self, path: str) -> str:
        """Public URL for a path. Pure string building, no round trip."""
        return f"{self._public_url}/storage/v1/object/public/{self.name}/{path}"

    def exists(self, path: str) -> bool:
        return path in self._objects

    def list_paths(self) -> list[str]:
        return sorted(self._objects)


class StorageClient:
    """Entry point for buckets: ``storage.from_("revend-images")``."""

    def __init__(self, public_url: str):
        self._public_url = public_url
        self._buckets: dict[str, Bucket] = {}

    def from_(self, bucket: str) -> Bucket:
        if bucket not in self._buckets:
            self._buckets[bucket] = Bucket(bucket, self._public_url)
        return self._buckets[bucket]
