"""
Binary asset hosting collaborator.

The service only needs two calls: ``upload`` returning a public URL plus a
reference id, and ``delete`` by reference id.  ``LocalAssetStore`` keeps
files on disk under ``ASSET_ROOT`` and serves them from ``ASSET_BASE_URL``;
another backend only has to implement ``AssetStore``.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from contentdesk.config import settings

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


@dataclass(frozen=True)
class StoredAsset:
    url: str
    reference_id: str


class AssetStore(Protocol):
    async def upload(self, data: bytes, content_type: str) -> StoredAsset: ...

    async def delete(self, reference_id: str) -> None: ...


class LocalAssetStore:
    def __init__(self, root: str | Path, base_url: str, folder: str = "featured-images") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.folder = folder

    def _path(self, reference_id: str) -> Path:
        path = (self.root / reference_id).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"reference id escapes asset root: {reference_id!r}")
        return path

    async def upload(self, data: bytes, content_type: str) -> StoredAsset:
        reference_id = f"{self.folder}/{uuid.uuid4().hex}{EXTENSIONS.get(content_type, '')}"
        path = self._path(reference_id)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("Stored asset %s (%d bytes)", reference_id, len(data))
        return StoredAsset(url=f"{self.base_url}/{reference_id}", reference_id=reference_id)

    async def delete(self, reference_id: str) -> None:
        path = self._path(reference_id)
        await asyncio.to_thread(path.unlink, True)
        logger.info("Deleted asset %s", reference_id)


_store: AssetStore | None = None


def get_asset_store() -> AssetStore:
    global _store
    if _store is None:
        _store = LocalAssetStore(settings.ASSET_ROOT, settings.ASSET_BASE_URL)
    return _store
