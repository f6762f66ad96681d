"""Revocable handles for local blobs.

A handle stands for bytes held by this process (an in-memory frame or a
spooled upload on disk). Each handle is created once and must be revoked
exactly once; the registry keeps counters so leaks and double releases are
visible.
"""
from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from app.metrics import blob_handles_open
from app.services.errors import HandleError

logger = logging.getLogger(__name__)


@dataclass
class Handle:
    id: str
    content_type: str
    size: int
    path: Path | None = None
    data: bytes | None = field(default=None, repr=False)
    owns_path: bool = False
    revoked: bool = False


class HandleRegistry:
    def __init__(self) -> None:
        self._live: dict[str, Handle] = {}
        self.created = 0
        self.released = 0

    def _register(self, handle: Handle) -> Handle:
        self._live[handle.id] = handle
        self.created += 1
        blob_handles_open.inc()
        return handle

    def create_from_bytes(self, data: bytes, content_type: str) -> Handle:
        return self._register(
            Handle(
                id=f"blob:{uuid4().hex}",
                content_type=content_type,
                size=len(data),
                data=data,
            )
        )

    def create_from_path(
        self, path: str | os.PathLike, content_type: str, *, owns: bool = True
    ) -> Handle:
        """Wrap a file on disk. Owned files are deleted on revoke."""
        p = Path(path)
        return self._register(
            Handle(
                id=f"blob:{uuid4().hex}",
                content_type=content_type,
                size=p.stat().st_size,
                path=p,
                owns_path=owns,
            )
        )

    def read(self, handle: Handle) -> bytes:
        if handle.revoked or handle.id not in self._live:
            raise HandleError(f"handle {handle.id} already revoked")
        if handle.data is not None:
            return handle.data
        if handle.path is None:
            raise HandleError(f"handle {handle.id} has no content")
        return handle.path.read_bytes()

    def open(self, handle: Handle) -> BinaryIO:
        """Stream the blob instead of loading a large upload into memory."""
        if handle.path is not None and not handle.revoked:
            return handle.path.open("rb")
        return io.BytesIO(self.read(handle))

    def revoke(self, handle: Handle) -> None:
        if handle.revoked or self._live.pop(handle.id, None) is None:
            raise HandleError(f"handle {handle.id} revoked twice")
        handle.revoked = True
        handle.data = None
        self.released += 1
        blob_handles_open.dec()
        if handle.path is not None and handle.owns_path:
            try:
                handle.path.unlink()
            except FileNotFoundError:
                logger.warning("Spooled file %s already gone", handle.path)

    @property
    def live(self) -> int:
        return len(self._live)

    def revoke_all(self) -> int:
        """Release everything still live. Returns how many were released."""
        count = 0
        for handle in list(self._live.values()):
            self.revoke(handle)
            count += 1
        return count


__all__ = ["Handle", "HandleRegistry"]
