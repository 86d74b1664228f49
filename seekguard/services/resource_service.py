from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from mimetypes import guess_type
from pathlib import Path

import anyio

from seekguard.core.errors import NotFound

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "video/mp4"


@dataclass(frozen=True)
class ResourceHandle:
    """
    name: logical name from the URL (a single path segment)
    path: absolute filesystem path under the resource root
    size: total size in bytes at resolve time
    content_type: MIME type used for Content-Type
    mtime: modification time at resolve time
    """
    name: str
    path: Path
    size: int
    content_type: str
    mtime: float


class ResourceService:
    """
    Resolves logical video names to files under a fixed root.

    Nothing is cached: existence and size are re-checked on every resolve.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    async def resolve(self, name: str) -> ResourceHandle:
        path = self._safe_path(name)
        try:
            st = await anyio.to_thread.run_sync(os.stat, path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFound(name)
        if not stat.S_ISREG(st.st_mode):
            raise NotFound(name)

        return ResourceHandle(
            name=name,
            path=path,
            size=st.st_size,
            content_type=guess_type(name)[0] or DEFAULT_CONTENT_TYPE,
            mtime=st.st_mtime,
        )

    def _safe_path(self, name: str) -> Path:
        if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
            logger.warning("rejecting resource name %r", name)
            raise NotFound(name)
        target = (self.root / name).resolve()
        if not target.is_relative_to(self.root) or target == self.root:
            logger.warning("resource name %r resolves outside %s", name, self.root)
            raise NotFound(name)
        return target
