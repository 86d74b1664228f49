from __future__ import annotations

import asyncio
import json
import logging
import math
from typing import Dict, Mapping, Optional, Protocol, Tuple

from cachetools import LRUCache

from seekguard.services.resource_service import ResourceHandle

DEFAULT_BYTES_PER_SEC = 1_000_000.0


class BitrateEstimator(Protocol):
    async def estimate(self, resource: ResourceHandle) -> float:
        ...


class FixedBitrateEstimator:
    """
    Constant bytes-per-second estimate, optionally overridden per resource name.
    """

    def __init__(
        self,
        fallback: float = DEFAULT_BYTES_PER_SEC,
        overrides: Optional[Mapping[str, float]] = None,
    ):
        if not (math.isfinite(fallback) and fallback > 0):
            raise ValueError("fallback bitrate must be positive and finite")
        self.fallback = fallback
        self.overrides: Dict[str, float] = dict(overrides or {})

    async def estimate(self, resource: ResourceHandle) -> float:
        return self.overrides.get(resource.name, self.fallback)


class FfprobeBitrateEstimator:
    """
    Estimates size / duration using ffprobe's container duration.

    Results are cached per (path, mtime, size) for the `cache_size` most recently
    probed files; any probe failure yields the fallback.
    """
    PROBE_TIMEOUT_S = 15

    def __init__(
        self,
        *,
        ffprobe_bin: str = "ffprobe",
        fallback: float = DEFAULT_BYTES_PER_SEC,
        cache_size: int = 1024,
    ):
        self.ffprobe_bin = ffprobe_bin
        self.fallback = fallback
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._cache: LRUCache[Tuple[str, float, int], float] = LRUCache(maxsize=cache_size)

    async def estimate(self, resource: ResourceHandle) -> float:
        key = (str(resource.path), resource.mtime, resource.size)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        duration_s = await self._probe_duration(resource)
        if duration_s is None or resource.size <= 0:
            return self.fallback

        bitrate = resource.size / duration_s
        self._cache[key] = bitrate
        return bitrate

    async def _probe_duration(self, resource: ResourceHandle) -> float | None:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.ffprobe_bin, "-v", "quiet", "-print_format", "json", "-show_format", str(resource.path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            self.logger.warning("ffprobe unavailable (%s); using fallback bitrate", e)
            return None

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.PROBE_TIMEOUT_S)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            self.logger.warning("ffprobe timed out on %s", resource.name)
            return None

        if proc.returncode != 0:
            self.logger.warning("ffprobe exited %s on %s", proc.returncode, resource.name)
            return None

        try:
            duration_s = float(json.loads(stdout).get("format", {}).get("duration"))
        except (ValueError, TypeError, AttributeError):
            self.logger.warning("ffprobe reported no usable duration for %s", resource.name)
            return None

        if math.isfinite(duration_s) and duration_s > 0:
            return duration_s
        return None
