from pathlib import Path
from typing import Any, Callable

import pytest

from seekguard.runtime.sessions import InMemorySessionStore
from seekguard.services.authorization import PresenceAuthorizationChecker
from seekguard.services.bitrate import FixedBitrateEstimator
from seekguard.services.resource_service import ResourceService
from seekguard.services.streaming_engine import RangeStreamingEngine
from seekguard.services.throttle import SeekThrottlePolicy

# 1000 bytes per second of content keeps jump arithmetic readable.
BITRATE = 1000.0
VIDEO_SIZE = 50_000


class RecordingTimer:
    """Stands in for the real timer: records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[int] = []

    async def wait(self, delay_ms: int, receive: Any) -> None:
        self.delays.append(delay_ms)


@pytest.fixture
def video_dir(tmp_path: Path) -> Path:
    root = tmp_path / "videos"
    root.mkdir()
    (root / "clip.mp4").write_bytes(bytes(i % 251 for i in range(VIDEO_SIZE)))
    (root / "small.webm").write_bytes(b"x" * 1000)
    (root / "empty.mp4").write_bytes(b"")
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return root


@pytest.fixture
def timer() -> RecordingTimer:
    return RecordingTimer()


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def make_engine(video_dir: Path, timer: RecordingTimer, sessions: InMemorySessionStore) -> Callable[..., RangeStreamingEngine]:
    def _make(**overrides: Any) -> RangeStreamingEngine:
        kwargs: dict[str, Any] = dict(
            resources=ResourceService(video_dir),
            sessions=sessions,
            authorizer=PresenceAuthorizationChecker(auth_required=True),
            bitrate=FixedBitrateEstimator(BITRATE),
            policy=SeekThrottlePolicy(delay_ms_per_second_jump=500, max_delay_ms=10_000),
            timer=timer,
            chunk_size=4096,
        )
        kwargs.update(overrides)
        return RangeStreamingEngine(**kwargs)

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., RangeStreamingEngine]) -> RangeStreamingEngine:
    return make_engine()


@pytest.fixture
def app(engine: RangeStreamingEngine, tmp_path: Path) -> Any:
    from seekguard.core import Settings
    from seekguard.main import create_app

    cfg = Settings(PUBLIC_DIR=str(tmp_path / "no-public"))
    return create_app(cfg, engine=engine)
