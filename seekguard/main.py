from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from seekguard.api.video import router as video_router
from seekguard.core import Settings, settings as default_settings
from seekguard.core.logging_config import setup_logging
from seekguard.runtime.sessions import InMemorySessionStore, LruSessionStore, SessionStore
from seekguard.services.authorization import AuthorizationChecker, HmacTokenChecker, PresenceAuthorizationChecker
from seekguard.services.bitrate import BitrateEstimator, FfprobeBitrateEstimator, FixedBitrateEstimator
from seekguard.services.resource_service import ResourceService
from seekguard.services.streaming_engine import RangeStreamingEngine
from seekguard.services.throttle import SeekThrottlePolicy

logger = logging.getLogger(__name__)


def build_authorizer(cfg: Settings) -> AuthorizationChecker:
    if cfg.AUTH_POLICY == "hmac":
        return HmacTokenChecker(cfg.TOKEN_SECRET, auth_required=cfg.AUTH_REQUIRED)
    if cfg.AUTH_POLICY == "presence":
        return PresenceAuthorizationChecker(auth_required=cfg.AUTH_REQUIRED)
    raise ValueError(f"unknown AUTH_POLICY {cfg.AUTH_POLICY!r}")


def build_bitrate_estimator(cfg: Settings) -> BitrateEstimator:
    if cfg.BITRATE_PROBE == "ffprobe":
        return FfprobeBitrateEstimator(ffprobe_bin=cfg.FFPROBE_BIN, fallback=cfg.FALLBACK_BYTES_PER_SEC)
    if cfg.BITRATE_PROBE == "fixed":
        return FixedBitrateEstimator(cfg.FALLBACK_BYTES_PER_SEC)
    raise ValueError(f"unknown BITRATE_PROBE {cfg.BITRATE_PROBE!r}")


def build_session_store(cfg: Settings) -> SessionStore:
    if cfg.SESSION_STORE == "lru":
        return LruSessionStore(max_clients=cfg.SESSION_MAX_CLIENTS, ttl_seconds=cfg.SESSION_TTL_SECONDS)
    if cfg.SESSION_STORE == "memory":
        return InMemorySessionStore()
    raise ValueError(f"unknown SESSION_STORE {cfg.SESSION_STORE!r}")


def build_engine(cfg: Settings) -> RangeStreamingEngine:
    return RangeStreamingEngine(
        resources=ResourceService(cfg.VIDEO_DIR),
        sessions=build_session_store(cfg),
        authorizer=build_authorizer(cfg),
        bitrate=build_bitrate_estimator(cfg),
        policy=SeekThrottlePolicy(
            delay_ms_per_second_jump=cfg.DELAY_MS_PER_SECOND_JUMP,
            max_delay_ms=cfg.MAX_DELAY_MS,
        ),
        chunk_size=cfg.STREAM_CHUNK_SIZE,
        token_param=cfg.TOKEN_QUERY_PARAM,
    )


def create_app(cfg: Optional[Settings] = None, *, engine: Optional[RangeStreamingEngine] = None) -> FastAPI:
    cfg = cfg or default_settings

    app = FastAPI(title="seekguard", version="0.1.0")
    app.state.engine = engine or build_engine(cfg)
    app.include_router(video_router, prefix=cfg.VIDEO_BASE_URL, tags=["video"])

    # Static assets last so they never shadow the video route.
    if Path(cfg.PUBLIC_DIR).is_dir():
        app.mount("/", StaticFiles(directory=cfg.PUBLIC_DIR, html=True), name="public")

    return app


app = create_app()


def run() -> None:
    import uvicorn

    setup_logging(default_settings.LOG_LEVEL)
    logger.info("Video server listening on http://%s:%s", default_settings.HOST, default_settings.PORT)
    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT, log_level=default_settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
