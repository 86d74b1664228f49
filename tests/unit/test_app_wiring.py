import pytest

from seekguard.core import Settings
from seekguard.main import build_authorizer, build_bitrate_estimator, build_engine, build_session_store
from seekguard.runtime.sessions import InMemorySessionStore, LruSessionStore
from seekguard.services.authorization import HmacTokenChecker, PresenceAuthorizationChecker
from seekguard.services.bitrate import FfprobeBitrateEstimator, FixedBitrateEstimator


def test_defaults_match_documented_constants():
    cfg = Settings(_env_file=None)
    assert cfg.DELAY_MS_PER_SECOND_JUMP == 500
    assert cfg.MAX_DELAY_MS == 10_000
    assert cfg.AUTH_REQUIRED is True
    assert cfg.PORT == 3000


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("MAX_DELAY_MS", "2500")
    monkeypatch.setenv("AUTH_REQUIRED", "false")
    cfg = Settings(_env_file=None)
    assert cfg.MAX_DELAY_MS == 2500
    assert cfg.AUTH_REQUIRED is False


def test_build_authorizer():
    presence = build_authorizer(Settings(_env_file=None, AUTH_REQUIRED=False))
    assert isinstance(presence, PresenceAuthorizationChecker)
    assert presence.auth_required is False

    hmac_checker = build_authorizer(Settings(_env_file=None, AUTH_POLICY="hmac", TOKEN_SECRET="k"))
    assert isinstance(hmac_checker, HmacTokenChecker)

    with pytest.raises(ValueError):
        build_authorizer(Settings(_env_file=None, AUTH_POLICY="hmac", TOKEN_SECRET=""))
    with pytest.raises(ValueError):
        build_authorizer(Settings(_env_file=None, AUTH_POLICY="jwt"))


def test_build_bitrate_estimator():
    assert isinstance(build_bitrate_estimator(Settings(_env_file=None)), FixedBitrateEstimator)
    probe = build_bitrate_estimator(Settings(_env_file=None, BITRATE_PROBE="ffprobe", FFPROBE_BIN="/opt/ffprobe"))
    assert isinstance(probe, FfprobeBitrateEstimator)
    assert probe.ffprobe_bin == "/opt/ffprobe"


def test_build_session_store():
    assert isinstance(build_session_store(Settings(_env_file=None)), InMemorySessionStore)
    lru = build_session_store(Settings(_env_file=None, SESSION_STORE="lru", SESSION_MAX_CLIENTS=5))
    assert isinstance(lru, LruSessionStore)
    assert lru.max_clients == 5


def test_build_engine_applies_policy_constants(tmp_path):
    engine = build_engine(
        Settings(_env_file=None, VIDEO_DIR=str(tmp_path), DELAY_MS_PER_SECOND_JUMP=100, MAX_DELAY_MS=700)
    )
    assert engine.policy.delay_ms_per_second_jump == 100
    assert engine.policy.max_delay_ms == 700
    assert engine.resources.root == tmp_path.resolve()
