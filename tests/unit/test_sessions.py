import pytest

from seekguard.runtime.sessions import ClientSession, InMemorySessionStore, LruSessionStore, identify


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_identify_prefers_authorization_header():
    a = identify(authorization="Bearer abc", signed_token="zzz", host="10.0.0.1")
    b = identify(authorization="Bearer abc", host="10.0.0.2")
    assert a == b
    assert len(a) == 64


def test_identify_falls_back_to_signed_token_then_host():
    assert identify(signed_token="t1", host="10.0.0.1") == identify(signed_token="t1", host="10.0.0.9")
    assert identify(host="10.0.0.1") == identify(host="10.0.0.1")
    assert identify(host="10.0.0.1") != identify(host="10.0.0.2")
    assert identify() == identify(host="unknown")


def test_distinct_credentials_are_distinct_identities():
    assert identify(authorization="Bearer a") != identify(authorization="Bearer b")


def test_unseen_identity_reads_offset_zero():
    store = InMemorySessionStore()
    session = store.get(identify(host="1.2.3.4"))
    assert session.last_offset == 0
    assert not session.completed
    assert session.resume_offset == 0
    assert len(store) == 0


def test_record_completion_isolated_per_identity():
    store = InMemorySessionStore()
    a, b = identify(host="a"), identify(host="b")
    store.record_completion(a, 4999)

    assert store.get(a) == ClientSession(a, 4999, completed=True)
    assert store.get(a).resume_offset == 5000
    assert store.get(b).last_offset == 0


def test_last_writer_wins_for_same_identity():
    store = InMemorySessionStore()
    a = identify(host="a")
    store.record_completion(a, 100)
    store.record_completion(a, 50)
    assert store.get(a).last_offset == 50


def test_lru_store_evicts_least_recently_recorded():
    store = LruSessionStore(max_clients=2, ttl_seconds=1000, clock=FakeClock())
    a, b, c = identify(host="a"), identify(host="b"), identify(host="c")
    store.record_completion(a, 1)
    store.record_completion(b, 2)
    store.record_completion(a, 3)
    store.record_completion(c, 4)

    assert len(store) == 2
    assert store.get(a).last_offset == 3
    assert store.get(b).last_offset == 0
    assert store.get(c).last_offset == 4


def test_lru_store_expires_idle_identities():
    clock = FakeClock()
    store = LruSessionStore(max_clients=10, ttl_seconds=60, clock=clock)
    a = identify(host="a")
    store.record_completion(a, 999)

    clock.now = 59
    assert store.get(a).last_offset == 999

    clock.now = 61
    assert store.get(a) == ClientSession(a)
    assert len(store) == 0


def test_lru_store_reads_count_as_use():
    store = LruSessionStore(max_clients=2, ttl_seconds=1000, clock=FakeClock())
    a, b, c = identify(host="a"), identify(host="b"), identify(host="c")
    store.record_completion(a, 1)
    store.record_completion(b, 2)
    assert store.get(a).last_offset == 1
    store.record_completion(c, 3)

    assert store.get(a).completed
    assert not store.get(b).completed
    assert store.get(c).last_offset == 3


def test_lru_store_len_drops_expired_identities():
    clock = FakeClock()
    store = LruSessionStore(max_clients=10, ttl_seconds=60, clock=clock)
    store.record_completion(identify(host="a"), 1)
    clock.now = 30
    store.record_completion(identify(host="b"), 2)

    clock.now = 61
    assert len(store) == 1


def test_lru_store_rejects_non_positive_size():
    with pytest.raises(ValueError):
        LruSessionStore(max_clients=0)
