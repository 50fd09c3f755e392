"""Test the checkout idempotency store."""
from datetime import timedelta

from core.resilience.idempotency import IdempotencyStore, SubmissionState, checkout_key


def test_key_scoped_to_store():
    assert checkout_key("s1", "abc") == checkout_key("s1", " abc ")
    assert checkout_key("s1", "abc") != checkout_key("s2", "abc")
    assert len(checkout_key("s1", "abc")) == 32


def test_claim_then_finish():
    store = IdempotencyStore()
    assert store.claim("k", "s1") is not None
    assert store.claim("k", "s1") is None
    assert not store.lookup("k").replayable

    store.finish("k", {"id": "order-1"})
    submission = store.lookup("k")
    assert submission.state == SubmissionState.DONE
    assert submission.replayable
    assert submission.order == {"id": "order-1"}


def test_release_frees_key():
    store = IdempotencyStore()
    store.claim("k", "s1")
    store.release("k")
    assert store.lookup("k") is None
    assert store.claim("k", "s1") is not None


def test_expired_submissions_purged():
    store = IdempotencyStore()
    store.claim("old", "s1", ttl=timedelta(seconds=-1))
    store.claim("new", "s1")
    assert store.purge_expired() == 1
    assert len(store) == 1
    assert store.lookup("new") is not None


def test_expired_key_can_be_claimed_again():
    store = IdempotencyStore(ttl_seconds=0)
    store.claim("k", "s1")
    assert store.claim("k", "s1") is not None
