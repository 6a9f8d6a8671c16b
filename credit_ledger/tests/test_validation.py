import pytest

from credit_ledger.db import open_kv
from credit_ledger.errors import InvalidBatchSize, InvalidUri
from credit_ledger.state import BurnRegistry, CreditStore, WriteJournal
from credit_ledger.validation import (is_burned, is_owner, is_valid_metadata,
                                      is_valid_uri, require_batch_size,
                                      require_valid_metadata,
                                      require_valid_uri)


@pytest.fixture()
def tables():
    kv = open_kv("memory://")
    j = WriteJournal(kv)
    yield CreditStore(j), BurnRegistry(j), j
    kv.close()


# -----------------------------------------------------------------------------
# is_valid_uri
# -----------------------------------------------------------------------------


@pytest.mark.parametrize(
    "s, ok",
    [
        ("", False),
        ("a", True),
        ("ipfs://a", True),
        ("x" * 256, True),
        ("x" * 257, False),
        ("   ", True),  # no charset rule
        ("ü" * 256, True),  # characters, not bytes
        (None, False),
        (b"ipfs://a", False),
        (42, False),
        ("ipfs://\ud800", False),  # lone surrogate, not storable
    ],
)
def test_is_valid_uri_bounds(s, ok):
    assert is_valid_uri(s) is ok


def test_is_valid_uri_custom_limit():
    assert is_valid_uri("abcd", max_len=4)
    assert not is_valid_uri("abcde", max_len=4)


def test_require_valid_uri_raises_with_context():
    with pytest.raises(InvalidUri) as ei:
        require_valid_uri("x" * 300)
    assert ei.value.ctx == {"length": 300, "max_len": 256}
    assert require_valid_uri("ipfs://ok") == "ipfs://ok"


def test_require_valid_uri_non_string_has_no_length():
    with pytest.raises(InvalidUri) as ei:
        require_valid_uri(None)
    assert "length" not in ei.value.ctx


def test_require_valid_uri_unencodable():
    with pytest.raises(InvalidUri) as ei:
        require_valid_uri("a\udfff")
    assert ei.value.ctx == {"length": 2, "max_len": 256}
    assert "UTF-8" in ei.value.msg


# -----------------------------------------------------------------------------
# metadata
# -----------------------------------------------------------------------------


@pytest.mark.parametrize(
    "s, ok",
    [
        ("", True),
        ("m" * 256, True),
        ("m" * 257, False),
        ("\ud800", False),
        (None, False),
    ],
)
def test_is_valid_metadata(s, ok):
    assert is_valid_metadata(s) is ok


def test_require_valid_metadata():
    assert require_valid_metadata("") == ""
    with pytest.raises(InvalidUri) as ei:
        require_valid_metadata("m" * 300)
    assert ei.value.ctx == {"length": 300, "max_len": 256}


# -----------------------------------------------------------------------------
# is_burned / is_owner
# -----------------------------------------------------------------------------


def test_is_burned_defaults_false_and_reads_flag(tables):
    store, burns, j = tables
    assert is_burned(burns, 1) is False
    assert is_burned(burns, 10**30) is False
    with j.transaction():
        burns.mark(1)
    assert is_burned(burns, 1) is True


def test_is_owner_never_raises(tables):
    store, burns, j = tables
    assert is_owner(store, 1, "acct:a") is False
    assert is_owner(store, -5, "acct:a") is False
    assert is_owner(store, "1", "acct:a") is False
    with j.transaction():
        store.set_owner(1, "acct:a")
    assert is_owner(store, 1, "acct:a") is True
    assert is_owner(store, 1, "acct:b") is False
    with j.transaction():
        store.clear_owner(1)
    assert is_owner(store, 1, "acct:a") is False


# -----------------------------------------------------------------------------
# require_batch_size
# -----------------------------------------------------------------------------


@pytest.mark.parametrize("n", [0, 51, 100])
def test_batch_size_rejects(n):
    with pytest.raises(InvalidBatchSize) as ei:
        require_batch_size([None] * n)
    assert ei.value.ctx["size"] == n
    assert ei.value.ctx["max_size"] == 50


@pytest.mark.parametrize("n", [1, 25, 50])
def test_batch_size_accepts(n):
    assert require_batch_size([None] * n) == n


def test_batch_size_custom_cap():
    assert require_batch_size([1, 2, 3], max_size=3) == 3
    with pytest.raises(InvalidBatchSize):
        require_batch_size([1, 2, 3, 4], max_size=3)
