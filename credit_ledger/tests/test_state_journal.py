import pytest

from credit_ledger.db import open_kv
from credit_ledger.errors import LedgerStorageError
from credit_ledger.db.kv import K_NEXT_ID, URIS, be_u64
from credit_ledger.state import (BurnRegistry, CreditStore, MetadataStore,
                                 WriteJournal)


@pytest.fixture()
def kv():
    db = open_kv("memory://")
    yield db
    db.close()


def _seed(kv, *pairs):
    with kv.batch() as b:
        for k, v in pairs:
            b.put(k, v)


# ===================================================
# WriteJournal
# ===================================================


def test_writes_invisible_to_kv_until_outer_commit(kv):
    j = WriteJournal(kv)
    j.begin()
    j.put(b"a", b"1")
    assert j.get(b"a") == b"1"
    assert kv.get(b"a") is None
    j.commit()
    assert kv.get(b"a") == b"1"
    assert j.depth() == 0


def test_nested_revert_keeps_outer(kv):
    j = WriteJournal(kv)
    with j.transaction():
        j.put(b"a", b"1")
        with pytest.raises(ValueError):
            with j.transaction():
                j.put(b"a", b"2")
                j.put(b"b", b"2")
                raise ValueError("item failed")
        assert j.get(b"a") == b"1"
        assert j.get(b"b") is None
    assert kv.get(b"a") == b"1"
    assert kv.get(b"b") is None


def test_nested_commit_merges_down(kv):
    j = WriteJournal(kv)
    with j.transaction():
        with j.transaction():
            j.put(b"a", b"1")
        assert j.depth() == 1
        assert kv.get(b"a") is None
    assert kv.get(b"a") == b"1"


def test_outer_revert_discards_committed_inner(kv):
    j = WriteJournal(kv)
    with pytest.raises(KeyError):
        with j.transaction():
            with j.transaction():
                j.put(b"a", b"1")
            raise KeyError("call failed")
    assert kv.get(b"a") is None
    assert j.depth() == 0


def test_delete_overlays_kv(kv):
    _seed(kv, (b"a", b"1"))
    j = WriteJournal(kv)
    with j.transaction():
        j.delete(b"a")
        assert j.get(b"a") is None
        assert not j.has(b"a")
    assert kv.get(b"a") is None


def test_iter_prefix_merges_layers(kv):
    _seed(kv, (b"p:1", b"kv"), (b"p:2", b"kv"))
    j = WriteJournal(kv)
    j.begin()
    j.put(b"p:3", b"j")
    j.delete(b"p:1")
    j.begin()
    j.put(b"p:2", b"top")
    assert list(j.iter_prefix(b"p:")) == [(b"p:2", b"top"), (b"p:3", b"j")]
    j.revert()
    j.revert()


def test_write_outside_checkpoint_fails(kv):
    j = WriteJournal(kv)
    with pytest.raises(RuntimeError):
        j.put(b"a", b"1")
    with pytest.raises(RuntimeError):
        j.commit()
    with pytest.raises(RuntimeError):
        j.revert()


# ===================================================
# Stores
# ===================================================


def test_allocator_counts_from_one(kv):
    j = WriteJournal(kv)
    store = CreditStore(j)
    assert store.next_id() == 1
    with j.transaction():
        assert [store.allocate() for _ in range(3)] == [1, 2, 3]
    assert store.next_id() == 4
    assert store.minted_count() == 3


def test_iter_minted_and_burned_ids(kv):
    j = WriteJournal(kv)
    store, burns = CreditStore(j), BurnRegistry(j)
    with j.transaction():
        for cid in (1, 2, 3):
            store.set_uri(cid, f"u{cid}")
        burns.mark(2)
    assert list(store.iter_minted_ids()) == [1, 2, 3]
    assert list(burns.iter_burned_ids()) == [2]


def test_burn_flag_is_write_once(kv):
    j = WriteJournal(kv)
    burns = BurnRegistry(j)
    with j.transaction():
        assert burns.mark(5) is True
        assert burns.mark(5) is False
    assert burns.is_burned(5)
    assert not hasattr(burns, "unmark")


def test_out_of_range_ids(kv):
    j = WriteJournal(kv)
    store, meta = CreditStore(j), MetadataStore(j)
    assert store.owner_of(2**64) is None
    assert store.uri_of(True) is None
    assert meta.get(-1) is None
    with j.transaction():
        with pytest.raises(ValueError):
            store.set_owner(-1, "acct:a")
        with pytest.raises(ValueError):
            meta.set(2**64, "m")


def test_corrupt_values_raise_storage_error(kv):
    _seed(kv, (URIS.key(be_u64(1)), b"\xff\xfe"), (K_NEXT_ID, b"\x01"))
    store = CreditStore(WriteJournal(kv))
    with pytest.raises(LedgerStorageError) as ei:
        store.uri_of(1)
    assert ei.value.ctx["key"] == URIS.key(be_u64(1)).hex()
    with pytest.raises(LedgerStorageError):
        store.next_id()
