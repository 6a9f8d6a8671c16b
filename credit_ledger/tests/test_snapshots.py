import copy

import pytest

from credit_ledger.db import open_kv
from credit_ledger.errors import InvalidUri, LedgerConfigError, NotAuthorized
from credit_ledger.identity import StaticIdentity
from credit_ledger.ledger import CreditLedger

from .helpers import ADMIN, ALICE, BOB, give, mint_n


def _populate(ledger, ident):
    mint_n(ledger, ident, 4)
    give(ledger, ident, 2, ALICE)
    with ident.as_caller(ADMIN):
        ledger.add_metadata(1, "vintage 2024")
        ledger.burn(1)
    with ident.as_caller(ALICE):
        ledger.update_uri(2, "ipfs://alice")


def test_export_state_shape(ledger, ident):
    _populate(ledger, ident)
    snap = ledger.export_state()
    assert snap["format"] == 1
    assert snap["admin"] == ADMIN
    assert snap["next_id"] == 5
    assert snap["credits"][0] == {
        "id": 1,
        "owner": None,
        "uri": "ipfs://c1",
        "burned": True,
        "metadata": "vintage 2024",
    }
    assert snap["credits"][1]["owner"] == ALICE
    assert snap["credits"][1]["uri"] == "ipfs://alice"


def test_state_root_is_deterministic(ident):
    roots = []
    for _ in range(2):
        lg = CreditLedger.open("memory://", ADMIN, identity=ident)
        _populate(lg, ident)
        roots.append(lg.state_root())
        lg.close()
    assert roots[0] == roots[1]
    assert roots[0].startswith("0x") and len(roots[0]) == 66


def test_state_root_changes_with_state(ledger, ident):
    mint_n(ledger, ident, 1)
    r1 = ledger.state_root()
    with ident.as_caller(ADMIN):
        ledger.add_metadata(1, "m")
    assert ledger.state_root() != r1


def test_import_reproduces_state(ledger, ident):
    _populate(ledger, ident)
    snap = ledger.export_state()

    other = CreditLedger.open("memory://", ADMIN, identity=ident)
    try:
        with ident.as_caller(ADMIN):
            assert other.import_state(snap) == 4
        assert other.state_root() == ledger.state_root()
        assert other.query.get_owner(2) == ALICE
        assert other.query.is_burned(1)
        with ident.as_caller(ADMIN):
            assert other.mint("ipfs://next") == 5
    finally:
        other.close()


def test_import_rejections(ledger, ident):
    _populate(ledger, ident)
    snap = ledger.export_state()

    with ident.as_caller(ADMIN):
        with pytest.raises(LedgerConfigError):
            ledger.import_state(snap)  # not empty

    fresh = CreditLedger.open("memory://", ADMIN, identity=ident)
    try:
        with ident.as_caller(BOB):
            with pytest.raises(NotAuthorized):
                fresh.import_state(snap)

        foreign = dict(snap, admin="acct:other")
        with ident.as_caller(ADMIN):
            with pytest.raises(LedgerConfigError):
                fresh.import_state(foreign)

        for mutate in (
            lambda s: s.update(format=99),
            lambda s: s.update(next_id=9),
            lambda s: s["credits"][0].update(owner=ALICE),
            lambda s: s["credits"][1].update(owner=None),
            lambda s: s["credits"][2].update(uri=""),
            lambda s: s["credits"][3].update(id=7),
            lambda s: s["credits"][3].update(metadata="x" * 300),
        ):
            bad = copy.deepcopy(snap)
            mutate(bad)
            with ident.as_caller(ADMIN):
                with pytest.raises(ValueError):
                    fresh.import_state(bad)
        assert fresh.query.next_id() == 1
    finally:
        fresh.close()


# -----------------------------------------------------------------------------
# Administrator persistence
# -----------------------------------------------------------------------------


def test_admin_persisted_and_checked_on_reopen(tmp_path):
    uri = f"sqlite:///{tmp_path / 'ledger.db'}"
    ident = StaticIdentity(ADMIN)
    lg = CreditLedger.open(uri, ADMIN, identity=ident)
    lg.mint("ipfs://a")
    lg.close()

    again = CreditLedger.open(uri, None, identity=ident)
    assert again.admin == ADMIN
    assert again.query.get_owner(1) == ADMIN
    assert again.mint("ipfs://b") == 2
    again.close()

    with pytest.raises(LedgerConfigError):
        CreditLedger.open(uri, "acct:usurper", identity=ident)


def test_new_ledger_requires_admin(ident):
    with pytest.raises(LedgerConfigError):
        CreditLedger(open_kv("memory://"), None, identity=ident)
    with pytest.raises(ValueError):
        CreditLedger(open_kv("memory://"), "", identity=ident)


def test_open_rejects_bad_uri(ident):
    with pytest.raises(LedgerConfigError):
        CreditLedger.open("redis://localhost", ADMIN, identity=ident)


def test_failed_call_leaves_file_untouched(tmp_path):
    uri = f"sqlite:///{tmp_path / 'ledger.db'}"
    lg = CreditLedger.open(uri, ADMIN, identity=StaticIdentity(ADMIN))
    lg.mint("ipfs://a")
    root = lg.state_root()
    with pytest.raises(InvalidUri):
        lg.update_uri(1, "")
    assert lg.state_root() == root
    lg.close()
