"""
credit_ledger.query — read-only views over the credit tables.

No method here mutates state or checks authorization.

Direct lookups (`get_uri`, `get_owner`, `get_metadata`, `exists`) tolerate any
id, including ids that were never minted or are out of range.

Range projections (`paginate`, `list_all_*`) are fail-fast: each id in the
range is projected through `detail()`, which requires the credit to exist, so
a single never-minted id aborts the whole query with `TokenNotFound` and no
partial list is returned. `paginate_results` is the hardened alternative that
reports one `ItemResult` per id instead.

Under normal sequencing the minted ids are exactly 1..next_id-1, so the
fail-fast path only triggers when a caller pages past the end.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .config import DEFAULT_MAX_PAGE
from .errors import TokenNotFound
from .state.store import BurnRegistry, CreditStore, MetadataStore
from .types import CreditDetail, ItemResult


class CreditQuery:
    def __init__(
        self,
        store: CreditStore,
        burns: BurnRegistry,
        metadata: MetadataStore,
        *,
        max_page_size: int = DEFAULT_MAX_PAGE,
    ) -> None:
        self._store = store
        self._burns = burns
        self._metadata = metadata
        self.max_page_size = max_page_size

    # ------------------------------------------------------------------
    # Direct lookups
    # ------------------------------------------------------------------

    def get_uri(self, credit_id: int) -> Optional[str]:
        return self._store.uri_of(credit_id)

    def get_owner(self, credit_id: int) -> Optional[str]:
        return self._store.owner_of(credit_id)

    def get_metadata(self, credit_id: int) -> Optional[str]:
        return self._metadata.get(credit_id)

    def next_id(self) -> int:
        return self._store.next_id()

    def exists(self, credit_id: int) -> bool:
        return self._store.has_uri(credit_id)

    def is_burned(self, credit_id: int) -> bool:
        return self._burns.is_burned(credit_id)

    def is_valid(self, credit_id: int) -> bool:
        """
        True for a live credit, False for a burned one.

        Raises:
            TokenNotFound: the id was never minted.
        """
        if not self.exists(credit_id):
            raise TokenNotFound(credit_id=credit_id)
        return not self._burns.is_burned(credit_id)

    def detail(self, credit_id: int) -> CreditDetail:
        uri = self._store.uri_of(credit_id)
        if uri is None:
            raise TokenNotFound(credit_id=credit_id)
        return CreditDetail(
            id=credit_id,
            owner=self._store.owner_of(credit_id),
            uri=uri,
            burned=self._burns.is_burned(credit_id),
            metadata=self._metadata.get(credit_id),
        )

    # ------------------------------------------------------------------
    # Range projections
    # ------------------------------------------------------------------

    def page_ids(self, start: int, count: int) -> List[int]:
        """`start .. start+count-1`, with count capped at `max_page_size`."""
        if count < 0:
            raise ValueError("count must be >= 0")
        count = min(count, self.max_page_size)
        return list(range(start, start + count))

    def paginate(self, start: int, count: int) -> List[CreditDetail]:
        """
        Detail records for `start .. start+count-1` (count capped).

        Raises:
            TokenNotFound: any id in the range was never minted. Nothing is returned.
        """
        return [self.detail(i) for i in self.page_ids(start, count)]

    def paginate_results(self, start: int, count: int) -> List[ItemResult]:
        out: List[ItemResult] = []
        for i in self.page_ids(start, count):
            try:
                out.append(ItemResult(id=i, detail=self.detail(i)))
            except TokenNotFound as e:
                out.append(ItemResult(id=i, error=e))
        return out

    def _all_details(self) -> List[CreditDetail]:
        return [self.detail(i) for i in range(1, self._store.next_id())]

    def list_all(self) -> List[CreditDetail]:
        return self._all_details()

    def list_all_uris(self) -> List[str]:
        return [d.uri for d in self._all_details()]

    def list_all_owners(self) -> List[Optional[str]]:
        return [d.owner for d in self._all_details()]

    def list_all_burn_status(self) -> List[bool]:
        return [d.burned for d in self._all_details()]

    def owned_by(self, account: str) -> List[int]:
        """Live credit ids held by `account`, ascending."""
        return [
            i for i in range(1, self._store.next_id())
            if self._store.owner_of(i) == account
        ]

    def stats(self) -> Dict[str, int]:
        minted = self._store.minted_count()
        burned = sum(1 for _ in self._burns.iter_burned_ids())
        return {"minted": minted, "burned": burned, "live": minted - burned, "next_id": self.next_id()}


__all__ = ["CreditQuery"]
