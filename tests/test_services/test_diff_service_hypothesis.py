"""Property-based tests for block diff invariants."""

from __future__ import annotations

import string

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from blocksync.services.diff_service import compute_block_diff

PROPERTY_SETTINGS = settings(
    max_examples=250,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

_UID = st.text(alphabet=string.digits, min_size=1, max_size=20)
_BLOCK_LIST = st.lists(_UID, max_size=30)


class TestBlockDiffProperties:
    @PROPERTY_SETTINGS
    @given(previous=_BLOCK_LIST, current=_BLOCK_LIST)
    def test_added_and_removed_are_disjoint(self, previous: list[str], current: list[str]) -> None:
        diff = compute_block_diff(previous, current)
        assert diff.added.isdisjoint(diff.removed)

    @PROPERTY_SETTINGS
    @given(previous=_BLOCK_LIST, current=_BLOCK_LIST)
    def test_diff_is_antisymmetric(self, previous: list[str], current: list[str]) -> None:
        forward = compute_block_diff(previous, current)
        backward = compute_block_diff(current, previous)
        assert forward.added == backward.removed
        assert forward.removed == backward.added

    @PROPERTY_SETTINGS
    @given(previous=_BLOCK_LIST, current=_BLOCK_LIST)
    def test_applying_diff_reconstructs_current(
        self, previous: list[str], current: list[str]
    ) -> None:
        diff = compute_block_diff(previous, current)
        assert (set(previous) - diff.removed) | diff.added == set(current)

    @PROPERTY_SETTINGS
    @given(uids=_BLOCK_LIST, duplicates=_BLOCK_LIST)
    def test_duplicates_never_change_the_diff(self, uids: list[str], duplicates: list[str]) -> None:
        repeated = uids + [uid for uid in duplicates if uid in uids]
        assert compute_block_diff(uids, repeated).is_empty
