"""
Tests for the resource collection reducer.
"""
from dataclasses import replace
from decimal import Decimal

import pytest

from storefront_sync.models.errors import NetworkError
from storefront_sync.models.items import ItemStatus, ResourceCollection, ResourceItem
from storefront_sync.reducers.collection import (
    EMPTY,
    Cleared,
    ErrorCleared,
    LoadFailed,
    Loaded,
    LoadStarted,
    MutationFailed,
    OptimisticAdd,
    OptimisticRemove,
    OptimisticUpdate,
    Reconciled,
    RolledBack,
    adopt_local_ids,
    reduce,
)


def confirmed(local_id, product_id, server_id, quantity=1, price="10"):
    return ResourceItem(
        local_id=local_id,
        product_id=product_id,
        quantity=quantity,
        unit_price=Decimal(price),
        server_id=server_id,
    )


@pytest.fixture
def two_lines() -> ResourceCollection:
    return ResourceCollection(items=(confirmed("a", "p1", "1", 2), confirmed("b", "p2", "2", 1)))


class TestLoading:
    """Tests for load actions."""

    def test_load_started_sets_flag_and_clears_error(self):
        state = replace(EMPTY, last_error=NetworkError())
        state = reduce(state, LoadStarted())
        assert state.is_loading is True
        assert state.last_error is None

    def test_loaded_replaces_items(self, two_lines):
        """A fetch result is authoritative and drops optimistic lines."""
        pending = ResourceItem("tmp", "p9", status=ItemStatus.PENDING_ADD)
        state = reduce(two_lines, OptimisticAdd(pending))
        state = reduce(state, Loaded((confirmed("x", "p1", "1", 5),)))
        assert [i.product_id for i in state.items] == ["p1"]
        assert state.items[0].local_id == "a"
        assert state.is_loading is False

    def test_load_failed_records_error(self):
        error = NetworkError()
        state = reduce(reduce(EMPTY, LoadStarted()), LoadFailed(error))
        assert state.is_loading is False
        assert state.last_error is error


class TestOptimisticActions:
    """Tests for optimistic writes."""

    def test_add_appends(self, two_lines):
        item = ResourceItem("c", "p3", status=ItemStatus.PENDING_ADD, unit_price=Decimal("4"))
        state = reduce(two_lines, OptimisticAdd(item))
        assert state.items[-1] is item
        assert state.total == Decimal("34")

    def test_update_replaces_in_place(self, two_lines):
        updated = replace(two_lines.items[0], quantity=7, status=ItemStatus.PENDING_UPDATE)
        state = reduce(two_lines, OptimisticUpdate(updated))
        assert state.items[0] == updated
        assert state.index_of("a") == 0

    def test_update_of_missing_item_is_noop(self, two_lines):
        assert reduce(two_lines, OptimisticUpdate(confirmed("zz", "p9", "9"))) is two_lines

    def test_remove_marks_in_place(self, two_lines):
        """A removed line stays where it was, excluded from the total."""
        state = reduce(two_lines, OptimisticRemove("a"))
        assert state.items[0].status == ItemStatus.PENDING_REMOVE
        assert state.total == Decimal("10")

    def test_remove_of_missing_item_is_noop(self, two_lines):
        assert reduce(two_lines, OptimisticRemove("zz")) is two_lines


class TestRollback:
    """Tests for RolledBack."""

    def test_rollback_of_add_drops_item(self, two_lines):
        item = ResourceItem("c", "p3", status=ItemStatus.PENDING_ADD)
        state = reduce(two_lines, OptimisticAdd(item))
        state = reduce(state, RolledBack("c", None, item))
        assert state.items == two_lines.items

    def test_rollback_of_remove_restores_original_index(self, two_lines):
        """A failed remove puts the line back at the index it had."""
        state = reduce(two_lines, OptimisticRemove("a"))
        state = reduce(state, RolledBack("a", two_lines.items[0], state.items[0]))
        assert state.items == two_lines.items

    def test_rollback_after_newer_edit_is_noop(self, two_lines):
        first = replace(two_lines.items[0], quantity=5, status=ItemStatus.PENDING_UPDATE)
        second = replace(two_lines.items[0], quantity=9, status=ItemStatus.PENDING_UPDATE)
        state = reduce(reduce(two_lines, OptimisticUpdate(first)), OptimisticUpdate(second))
        assert reduce(state, RolledBack("a", two_lines.items[0], first)) is state

    def test_rollback_after_reconcile_keeps_server_truth(self, two_lines):
        item = ResourceItem("c", "p3", status=ItemStatus.PENDING_ADD)
        state = reduce(two_lines, OptimisticAdd(item))
        state = reduce(state, Reconciled(two_lines.items + (confirmed("srv", "p3", "3"),)))
        after = reduce(state, RolledBack("c", None, item))
        assert after is state
        assert after.find("c").server_id == "3"

    def test_rollback_of_missing_item_is_noop(self, two_lines):
        assert reduce(two_lines, RolledBack("zz", None)) is two_lines


class TestReconcile:
    """Tests for Reconciled and adopt_local_ids."""

    def test_reconcile_is_wholesale(self, two_lines):
        """Lines the server does not return are gone afterwards."""
        state = reduce(two_lines, Reconciled((confirmed("new", "p1", "1", 3),)))
        assert len(state.items) == 1
        assert state.items[0].local_id == "a"
        assert state.items[0].quantity == 3

    def test_reconcile_clears_error(self, two_lines):
        state = reduce(two_lines, MutationFailed(NetworkError()))
        state = reduce(state, Reconciled(two_lines.items))
        assert state.last_error is None

    def test_adopts_pending_add_by_key(self):
        pending = ResourceItem("tmp", "p3", variant_id="v", status=ItemStatus.PENDING_ADD)
        adopted = adopt_local_ids((pending,), (replace(confirmed("srv", "p3", "7"), variant_id="v"),))
        assert adopted[0].local_id == "tmp"
        assert adopted[0].server_id == "7"

    def test_does_not_adopt_across_variants(self):
        pending = ResourceItem("tmp", "p3", variant_id="v1", status=ItemStatus.PENDING_ADD)
        adopted = adopt_local_ids((pending,), (replace(confirmed("srv", "p3", "7"), variant_id="v2"),))
        assert adopted[0].local_id == "srv"

    def test_each_local_id_used_once(self):
        current = (confirmed("a", "p1", "1"),)
        incoming = (confirmed("x", "p1", "1"), confirmed("y", "p1", "1"))
        adopted = adopt_local_ids(current, incoming)
        assert [i.local_id for i in adopted] == ["a", "y"]


class TestMisc:
    def test_cleared_returns_empty(self, two_lines):
        assert reduce(two_lines, Cleared()) == EMPTY

    def test_error_cleared(self):
        state = reduce(EMPTY, MutationFailed(NetworkError()))
        assert reduce(state, ErrorCleared()).last_error is None

    def test_unknown_action_raises(self):
        with pytest.raises(TypeError):
            reduce(EMPTY, object())
