"""Tests for disruption budgets of HA volumes."""
import pytest

from strata.models.budget import DisruptionBudget
from strata.models.keys import CLUSTER_LABEL, DISRUPTION_BUDGET_LABEL
from strata.models.volume import VolumeConfig
from strata.volume.budget import (
    budget_pools,
    delete_budget_if_not_in_use,
    get_or_create_budget,
    is_ha,
    protects,
    update_budget_for_scaled_volume,
)


class TestIsHA:
    @pytest.mark.parametrize("replicas,expected", [(1, False), (2, False), (3, True), (5, True)])
    def test_requested_replicas_before_placement(self, add_volume_config, replicas, expected):
        assert is_ha(add_volume_config(replica_count=replicas)) is expected

    def test_confirmed_pools_take_precedence(self, add_volume_config):
        vc = add_volume_config(replica_count=3)
        vc.status.pool_info = ["pool-1", "pool-2"]

        assert is_ha(vc) is False


class TestBudgets:
    def test_selector_covers_exactly_the_pools(self, store):
        budget = get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3"])

        assert budget.name.startswith("cluster-a-")
        assert budget.labels[CLUSTER_LABEL] == "cluster-a"
        assert budget.spec.max_unavailable == 1
        assert sorted(budget_pools(budget)) == ["pool-1", "pool-2", "pool-3"]
        assert protects(budget, "pool-2")
        assert not protects(budget, "pool-4")

    def test_same_pool_set_is_shared(self, store):
        first = get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3"])
        second = get_or_create_budget(store, "cluster-a", ["pool-3", "pool-1", "pool-2"])

        assert second.name == first.name
        assert len(store.list(DisruptionBudget)) == 1

    def test_superset_gets_its_own_budget(self, store):
        """A budget for more pools does not satisfy a request for fewer."""
        wide = get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3", "pool-4"])
        narrow = get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3"])

        assert narrow.name != wide.name
        assert len(store.list(DisruptionBudget)) == 2


class TestBudgetCleanup:
    def _label(self, store, vc, budget_name):
        vc.metadata.labels[DISRUPTION_BUDGET_LABEL] = budget_name
        return store.update(vc)

    def test_last_user_deletes_budget(self, store, add_volume_config):
        budget = get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3"])
        vc = self._label(store, add_volume_config("vol-1"), budget.name)

        delete_budget_if_not_in_use(store, vc)

        assert store.list(DisruptionBudget) == []

    def test_shared_budget_is_kept(self, store, add_volume_config):
        budget = get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3"])
        vc = self._label(store, add_volume_config("vol-1"), budget.name)
        self._label(store, add_volume_config("vol-2"), budget.name)

        delete_budget_if_not_in_use(store, vc)

        assert [b.name for b in store.list(DisruptionBudget)] == [budget.name]

    def test_unlabelled_volume_is_a_no_op(self, store, add_volume_config):
        get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3"])

        delete_budget_if_not_in_use(store, add_volume_config())

        assert len(store.list(DisruptionBudget)) == 1

    def test_scaled_volume_moves_to_matching_budget(self, store, add_volume_config):
        old = get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3"])
        vc = self._label(store, add_volume_config("vol-1"), old.name)
        vc.status.pool_info = ["pool-1", "pool-2", "pool-3", "pool-4"]

        vc = update_budget_for_scaled_volume(store, vc)

        budgets = store.list(DisruptionBudget)
        assert len(budgets) == 1
        assert budgets[0].name != old.name
        assert vc.labels[DISRUPTION_BUDGET_LABEL] == budgets[0].name
        assert sorted(budget_pools(budgets[0])) == ["pool-1", "pool-2", "pool-3", "pool-4"]

    def test_scaled_below_ha_drops_label(self, store, add_volume_config):
        old = get_or_create_budget(store, "cluster-a", ["pool-1", "pool-2", "pool-3"])
        vc = self._label(store, add_volume_config("vol-1"), old.name)
        vc.status.pool_info = ["pool-1", "pool-2"]

        vc = update_budget_for_scaled_volume(store, vc)

        assert DISRUPTION_BUDGET_LABEL not in vc.labels
        assert store.list(DisruptionBudget) == []
        assert DISRUPTION_BUDGET_LABEL not in store.get(VolumeConfig, "vol-1").labels
