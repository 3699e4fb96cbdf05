"""Tests for breadth-first tree induction."""

import numpy as np
import pytest

import karytree as kt


# =============================================================================
# Fixtures and helpers
# =============================================================================


@pytest.fixture
def regression_data():
    """Generate a smooth regression problem with 4 features."""
    rng = np.random.default_rng(42)
    X = rng.normal(size=(200, 4))
    y = X[:, 0] + 0.5 * X[:, 1] ** 2 - X[:, 2] + rng.normal(scale=0.1, size=200)
    return kt.ArrayDataset(X, y)


def fit_tree(data, k=2, splitter="best", seed=0, **options):
    options.setdefault("max_features", 2)
    tree = kt.KAryTree(k=k, splitter=splitter)
    return tree.fit(data, kt.TreeOptions(**options), np.random.default_rng(seed))


def leaf_index_sets(tree):
    return [node.indices for node in tree.nodes if node.is_leaf]


class LopsidedSplit(kt.SplitStrategy):
    """Sends the single smallest value of feature 0 to child 0, the rest to the last child."""

    name = "lopsided"

    def split(self, data, indices, features, k, rng):
        values = data.feature_values(indices, 0)
        thresholds = np.full(k - 1, np.sort(values)[0])
        return self._apply(data, indices, 0, thresholds, k)


class RecordingSplit(kt.BestSplit):
    """BestSplit that remembers the candidate features it was offered."""

    def __init__(self):
        self.calls = []

    def split(self, data, indices, features, k, rng):
        self.calls.append(list(features))
        return super().split(data, indices, features, k, rng)


class BrokenSplit(kt.SplitStrategy):
    """Returns one partition too few."""

    def split(self, data, indices, features, k, rng):
        return kt.Split(0, np.zeros(k - 1), [indices])


# =============================================================================
# Options
# =============================================================================


class TestTreeOptions:
    """Tests for TreeOptions."""

    def test_default_options(self):
        """Test default option values."""
        options = kt.TreeOptions()

        assert options.min_samples_to_split == 2
        assert options.min_samples_in_leaf == 1
        assert options.max_features == 1
        assert options.epsilon_purity >= 0
        assert options.max_depth > 1000
        assert options.max_num_nodes > 1000

    def test_validate_accepts_sane_options(self):
        """Test that valid options pass validation."""
        kt.TreeOptions(max_depth=3, max_features=2, max_num_nodes=7).validate(n_features=4, k=2)

    def test_equal_to_feature_count_is_accepted(self):
        """Test that every feature may be a split candidate."""
        kt.TreeOptions(max_features=4).validate(n_features=4, k=2)

    @pytest.mark.parametrize("kwargs,match", [
        ({"max_depth": -1}, "max_depth"),
        ({"min_samples_to_split": 0}, "min_samples_to_split"),
        ({"min_samples_in_leaf": 0}, "min_samples_in_leaf"),
        ({"max_features": 0}, "max_features"),
        ({"max_features": 5}, "max_features"),
        ({"max_num_nodes": 2}, "max_num_nodes"),
        ({"epsilon_purity": -0.1}, "epsilon_purity"),
    ])
    def test_validate_rejects(self, kwargs, match):
        """Test that contract violations are reported."""
        options = kt.TreeOptions(**{"max_features": 1, **kwargs})
        with pytest.raises(ValueError, match=match):
            options.validate(n_features=4, k=3)

    def test_invalid_branching_factor(self):
        """Test that k < 2 is rejected."""
        with pytest.raises(ValueError, match="k must be >= 2"):
            kt.KAryTree(k=1)

    def test_unknown_splitter(self):
        """Test that an unknown strategy name is rejected."""
        with pytest.raises(ValueError, match="Unknown split strategy"):
            kt.KAryTree(splitter="median")


# =============================================================================
# Scenarios
# =============================================================================


class TestScenarios:
    """Small hand-checked trees."""

    def test_pure_root_is_leaf(self):
        """Responses within epsilon_purity make the root a leaf."""
        X = np.ones((4, 1))
        y = np.array([1.0, 1.0, 1.0 + 1e-9, 1.0 - 1e-9])
        tree = fit_tree(kt.ArrayDataset(X, y), max_features=1,
                        min_samples_to_split=2, epsilon_purity=1e-6)

        assert tree.n_nodes == 1
        assert tree.nodes[0].is_leaf
        assert tree.nodes[0].value == pytest.approx(1.0)
        assert tree.nodes[0].n_samples == 4

    def test_purity_scans_all_instances(self):
        """Only a later instance differs from the first: the node is not pure."""
        X = np.arange(4, dtype=float).reshape(-1, 1)
        y = np.array([1.0, 1.0, 1.0, 5.0])
        tree = fit_tree(kt.ArrayDataset(X, y), max_features=1, epsilon_purity=1e-6)

        assert tree.n_nodes == 3
        assert not tree.nodes[0].is_leaf

    def test_zero_max_depth(self):
        """max_depth=0 leaves a single leaf regardless of the data."""
        X = np.arange(10, dtype=float).reshape(-1, 1)
        y = np.arange(10, dtype=float) ** 2
        tree = fit_tree(kt.ArrayDataset(X, y), max_features=1, max_depth=0)

        assert tree.n_nodes == 1
        assert tree.nodes[0].is_leaf
        assert tree.nodes[0].value == pytest.approx(np.mean(y))
        assert tree.depth == 0

    def test_too_few_samples_to_split(self):
        """A root smaller than min_samples_to_split stays a leaf."""
        X = np.arange(3, dtype=float).reshape(-1, 1)
        y = np.array([0.0, 1.0, 2.0])
        tree = fit_tree(kt.ArrayDataset(X, y), max_features=1, min_samples_to_split=4)

        assert tree.n_nodes == 1

    def test_rollback_at_root(self):
        """An outlier-isolating split violates min_samples_in_leaf and is undone."""
        X = np.arange(10, dtype=float).reshape(-1, 1)
        y = np.array([0.0] * 9 + [100.0])
        tree = fit_tree(kt.ArrayDataset(X, y), max_features=1, min_samples_in_leaf=2)

        assert tree.n_nodes == 1
        assert tree.nodes[0].is_leaf
        assert tree.nodes[0].value == pytest.approx(10.0)
        assert tree.nodes.is_complete()

    def test_rollback_below_root(self):
        """A rolled back split deeper in the tree leaves the array size unchanged."""
        X = np.arange(8, dtype=float).reshape(-1, 1)
        y = np.array([0.0, 0.0, 0.0, 0.0, 10.0, 10.0, 10.0, 14.0])
        tree = fit_tree(kt.ArrayDataset(X, y), max_features=1,
                        min_samples_in_leaf=2, epsilon_purity=0.0)

        # root splits 4 | 4; node 2 would split 3 | 1 and is rolled back
        assert tree.n_nodes == 3
        root = tree.nodes[0]
        assert not root.is_leaf
        assert root.children == (1, 2)
        np.testing.assert_allclose(root.thresholds, [3.5])
        assert tree.nodes[1].is_leaf and tree.nodes[1].value == pytest.approx(0.0)
        assert tree.nodes[2].is_leaf and tree.nodes[2].value == pytest.approx(11.0)
        np.testing.assert_array_equal(np.sort(tree.nodes[2].indices), [4, 5, 6, 7])

    def test_rollback_with_lopsided_strategy(self):
        """A strategy isolating one instance only grows when leaves may hold one."""
        X = np.arange(6, dtype=float).reshape(-1, 1)
        y = np.arange(6, dtype=float)
        data = kt.ArrayDataset(X, y)

        allowed = kt.KAryTree(k=2, splitter=LopsidedSplit()).fit(
            data, kt.TreeOptions(max_features=1, min_samples_in_leaf=1), 0)
        refused = kt.KAryTree(k=2, splitter=LopsidedSplit()).fit(
            data, kt.TreeOptions(max_features=1, min_samples_in_leaf=2), 0)

        # a chain: every split peels off one instance
        assert allowed.n_nodes == 11
        assert allowed.depth == 5
        assert refused.n_nodes == 1

    def test_constant_features_make_leaf(self):
        """No feature separates the instances: the degenerate split is rolled back."""
        X = np.full((6, 2), 3.0)
        y = np.arange(6, dtype=float)
        for splitter in ("best", "random"):
            tree = fit_tree(kt.ArrayDataset(X, y), splitter=splitter, max_features=2)
            assert tree.n_nodes == 1

    def test_empty_dataset_raises(self):
        """Test that fitting on no data raises."""
        data = kt.ArrayDataset(np.empty((0, 2)), np.empty(0))
        with pytest.raises(ValueError, match="empty"):
            fit_tree(data)

    def test_fit_without_responses_raises(self):
        """Test that features alone are rejected before induction starts."""
        X = np.arange(6, dtype=float).reshape(-1, 1)
        with pytest.raises(ValueError, match="without responses"):
            kt.KAryTree().fit(X, kt.TreeOptions(max_features=1), 0)
        with pytest.raises(ValueError, match="without responses"):
            kt.KAryTree().fit(kt.ArrayDataset(X), kt.TreeOptions(max_features=1), 0)

    def test_broken_strategy_raises(self):
        """A strategy that does not produce k partitions is a programming error."""
        X = np.arange(4, dtype=float).reshape(-1, 1)
        y = np.arange(4, dtype=float)
        tree = kt.KAryTree(k=2, splitter=BrokenSplit())
        with pytest.raises(ValueError, match="partitions"):
            tree.fit(kt.ArrayDataset(X, y), kt.TreeOptions(max_features=1), 0)


# =============================================================================
# Structural laws
# =============================================================================


@pytest.mark.parametrize("k", [2, 3, 4])
@pytest.mark.parametrize("splitter", ["best", "random"])
class TestTreeLaws:
    """Invariants that hold for every fitted tree."""

    def test_every_slot_finalized(self, regression_data, k, splitter):
        """Every index in [0, n_nodes) is exactly one of internal or leaf."""
        tree = fit_tree(regression_data, k=k, splitter=splitter, min_samples_in_leaf=3)

        assert tree.nodes.is_complete()
        for node in tree.nodes:
            assert isinstance(node, (kt.InternalNode, kt.LeafNode))
        assert tree.n_leaves == sum(node.is_leaf for node in tree.nodes)

    def test_children_are_valid_and_breadth_first(self, regression_data, k, splitter):
        """Internal nodes have k later children; depths never decrease with index."""
        tree = fit_tree(regression_data, k=k, splitter=splitter, min_samples_in_leaf=3)

        seen_as_child = set()
        for i, node in enumerate(tree.nodes):
            if node.is_leaf:
                continue
            assert len(node.children) == k
            assert len(node.thresholds) == k - 1
            assert np.all(np.diff(node.thresholds) >= 0)
            for child in node.children:
                assert i < child < tree.n_nodes
                assert tree.nodes[child].depth == node.depth + 1
                assert child not in seen_as_child
                seen_as_child.add(child)

        assert seen_as_child == set(range(1, tree.n_nodes))
        depths = [node.depth for node in tree.nodes]
        assert depths == sorted(depths)

    def test_partition_law(self, regression_data, k, splitter):
        """Leaves partition the instances; children sum to their parent."""
        tree = fit_tree(regression_data, k=k, splitter=splitter, min_samples_in_leaf=2)

        merged = np.sort(np.concatenate(leaf_index_sets(tree)))
        np.testing.assert_array_equal(merged, np.arange(regression_data.num_data_points()))

        for node in tree.nodes:
            if not node.is_leaf:
                assert sum(tree.nodes[c].n_samples for c in node.children) == node.n_samples

    def test_leaf_size_law(self, regression_data, k, splitter):
        """Every non-root leaf holds at least min_samples_in_leaf instances."""
        tree = fit_tree(regression_data, k=k, splitter=splitter, min_samples_in_leaf=5)

        for i, node in enumerate(tree.nodes):
            if node.is_leaf and i != 0:
                assert node.n_samples >= 5

    def test_depth_law(self, regression_data, k, splitter):
        """No node is deeper than max_depth."""
        for max_depth in [1, 2, 3]:
            tree = fit_tree(regression_data, k=k, splitter=splitter, max_depth=max_depth)
            assert tree.depth <= max_depth
            assert all(node.depth <= max_depth for node in tree.nodes)

    def test_budget_law(self, regression_data, k, splitter):
        """The node count never exceeds max_num_nodes."""
        for budget in [k, k + 1, 2 * k + 1, 10, 25]:
            tree = fit_tree(regression_data, k=k, splitter=splitter, max_num_nodes=budget)
            assert tree.n_nodes <= budget

    def test_determinism(self, regression_data, k, splitter):
        """Same data, options and seed give an identical tree."""
        a = fit_tree(regression_data, k=k, splitter=splitter, seed=7).to_arrays()
        b = fit_tree(regression_data, k=k, splitter=splitter, seed=7).to_arrays()

        np.testing.assert_array_equal(a.features, b.features)
        np.testing.assert_array_equal(a.thresholds, b.thresholds)
        np.testing.assert_array_equal(a.children, b.children)
        np.testing.assert_array_equal(a.values, b.values)


# =============================================================================
# Feature subsampling
# =============================================================================


class TestFeatureSubsampling:
    """Tests for the random candidate feature subsets."""

    def test_subset_size_and_uniqueness(self, regression_data):
        """Each split sees max_features distinct valid features."""
        splitter = RecordingSplit()
        tree = kt.KAryTree(k=2, splitter=splitter)
        tree.fit(regression_data, kt.TreeOptions(max_features=3, max_depth=4),
                 np.random.default_rng(1))

        assert splitter.calls
        for features in splitter.calls:
            assert len(features) == 3
            assert len(set(features)) == 3
            assert all(0 <= f < 4 for f in features)

    def test_subsets_vary(self, regression_data):
        """Different nodes get different subsets."""
        splitter = RecordingSplit()
        tree = kt.KAryTree(k=2, splitter=splitter)
        tree.fit(regression_data, kt.TreeOptions(max_features=1, max_depth=6),
                 np.random.default_rng(3))

        assert len({f[0] for f in splitter.calls}) > 1

    def test_seed_changes_tree(self, regression_data):
        """A different seed gives a different random tree."""
        a = fit_tree(regression_data, splitter="random", seed=1).to_arrays()
        b = fit_tree(regression_data, splitter="random", seed=2).to_arrays()

        assert a.n_nodes != b.n_nodes or not np.array_equal(a.thresholds, b.thresholds)

    def test_int_seed_matches_generator(self, regression_data):
        """An int rng is used as a seed for default_rng."""
        options = kt.TreeOptions(max_features=2)
        a = kt.KAryTree(splitter="random").fit(regression_data, options, 11)
        b = kt.KAryTree(splitter="random").fit(regression_data, options,
                                               np.random.default_rng(11))

        np.testing.assert_array_equal(a.to_arrays().thresholds, b.to_arrays().thresholds)


# =============================================================================
# Fit quality
# =============================================================================


class TestFitQuality:
    """Sanity checks on what the tree learns."""

    def test_full_tree_interpolates_training_data(self, regression_data):
        """An unrestricted tree reproduces the training responses."""
        tree = fit_tree(regression_data, epsilon_purity=0.0)
        pred = tree.predict(regression_data)

        np.testing.assert_allclose(pred, regression_data.y)

    def test_leaf_statistics(self, regression_data):
        """Leaves store the mean and variance of their responses."""
        tree = fit_tree(regression_data, k=3, min_samples_in_leaf=10)

        for node in tree.nodes:
            if node.is_leaf:
                responses = regression_data.y[node.indices]
                assert node.value == pytest.approx(responses.mean())
                assert node.variance == pytest.approx(responses.var())

    def test_shallow_tree_reduces_error(self, regression_data):
        """Even a depth-2 tree beats predicting the mean."""
        y = regression_data.y
        baseline = np.mean((y - y.mean()) ** 2)

        tree = fit_tree(regression_data, k=3, max_depth=2, max_features=3)
        mse = np.mean((tree.predict(regression_data) - y) ** 2)

        assert mse < baseline
