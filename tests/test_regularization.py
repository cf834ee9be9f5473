import pytest
from numpy.testing import assert_allclose

from sparselearn.regularization import (
    elastic_net_penalty,
    l1_penalty,
    l1_update,
    l2_penalty,
    l2_update,
    penalty,
    regularize,
)


def test_l1_soft_threshold():
    weights = {"a": 1.0, "b": -1.0, "c": 0.05}
    new_weights = dict(weights)
    l1_update(1.0, 0.1, weights, new_weights)
    assert_allclose([new_weights["a"], new_weights["b"]], [0.9, -0.9])
    # Weights smaller than the threshold become exactly zero
    assert new_weights["c"] == 0.0
    assert_allclose(l1_penalty(0.5, weights), 0.5 * 2.05)


def test_l2_uses_previous_weights():
    weights = {"a": 2.0}
    new_weights = {"a": 3.0}
    l2_update(0.5, 0.1, weights, new_weights)
    assert_allclose(new_weights["a"], 3.0 - 0.1 * 0.5 * 2.0)
    assert_allclose(l2_penalty(0.5, {"a": 2.0, "b": 1.0}), 0.5 * 5.0 / 2.0)


def test_elastic_net():
    weights = {"a": 2.0, "b": 0.1}
    new_weights = dict(weights)
    regularize(0.4, 1.0, 0.1, weights, new_weights)
    assert_allclose(new_weights["a"], (2.0 - 0.2) / 2.0)
    assert new_weights["b"] == 0.0
    assert_allclose(penalty(0.4, 1.0, weights), elastic_net_penalty(0.4, 1.0, weights))
    assert_allclose(elastic_net_penalty(0.4, 1.0, weights), 0.4 * 2.1 + 4.01)


@pytest.mark.parametrize("l1, l2", [(0.0, 0.0), (-1.0, 0.0)])
def test_no_regularization(l1, l2):
    weights = {"a": 2.0}
    new_weights = {"a": 1.5}
    regularize(l1, l2, 0.1, weights, new_weights)
    assert new_weights == {"a": 1.5}
    assert penalty(l1, l2, weights) == 0.0
