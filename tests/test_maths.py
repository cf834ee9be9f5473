import math

import pytest
from numpy.testing import assert_allclose

from sparselearn.maths import (
    normalize,
    normalize_exp,
    select_max_key,
    select_min_key,
    sigmoid,
    softplus,
)
from sparselearn.records import AssociativeArray


def test_sigmoid_clamping():
    assert sigmoid(30.5) == 1.0
    assert sigmoid(1000) == 1.0
    assert sigmoid(-30.5) == 0.0
    assert sigmoid(-math.inf) == 0.0
    assert sigmoid(0) == 0.5


@pytest.mark.parametrize("z", [-29.0, -5.0, -0.3, 0.0, 0.7, 4.0, 29.0])
def test_sigmoid_symmetry(z):
    assert_allclose(sigmoid(z) + sigmoid(-z), 1.0, atol=1e-12)
    assert_allclose(sigmoid(z), 1.0 / (1.0 + math.exp(-z)))


def test_softplus():
    assert softplus(50.0) == 50.0
    assert softplus(-50.0) == 0.0
    assert_allclose(softplus(0.0), math.log(2.0))
    assert_allclose(softplus(3.0), math.log1p(math.exp(3.0)))


def test_normalize_exp_large_scores():
    scores = AssociativeArray({"a": 1000.0, "b": 1000.0, "c": -math.inf})
    result = normalize_exp(scores)
    assert result is scores
    assert_allclose([scores["a"], scores["b"], scores["c"]], [0.5, 0.5, 0.0])


def test_normalize_exp_all_minus_infinity_is_uniform():
    scores = {"a": -math.inf, "b": -math.inf}
    normalize_exp(scores)
    assert scores == {"a": 0.5, "b": 0.5}


def test_normalize():
    values = {"a": 1.0, "b": 3.0}
    normalize(values)
    assert values == {"a": 0.25, "b": 0.75}
    zeros = {"a": 0.0}
    assert normalize(zeros) == {"a": 0.0}


def test_select_keys():
    values = {"a": 2.0, "b": -1.0, "c": 5.0}
    assert select_max_key(values) == "c"
    assert select_min_key(values) == "b"
