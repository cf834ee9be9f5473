import math

import pytest
from numpy.testing import assert_allclose

from sparselearn.distances import (
    column_distances,
    euclidean,
    euclidean_weighted,
    get_distance,
    manhattan,
    manhattan_weighted,
    maximum,
)
from sparselearn.utils import UnsupportedOptionError


A = {"x": 1.0, "y": 4.0, "flag": True}
B = {"x": 4.0, "z": -2.0}


def test_column_distances():
    differences = column_distances(A, B)
    assert set(differences) == {"x", "y", "flag", "z"}
    assert differences["x"] == -3.0
    assert differences["y"] == 4.0
    assert differences["flag"] == 1.0
    assert differences["z"] == 2.0


def test_categorical_columns():
    assert column_distances({"c": "red"}, {"c": "red"}) == {"c": 0.0}
    assert column_distances({"c": "red"}, {"c": "blue"}) == {"c": 1.0}
    assert column_distances({"c": "red"}, {}) == {"c": 1.0}


def test_distances():
    assert_allclose(euclidean(A, B), math.sqrt(9 + 16 + 1 + 4))
    assert_allclose(manhattan(A, B), 3 + 4 + 1 + 2)
    assert maximum(A, B) == 4.0
    assert euclidean(A, A) == 0.0
    assert maximum({}, {}) == 0.0


def test_weighted_distances_use_weighted_columns_only():
    weights = {"x": 2.0, "z": 0.5}
    assert_allclose(euclidean_weighted(weights, A, B), math.sqrt(2.0 * 9 + 0.5 * 4))
    assert_allclose(manhattan_weighted(weights, A, B), 2.0 * 3 + 0.5 * 2)
    # Curried: binding the weights gives a two-argument distance
    distance = euclidean_weighted(weights)
    assert_allclose(distance(A, B), euclidean_weighted(weights, A, B))


def test_get_distance():
    assert get_distance("Euclidean") is euclidean
    assert get_distance("maximum") is maximum
    weighted = get_distance("manhattan", {"x": 1.0})
    assert weighted(A, B) == 3.0
    with pytest.raises(UnsupportedOptionError):
        get_distance("cosine")
    with pytest.raises(UnsupportedOptionError):
        get_distance("maximum", {"x": 1.0})
