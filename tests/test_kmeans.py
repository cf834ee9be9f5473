import numpy as np
import pytest
from numpy.testing import assert_allclose
from sklearn.exceptions import ConvergenceWarning

from sparselearn import ContractViolation, DataType, Kmeans, UnsupportedOptionError
from sparselearn.kmeans import INITIALIZATIONS, KmeansCluster


@pytest.fixture
def blobs():
    """Two well separated blobs, interleaved a, b, a, b, ..."""
    rng = np.random.default_rng(11)
    a = rng.normal(loc=(-6.0, -6.0), scale=0.5, size=(20, 2))
    b = rng.normal(loc=(6.0, 6.0), scale=0.5, size=(20, 2))
    points = np.empty((40, 2))
    points[0::2] = a
    points[1::2] = b
    return [{"u": float(u), "v": float(v)} for u, v in points]


def test_empty_cluster_centroid_is_zero():
    cluster = KmeansCluster(0)
    cluster.add({"a": 2.0, "b": 4.0})
    cluster.add({"a": 4.0})
    assert cluster.update_cluster_parameters()
    assert cluster.centroid == {"a": 3.0, "b": 2.0}

    cluster.reset()
    assert cluster.size == 0
    assert cluster.centroid == {"a": 3.0, "b": 2.0}
    assert cluster.update_cluster_parameters()
    assert cluster.centroid == {"a": 0.0, "b": 0.0}
    assert not cluster.update_cluster_parameters()


def test_cluster_remove_is_unsupported():
    with pytest.raises(ContractViolation):
        KmeansCluster(0).remove({"a": 1.0})


@pytest.mark.parametrize("initialization", INITIALIZATIONS)
def test_separates_blobs(blobs, initialization):
    model = Kmeans(k=2, initialization=initialization, random_state=0).fit(blobs)
    labels = model.labels_
    assert len(set(labels[0::2])) == 1
    assert len(set(labels[1::2])) == 1
    assert labels[0] != labels[1]
    assert model.n_clusters_ == 2
    assert sum(c.size for c in model.clusters_.values()) == 40

    centroid = model.clusters_[labels[0]].centroid
    assert_allclose([centroid["u"], centroid["v"]], [-6.0, -6.0], atol=0.5)


def test_furthest_first_picks_the_other_blob(blobs):
    model = Kmeans(k=2, initialization="furthest_first", max_iter=1)
    with pytest.warns(ConvergenceWarning):
        model.fit(blobs)
    assert model.labels_[0] == 0
    assert model.labels_[1] == 1


def test_predict_and_transform(blobs):
    model = Kmeans(k=2, random_state=3).fit(blobs)
    predicted = model.predict([{"u": -5.5, "v": -6.5}, {"u": 6.5, "v": 5.0}])
    assert predicted[0] == model.labels_[0]
    assert predicted[1] == model.labels_[1]
    distances = model.transform([{"u": -5.5, "v": -6.5}])
    assert distances.shape == (1, 2)
    assert_allclose(distances.sum(axis=1), 1.0)


def test_feature_weights():
    X = [
        {"x": 1.0, "flag": True},
        {"x": 2.0, "flag": True},
        {"x": 3.0, "flag": False},
        {"x": 4.0, "flag": False},
    ]
    unweighted = Kmeans(k=2, categorical_gamma_multiplier=2.0, initialization="forgy").fit(X)
    assert unweighted.feature_weights_ == {"x": 1.0, "flag": 2.0}

    weighted = Kmeans(
        k=2, categorical_gamma_multiplier=2.0, weighted=True, initialization="forgy"
    ).fit(X)
    # variance of x is 1.25; flag is active in half the records
    assert_allclose(weighted.feature_weights_["x"], 1.0 / 2.5)
    assert_allclose(weighted.feature_weights_["flag"], 2.0 / 0.75)
    assert sorted(weighted.store_.names()) == ["clusters", "feature_weights"]


def test_declared_ordinal_columns_use_the_gamma_multiplier(blobs):
    model = Kmeans(k=2, categorical_gamma_multiplier=0.5, initialization="forgy")
    model.fit(blobs, x_types={"u": DataType.ORDINAL})
    assert model.feature_weights_ == {"u": 0.5, "v": 1.0}


def test_manhattan(blobs):
    model = Kmeans(k=2, distance="manhattan", initialization="furthest_first").fit(blobs)
    assert model.labels_[0] != model.labels_[1]


def test_callback_and_threads(blobs):
    seen = []
    serial = Kmeans(k=2, initialization="forgy", callback=lambda m: seen.append(m.n_iter_))
    serial.fit(blobs)
    assert seen == list(range(1, serial.n_iter_ + 1))
    threaded = Kmeans(k=2, initialization="forgy", n_jobs=2).fit(blobs)
    assert list(threaded.labels_) == list(serial.labels_)


def test_invalid_options(blobs):
    with pytest.raises(UnsupportedOptionError):
        Kmeans(distance="maximum").fit(blobs)
    with pytest.raises(UnsupportedOptionError):
        Kmeans(initialization="kmeans++").fit(blobs)
    with pytest.raises(ValueError):
        Kmeans(k=41).fit(blobs)
    with pytest.raises(ValueError):
        Kmeans(k=0).fit(blobs)
