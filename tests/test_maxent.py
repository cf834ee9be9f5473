import math

import numpy as np
import pytest
from numpy.testing import assert_allclose
from sklearn.exceptions import NotFittedError

from sparselearn import ContractViolation, Dataframe, MaximumEntropy


@pytest.fixture
def text_data():
    X = [
        {"free": 1, "offer": 1},
        {"free": 1, "money": 2},
        {"offer": 1, "money": 1, "winner": True},
        {"meeting": 1, "agenda": 1},
        {"meeting": 1, "offer": 1},
        {"agenda": 1, "notes": 1},
    ]
    y = ["spam", "spam", "spam", "ham", "ham", "ham"]
    return X, y


def test_fit_predict(text_data):
    X, y = text_data
    model = MaximumEntropy(max_iter=50)
    model.fit(X, y)
    assert list(model.classes_) == ["ham", "spam"]
    assert model.cmax_ == 3
    assert model.score(X, y) == 1.0
    assert list(model.predict([{"free": 1}, {"agenda": 1}])) == ["spam", "ham"]


def test_lambda_of_single_class_feature_is_finite(text_data):
    """
    'winner' only occurs with class 'spam', so its IIS update for 'ham' is
    -inf until the smoothing pass replaces it.
    """
    X, y = text_data
    model = MaximumEntropy(max_iter=10).fit(X, y)
    for c in model.classes_:
        assert math.isfinite(model.lambdas_[("winner", c)])
    assert model.lambdas_[("winner", "spam")] > model.lambdas_[("winner", "ham")]
    assert all(math.isfinite(w) for w in model.lambdas_.values())


def test_predict_proba(text_data):
    X, y = text_data
    model = MaximumEntropy(max_iter=20).fit(X, y)
    proba = model.predict_proba(X)
    assert proba.shape == (6, 2)
    assert_allclose(proba.sum(axis=1), 1.0)
    # Columns follow classes_
    assert np.all(proba[:3, 1] > 0.5)
    assert_allclose(np.exp(model.predict_log_proba(X)), proba)
    # A record without active features gets uniform probabilities
    assert_allclose(model.predict_proba([{"unseen": 1}]), [[0.5, 0.5]])


def test_predict_records(text_data):
    X, y = text_data
    model = MaximumEntropy(max_iter=20).fit(X, y)
    predicted = model.predict_records(Dataframe.from_xy(X, y))
    for record in predicted:
        assert record.y_predicted == record.y
        assert_allclose(sum(record.y_predicted_probabilities.values()), 1.0)


def test_callback_and_store(text_data):
    X, y = text_data
    seen = []
    model = MaximumEntropy(max_iter=7, callback=lambda m: seen.append(m.n_iter_))
    model.fit(X, y)
    assert seen == list(range(1, 8))
    assert model.n_iter_ == 7
    # Scratch maps never outlive the fit
    assert model.store_.names() == ["lambdas"]


def test_verbose_output(text_data, capsys):
    X, y = text_data
    MaximumEntropy(max_iter=2, verbose=1).fit(X, y)
    assert capsys.readouterr().out.count("Iteration #") == 2


def test_errors(text_data):
    X, y = text_data
    with pytest.raises(NotFittedError):
        MaximumEntropy().predict(X)
    with pytest.raises(ValueError):
        MaximumEntropy().fit(X, ["spam"] * 6)
    with pytest.raises(ContractViolation):
        MaximumEntropy().fit([{"a": 0}, {"b": 0}], ["x", "y"])
