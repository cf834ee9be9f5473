"""
Ordinal regression with the cumulative logit model, fitted by L2
regularized batch gradient descent with the bold-driver learning rate.
"""

import math

from sparselearn.base import BaseSparseClassifier
from sparselearn.maths import normalize, sigmoid, softplus
from sparselearn.optimization import bold_driver_descent
from sparselearn.records import AssociativeArray, numeric_items
from sparselearn.regularization import l2_penalty, l2_update
from sparselearn.utils import map_chunks, sharded_sum


__all__ = ["OrdinalRegression"]


def _dot(x, weights):
    return sum(weights.get(feature, 0.0) * value for feature, value in numeric_items(x))


class OrdinalRegression(BaseSparseClassifier):
    """
    Ordinal regression (the proportional-odds cumulative logit model).

    The classes are taken in ascending order. There is one weight per
    feature, shared by all classes, and one threshold per class; the
    threshold of the last class is fixed at +inf. With g the logistic
    function,

        P(y <= c | x) = g(thita[c] - w.x)
        P(y = c | x)  = g(thita[c] - w.x) - g(thita[c-1] - w.x)

    where the second term is dropped for the first class. The loss of a
    record of class c is

        h(thita[c-1] - w.x) + h(w.x - thita[c])

    with h(z) = log(1 + exp(z)), again dropping the first term for the
    first class.

    Parameters
    ----------
    learning_rate : float (default 0.1)

    max_iter : int (default 100)

    l2 : float (default 0.0)
        L2 penalty on the feature weights.

    n_jobs : int or None

    verbose : int

    callback : callable or None
        Called as callback(self) after each iteration.

    Attributes
    ----------
    weights_ : dict
        feature -> weight

    thitas_ : dict
        class -> threshold

    loss_history_, best_loss_history_, learning_rate_history_ : list
        As for SoftMaxRegression.
    """

    def __init__(
        self,
        *,
        learning_rate=0.1,
        max_iter=100,
        l2=0.0,
        n_jobs=None,
        verbose=0,
        callback=None,
    ):
        self.learning_rate = learning_rate
        self.max_iter = max_iter
        self.l2 = l2
        self.n_jobs = n_jobs
        self.verbose = verbose
        self.callback = callback

    def _fit(self, frame):
        if self.learning_rate <= 0:
            raise ValueError("learning_rate must be positive")
        if self.l2 < 0:
            raise ValueError("l2 must be non-negative")

        classes = self.classes_.tolist()
        previous = {c: (classes[i - 1] if i > 0 else None) for i, c in enumerate(classes)}
        self.previous_class_ = previous

        weights = self.store_.get_map("weights", big=True)
        for feature in frame.x_types:
            weights[feature] = 0.0
        thitas = self.store_.get_map("thitas")
        for c in classes:
            thitas[c] = 0.0
        thitas[classes[-1]] = math.inf
        self.weights_ = weights
        self.thitas_ = thitas

        records = frame.records()
        n = len(records)

        def gradient_step(candidates, learning_rate):
            new_weights = candidates["weights"]
            new_thitas = candidates["thitas"]
            multiplier = -learning_rate / n

            def partial(chunk):
                weight_deltas = {}
                thita_deltas = {}
                for record in chunk:
                    y = record.y
                    y_previous = previous[y]
                    xTw = _dot(record.x, weights)

                    g_current = sigmoid(xTw - thitas[y])
                    g_previous = sigmoid(thitas[y_previous] - xTw) if y_previous is not None else 0.0

                    for feature, value in numeric_items(record.x):
                        weight_deltas[feature] = (
                            weight_deltas.get(feature, 0.0)
                            + value * (g_current - g_previous) * multiplier
                        )

                    thita_deltas[y] = thita_deltas.get(y, 0.0) + multiplier * -g_current
                    if y_previous is not None:
                        thita_deltas[y_previous] = (
                            thita_deltas.get(y_previous, 0.0) + multiplier * g_previous
                        )
                return {("w", k): v for k, v in weight_deltas.items()} | {
                    ("t", k): v for k, v in thita_deltas.items()
                }

            for (kind, key), delta in sharded_sum(partial, records, self.n_jobs).items():
                target = new_weights if kind == "w" else new_thitas
                target[key] = target.get(key, 0.0) + delta

            l2_update(self.l2, learning_rate, weights, new_weights)

        def loss(candidates):
            new_weights = candidates["weights"]
            new_thitas = candidates["thitas"]

            def partial(chunk):
                total = 0.0
                for record in chunk:
                    y = record.y
                    y_previous = previous[y]
                    xTw = _dot(record.x, new_weights)
                    if y_previous is not None:
                        total += softplus(new_thitas[y_previous] - xTw)
                    total += softplus(xTw - new_thitas[y])
                return total

            total = sum(map_chunks(partial, records, self.n_jobs))
            return total / n + l2_penalty(self.l2, new_weights)

        self._start_iterations()
        driver = bold_driver_descent(
            {"weights": weights, "thitas": thitas},
            gradient_step,
            loss,
            self.store_,
            learning_rate=self.learning_rate,
            max_iter=self.max_iter,
            verbose=self.verbose,
            on_iteration=self._on_iteration,
        )
        self.loss_history_ = driver.losses
        self.best_loss_history_ = driver.best_losses
        self.learning_rate_history_ = driver.learning_rates

    def _scores(self, x):
        """The cumulative logits thita[c] - w.x."""
        xTw = _dot(x, self.weights_)
        return AssociativeArray((c, self.thitas_[c] - xTw) for c in self.classes_.tolist())

    def _probabilities(self, x):
        cumulative = self._scores(x)
        probabilities = AssociativeArray()
        for c, z in cumulative.items():
            y_previous = self.previous_class_[c]
            p = sigmoid(z)
            if y_previous is not None:
                p -= sigmoid(cumulative[y_previous])
            # Thresholds that are out of order would give negative mass
            probabilities[c] = max(p, 0.0)
        return normalize(probabilities)
