"""
Multinomial logistic (softmax) regression fitted by regularized batch
gradient descent with the bold-driver learning rate.
"""

import math

from sparselearn.base import BaseSparseClassifier
from sparselearn.maths import normalize_exp
from sparselearn.optimization import bold_driver_descent
from sparselearn.records import AssociativeArray, numeric_items
from sparselearn.regularization import penalty, regularize
from sparselearn.utils import map_chunks, sharded_sum


__all__ = ["INTERCEPT", "SoftMaxRegression"]


INTERCEPT = "__intercept__"

# Lower bound for probabilities inside the log-loss
MIN_PROBABILITY = 1e-300


def linear_scores(x, classes, thitas):
    """intercept + sum_f w[f, c] * x[f], for each class c."""
    items = list(numeric_items(x))
    scores = AssociativeArray()
    for c in classes:
        score = thitas.get((INTERCEPT, c), 0.0)
        for feature, value in items:
            score += thitas.get((feature, c), 0.0) * value
        scores[c] = score
    return scores


class SoftMaxRegression(BaseSparseClassifier):
    """
    Softmax regression.

    The model has a weight per (feature, class) pair plus an intercept per
    class, keyed (INTERCEPT, class). Class probabilities are the softmax of
    the linear scores.

    Each iteration computes the full-batch gradient of the cross-entropy
    from the current weights, applies the regularization rule and computes
    the loss of the candidate weights. The bold driver then either accepts
    the candidate (and raises the learning rate by 5%) or rejects it (and
    halves the learning rate).

    Parameters
    ----------
    learning_rate : float (default 0.1)
        The initial learning rate.

    max_iter : int (default 100)
        The number of iterations. There is no other stopping rule.

    l1 : float (default 0.0)
        L1 penalty strength.

    l2 : float (default 0.0)
        L2 penalty strength. If both l1 and l2 are positive, the naive
        elastic net is used.

    n_jobs : int or None
        Number of threads for gradient accumulation.

    verbose : int

    callback : callable or None
        Called as callback(self) after each iteration.

    Attributes
    ----------
    thitas_ : dict
        (feature, class) -> weight, including the intercepts.

    loss_history_ : list
        The loss of every iteration's candidate weights.

    best_loss_history_ : list
        The best loss after every iteration. This never increases.

    learning_rate_history_ : list
        The learning rate before the first and after every iteration.
    """

    def __init__(
        self,
        *,
        learning_rate=0.1,
        max_iter=100,
        l1=0.0,
        l2=0.0,
        n_jobs=None,
        verbose=0,
        callback=None,
    ):
        self.learning_rate = learning_rate
        self.max_iter = max_iter
        self.l1 = l1
        self.l2 = l2
        self.n_jobs = n_jobs
        self.verbose = verbose
        self.callback = callback

    def _fit(self, frame):
        if self.learning_rate <= 0:
            raise ValueError("learning_rate must be positive")
        if self.l1 < 0 or self.l2 < 0:
            raise ValueError("l1 and l2 must be non-negative")

        classes = self.classes_.tolist()
        thitas = self.store_.get_map("thitas", big=True)
        for c in classes:
            thitas[(INTERCEPT, c)] = 0.0
        for feature in frame.x_types:
            for c in classes:
                thitas.setdefault((feature, c), 0.0)
        self.thitas_ = thitas

        records = frame.records()
        n = len(records)

        def gradient_step(candidates, learning_rate):
            new_thitas = candidates["thitas"]
            multiplier = learning_rate / n

            def partial(chunk):
                deltas = {}
                for record in chunk:
                    items = list(numeric_items(record.x))
                    probabilities = normalize_exp(linear_scores(record.x, classes, thitas))
                    for c in classes:
                        error = (1.0 if record.y == c else 0.0) - probabilities[c]
                        step = multiplier * error
                        key = (INTERCEPT, c)
                        deltas[key] = deltas.get(key, 0.0) + step
                        for feature, value in items:
                            key = (feature, c)
                            deltas[key] = deltas.get(key, 0.0) + step * value
                return deltas

            for key, delta in sharded_sum(partial, records, self.n_jobs).items():
                new_thitas[key] = new_thitas.get(key, 0.0) + delta
            regularize(self.l1, self.l2, learning_rate, thitas, new_thitas)

        def loss(candidates):
            new_thitas = candidates["thitas"]

            def partial(chunk):
                total = 0.0
                for record in chunk:
                    probabilities = normalize_exp(linear_scores(record.x, classes, new_thitas))
                    total -= math.log(max(probabilities[record.y], MIN_PROBABILITY))
                return total

            total = sum(map_chunks(partial, records, self.n_jobs))
            return total / n + penalty(self.l1, self.l2, new_thitas)

        self._start_iterations()
        driver = bold_driver_descent(
            {"thitas": thitas},
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
        return linear_scores(x, self.classes_.tolist(), self.thitas_)
