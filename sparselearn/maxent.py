"""
Maximum entropy classification of sparse, binarized features, fitted with
Improved Iterative Scaling.
"""

from sparselearn.base import BaseSparseClassifier
from sparselearn.optimization import (
    active_features,
    class_scores,
    improved_iterative_scaling,
    max_active_features,
    observed_expectations,
)


__all__ = ["MaximumEntropy"]


class MaximumEntropy(BaseSparseClassifier):
    """
    A conditional maximum entropy (multinomial log-linear) classifier.

    Features are binarized: a feature is active in a record if its value
    is greater than zero. The model has one weight ("lambda") per
    (feature, class) pair, and the score of a class is the sum of the
    lambdas of the active features:

        p(c | x) = exp(sum_f lambda[f, c]) / Z(x)

    The lambdas are fitted with Improved Iterative Scaling (IIS) so that
    the model's expectation of each (feature, class) indicator matches its
    frequency in the training data. The IIS step size uses Cmax, the
    largest number of active features in any training record.

    If a feature never occurs with a class, the IIS update for that pair is
    -inf. After each iteration such infinite lambdas are replaced by the
    smallest (or, for +inf, the largest) finite lambda, which acts like
    add-one smoothing.

    Parameters
    ----------
    max_iter : int (default 100)
        The number of IIS iterations. There is no other stopping rule.

    n_jobs : int or None
        Number of threads for computing the expectations.

    verbose : int
        Print one line per iteration if > 0.

    callback : callable or None
        Called as callback(self) after each iteration. `self.lambdas_`
        holds the current lambdas.

    Attributes
    ----------
    classes_ : ndarray of class labels

    lambdas_ : dict
        (feature, class) -> lambda

    cmax_ : int
        The largest number of active features in a training record.
    """

    def __init__(self, *, max_iter=100, n_jobs=None, verbose=0, callback=None):
        self.max_iter = max_iter
        self.n_jobs = n_jobs
        self.verbose = verbose
        self.callback = callback

    def _fit(self, frame):
        classes = self.classes_.tolist()
        features = list(frame.x_types)
        self.cmax_ = max_active_features(frame)

        lambdas = self.store_.get_map("lambdas", big=True)
        for feature in features:
            for c in classes:
                lambdas[(feature, c)] = 0.0
        self.lambdas_ = lambdas

        self._start_iterations()
        with self.store_.temporary_map("tmp_observed_expectations", big=True) as observed:
            observed.update(observed_expectations(frame, classes, features, self.n_jobs))
            improved_iterative_scaling(
                frame,
                classes,
                lambdas,
                observed,
                self.cmax_,
                self.store_,
                max_iter=self.max_iter,
                n_jobs=self.n_jobs,
                verbose=self.verbose,
                on_iteration=self._on_iteration,
            )

    def _scores(self, x):
        return class_scores(active_features(x), self.classes_.tolist(), self.lambdas_)
