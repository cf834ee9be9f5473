"""
Base classes for the classifiers and clusterers in sparselearn.

Every estimator follows the scikit-learn conventions: hyperparameters are
stored unchanged by `__init__`, `fit` validates its input and sets fitted
attributes ending in an underscore. Inputs are Dataframes or sequences of
feature mappings (2d arrays are accepted too, with integer column keys).
"""

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin, ClusterMixin
from sklearn.utils.validation import check_is_fitted

from sparselearn.maths import normalize_exp, select_max_key
from sparselearn.records import Dataframe
from sparselearn.storage import ParameterStore
from sparselearn.utils import check_dataframe, check_labels, parallel_apply


__all__ = ["BaseSparseClassifier", "BaseSparseClusterer"]


class _IterativeMixin:
    """Iteration counting and the per-iteration user callback."""

    def _start_iterations(self):
        self.n_iter_ = 0

    def _on_iteration(self, iteration):
        self.n_iter_ = iteration + 1
        if self.callback is not None:
            self.callback(self)


class BaseSparseClassifier(_IterativeMixin, ClassifierMixin, BaseEstimator):
    """
    Base class for classifiers over sparse feature records.

    Subclasses implement `_fit(frame)` and `_scores(x)`, which returns an
    AssociativeArray of unnormalized log scores, one per class. Subclasses
    whose scores are not log-linear override `_probabilities(x)` as well.
    """

    _sort_classes = True

    def fit(self, X, y=None, x_types=None):
        """Fit the model.

        Parameters
        ----------
        X : Dataframe, sequence of mappings or 2d array
            Training records. Values may be numeric or boolean.

        y : array-like of shape (n_samples,)
            Class labels. Ignored if X is a Dataframe.

        x_types : mapping of feature -> DataType, optional
            Declared column types.

        Returns
        -------
        self : object
            Returns the instance itself.
        """
        frame = check_dataframe(X, y, x_types=x_types, require_labels=True)
        self.classes_ = np.array(check_labels(frame, sort=self._sort_classes))
        self.n_features_ = frame.n_features
        self.store_ = ParameterStore(type(self).__name__)
        self._fit(frame)
        return self

    def _fit(self, frame):
        raise NotImplementedError

    def _scores(self, x):
        raise NotImplementedError

    def _probabilities(self, x):
        return normalize_exp(self._scores(x))

    def _class_matrix(self, X, func):
        check_is_fitted(self)
        frame = check_dataframe(X)
        classes = self.classes_.tolist()
        rows = parallel_apply(
            lambda record: [func(record.x)[c] for c in classes],
            frame.records(),
            getattr(self, "n_jobs", None),
        )
        return np.array(rows, dtype=float)

    def decision_function(self, X):
        """
        Unnormalized class scores, of shape (n_samples, n_classes), with
        columns in the order of `classes_`.
        """
        return self._class_matrix(X, self._scores)

    def predict_proba(self, X):
        """
        Class probabilities, of shape (n_samples, n_classes), with columns
        in the order of `classes_`. Each row sums to 1.
        """
        return self._class_matrix(X, self._probabilities)

    def predict_log_proba(self, X):
        with np.errstate(divide="ignore"):
            return np.log(self.predict_proba(X))

    def predict(self, X):
        proba = self.predict_proba(X)
        return self.classes_[np.argmax(proba, axis=1)]

    def predict_records(self, X):
        """
        Return a new Dataframe whose records carry the predicted class and
        the class probabilities.
        """
        check_is_fitted(self)
        frame = check_dataframe(X)
        predicted = Dataframe(x_types=frame.x_types)
        for record in frame:
            probabilities = self._probabilities(record.x)
            predicted.append(
                record._replace(
                    y_predicted=select_max_key(probabilities),
                    y_predicted_probabilities=probabilities,
                )
            )
        return predicted


class BaseSparseClusterer(_IterativeMixin, ClusterMixin, BaseEstimator):
    """
    Base class for clusterers over sparse feature records.

    Subclasses implement `_fit(frame)`, which sets `clusters_` (a dict of
    cluster id -> cluster) and `labels_`, and `_cluster_scores(x)`, which
    returns an AssociativeArray keyed by cluster id. The selected cluster is
    the one with the highest score, or the lowest for distance-based
    clusterers (`_select_lowest = True`).
    """

    _select_lowest = False

    def fit(self, X, y=None, x_types=None):
        """Fit the clusters.

        Parameters
        ----------
        X : Dataframe, sequence of mappings or 2d array
            Training records.

        y : array-like of shape (n_samples,), optional
            Gold-standard classes. They are recorded but not used for
            clustering.

        Returns
        -------
        self : object
            Returns the instance itself.
        """
        frame = check_dataframe(X, y, x_types=x_types)
        self.gold_standard_classes_ = {record.y for record in frame if record.y is not None}
        self.n_features_ = frame.n_features
        self.store_ = ParameterStore(type(self).__name__)
        self._fit(frame)
        self.cluster_ids_ = np.array(list(self.clusters_))
        self.n_clusters_ = len(self.clusters_)
        return self

    def _fit(self, frame):
        raise NotImplementedError

    def _cluster_scores(self, x):
        raise NotImplementedError

    def _select(self, scores):
        if self._select_lowest:
            return min(scores, key=scores.__getitem__)
        return max(scores, key=scores.__getitem__)

    def _score_matrix(self, X):
        check_is_fitted(self)
        frame = check_dataframe(X)
        cluster_ids = self.cluster_ids_.tolist()
        rows = parallel_apply(
            lambda record: [self._cluster_scores(record.x)[k] for k in cluster_ids],
            frame.records(),
            getattr(self, "n_jobs", None),
        )
        return np.array(rows, dtype=float).reshape(len(frame), len(cluster_ids))

    def predict(self, X):
        """The id of the selected cluster for each record."""
        scores = self._score_matrix(X)
        if self._select_lowest:
            return self.cluster_ids_[np.argmin(scores, axis=1)]
        return self.cluster_ids_[np.argmax(scores, axis=1)]

    def predict_records(self, X):
        """
        Return a new Dataframe whose records carry the selected cluster id
        and the per-cluster scores.
        """
        check_is_fitted(self)
        frame = check_dataframe(X)
        predicted = Dataframe(x_types=frame.x_types)
        for record in frame:
            scores = self._cluster_scores(record.x)
            predicted.append(
                record._replace(y_predicted=self._select(scores), y_predicted_probabilities=scores)
            )
        return predicted
