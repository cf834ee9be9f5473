"""
Dirichlet Process Mixture Models fitted by collapsed Gibbs sampling.

The number of clusters is not fixed in advance. In every sweep each record
is taken out of its cluster and reassigned, either to an existing cluster
k with probability proportional to

    N_k / (alpha + n - 1) * P(x | cluster k)

or to a brand-new cluster with probability proportional to

    alpha / (alpha + n - 1) * P(x | prior)

(the Chinese Restaurant Process). Clusters keep sufficient statistics that
are updated incrementally on every add and remove; their derived
parameters are cached and recomputed lazily after every change.

Two cluster models are provided:

- GaussianCluster: multivariate normal data with a Normal-Inverse-Wishart
  prior;
- MultinomialCluster: count data (e.g. word counts) with a Dirichlet prior.
"""

import math
import warnings

import numpy as np
import scipy.linalg
from scipy.special import gammaln
from sklearn.exceptions import ConvergenceWarning
from sklearn.utils import check_random_state

from sparselearn.base import BaseSparseClusterer
from sparselearn.maths import normalize_exp, select_max_key
from sparselearn.records import AssociativeArray
from sparselearn.utils import (
    ContractViolation,
    check_option,
    parallel_apply,
    weighted_sampling,
)


__all__ = [
    "BaseCluster",
    "BaseDPMM",
    "GaussianCluster",
    "GaussianDPMM",
    "MultinomialCluster",
    "MultinomialDPMM",
]


INITIALIZATIONS = ("one_cluster_per_record", "random_assignment")
ASSIGNMENTS = ("sample", "argmax")


class BaseCluster:
    """
    A mixture component with incrementally maintained sufficient
    statistics.

    The feature-id table (feature -> column index) must be set with
    `set_feature_ids` before records can be added, removed or scored.
    """

    def __init__(self, cluster_id, dimensions):
        self.cluster_id = cluster_id
        self.dimensions = dimensions
        self.size = 0
        self.feature_ids = None

    def set_feature_ids(self, feature_ids):
        if len(feature_ids) != self.dimensions:
            raise ContractViolation(
                f"cluster {self.cluster_id} has {self.dimensions} dimensions "
                f"but the feature-id table has {len(feature_ids)} columns"
            )
        self.feature_ids = feature_ids

    def _check_feature_ids(self):
        if self.feature_ids is None:
            raise ContractViolation(f"the feature ids of cluster {self.cluster_id} are not set")

    def vector(self, x):
        """Densify a feature mapping using the feature-id table."""
        self._check_feature_ids()
        return AssociativeArray.to_vector(x, self.feature_ids)

    def add(self, x):
        self.add_vector(self.vector(x))

    def remove(self, x):
        self.remove_vector(self.vector(x))

    def posterior_log_pdf(self, x):
        """log P(x | the records currently in this cluster)."""
        return self.log_pdf_vector(self.vector(x))

    def add_vector(self, xi):
        self._check_feature_ids()
        self._add(xi)
        self.size += 1
        self._invalidate()

    def remove_vector(self, xi):
        self._check_feature_ids()
        if self.size == 0:
            raise ContractViolation(f"cannot remove a record from empty cluster {self.cluster_id}")
        self._remove(xi)
        self.size -= 1
        self._invalidate()

    def clear(self):
        self.size = 0
        self._reset()
        self._invalidate()

    def log_pdf_vector(self, xi):
        raise NotImplementedError

    def _add(self, xi):
        raise NotImplementedError

    def _remove(self, xi):
        raise NotImplementedError

    def _reset(self):
        raise NotImplementedError

    def _invalidate(self):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(cluster_id={self.cluster_id!r}, size={self.size})"


class GaussianCluster(BaseCluster):
    """
    A multivariate normal cluster with a conjugate Normal-Inverse-Wishart
    prior.

    Parameters
    ----------
    cluster_id : hashable

    dimensions : int

    kappa0 : float
        Prior pseudo-count for the mean.

    nu0 : float
        Prior degrees of freedom. Values below `dimensions` are raised to
        `dimensions` so the posterior scale matrix stays non-singular.

    mu0 : array of shape (dimensions,), optional
        Prior mean (default zeros).

    psi0 : array of shape (dimensions, dimensions), optional
        Prior scale matrix (default identity).

    Notes
    -----
    With n records, sample mean m and scatter C = sum(x x') - n m m':

        kappa_n = kappa0 + n
        nu_n = nu0 + n
        mean = (kappa0 mu0 + n m) / kappa_n
        psi_n = psi0 + C + kappa0 n / kappa_n (m - mu0)(m - mu0)'
        covariance = psi_n (kappa_n + 1) / (kappa_n (nu_n - d + 1))

    An empty cluster uses the prior: mean mu0 and covariance psi0.
    """

    def __init__(self, cluster_id, dimensions, kappa0=0.0, nu0=1.0, mu0=None, psi0=None):
        super().__init__(cluster_id, dimensions)
        self.kappa0 = kappa0
        self.nu0 = max(nu0, dimensions)
        self.mu0 = np.zeros(dimensions) if mu0 is None else np.asarray(mu0, dtype=float)
        self.psi0 = np.eye(dimensions) if psi0 is None else np.asarray(psi0, dtype=float)
        if self.mu0.shape != (dimensions,):
            raise ValueError(f"mu0 must have shape ({dimensions},)")
        if self.psi0.shape != (dimensions, dimensions):
            raise ValueError(f"psi0 must have shape ({dimensions}, {dimensions})")
        self._reset()
        self._invalidate()

    def _add(self, xi):
        self.xi_sum += xi
        self.xi_square_sum += np.outer(xi, xi)

    def _remove(self, xi):
        self.xi_sum -= xi
        self.xi_square_sum -= np.outer(xi, xi)

    def _reset(self):
        self.xi_sum = np.zeros(self.dimensions)
        self.xi_square_sum = np.zeros((self.dimensions, self.dimensions))

    def _invalidate(self):
        self._mean = None
        self._covariance = None
        self._mean_error = None
        self._mean_df = None
        self._log_determinant = None
        self._precision = None

    def _update_parameters(self):
        n = self.size
        d = self.dimensions
        if n == 0:
            self._mean = self.mu0.copy()
            self._covariance = self.psi0.copy()
            self._mean_error = self.psi0.copy()
            self._mean_df = self.nu0 - d + 1.0
            return

        kappa_n = self.kappa0 + n
        nu = self.nu0 + n

        mu = self.xi_sum / n
        mu_mu0 = mu - self.mu0
        C = self.xi_square_sum - n * np.outer(mu, mu)
        psi = self.psi0 + C + (self.kappa0 * n / kappa_n) * np.outer(mu_mu0, mu_mu0)

        self._mean = (self.kappa0 * self.mu0 + n * mu) / kappa_n
        self._covariance = psi * (kappa_n + 1.0) / (kappa_n * (nu - d + 1.0))
        self._mean_error = psi / (kappa_n * (nu - d + 1.0))
        self._mean_df = nu - d + 1.0

    def _ensure_parameters(self):
        if self._mean is None:
            self._update_parameters()

    @property
    def mean(self):
        self._ensure_parameters()
        return self._mean

    @property
    def covariance(self):
        self._ensure_parameters()
        return self._covariance

    @property
    def mean_error(self):
        """Scale matrix of the posterior of the mean, for confidence intervals."""
        self._ensure_parameters()
        return self._mean_error

    @property
    def mean_df(self):
        """Degrees of freedom of the posterior of the mean."""
        self._ensure_parameters()
        return self._mean_df

    def _ensure_inverse(self):
        self._ensure_parameters()
        if self._precision is None or self._log_determinant is None:
            sign, log_determinant = np.linalg.slogdet(self._covariance)
            if sign <= 0:
                raise ContractViolation(
                    f"the covariance of cluster {self.cluster_id} is not positive definite"
                )
            self._precision = scipy.linalg.inv(self._covariance)
            self._log_determinant = log_determinant

    def log_pdf_vector(self, xi):
        self._ensure_inverse()
        x_mu = xi - self._mean
        mahalanobis = x_mu @ self._precision @ x_mu
        return float(
            -0.5 * mahalanobis
            - 0.5 * self.dimensions * math.log(2.0 * math.pi)
            - 0.5 * self._log_determinant
        )


def log_dirichlet_normalizer(a):
    """C(a) = sum(log Gamma(a_i)) - log Gamma(sum(a_i))."""
    return float(np.sum(gammaln(a)) - gammaln(np.sum(a)))


class MultinomialCluster(BaseCluster):
    """
    A multinomial cluster with a symmetric Dirichlet prior.

    Parameters
    ----------
    cluster_id : hashable

    dimensions : int

    alpha_words : float
        Dirichlet concentration added to every word count.

    Notes
    -----
    The posterior predictive log probability of a count vector x is

        C(counts + alpha_words + x) - C(counts + alpha_words)

    where C is `log_dirichlet_normalizer`. The second term is cached until
    the next add or remove.
    """

    def __init__(self, cluster_id, dimensions, alpha_words=50.0):
        super().__init__(cluster_id, dimensions)
        self.alpha_words = alpha_words
        self._reset()
        self._invalidate()

    def _add(self, xi):
        self.word_counts += xi

    def _remove(self, xi):
        self.word_counts -= xi

    def _reset(self):
        self.word_counts = np.zeros(self.dimensions)

    def _invalidate(self):
        self._log_normalizer = None

    @property
    def word_probabilities(self):
        """The Dirichlet-smoothed word probabilities."""
        smoothed = self.word_counts + self.alpha_words
        return smoothed / smoothed.sum()

    def log_pdf_vector(self, xi):
        self._check_feature_ids()
        smoothed = self.word_counts + self.alpha_words
        if self._log_normalizer is None:
            self._log_normalizer = log_dirichlet_normalizer(smoothed)
        return log_dirichlet_normalizer(smoothed + xi) - self._log_normalizer


class BaseDPMM(BaseSparseClusterer):
    """
    Base class for Dirichlet Process Mixture Models.

    Subclasses implement `_new_cluster(cluster_id)`.

    Parameters
    ----------
    alpha : float
        Concentration parameter. Larger values favour more clusters.

    max_iter : int
        Maximum number of Gibbs sweeps. Sampling stops early after a sweep
        in which no record changed cluster.

    initialization : {'one_cluster_per_record', 'random_assignment'}
        Start with one cluster per record, or with about
        max(alpha, 1) * log(n) clusters and records assigned uniformly at
        random.

    assignment : {'sample', 'argmax'}
        Sample the new cluster of a record from its posterior, or pick the
        most probable cluster (a deterministic variant).

    max_clusters : int or None
        If set, no new cluster is opened while this many clusters exist.

    random_state : None, int or RandomState

    n_jobs : int or None
        Number of threads for scoring the clusters.

    verbose : int

    callback : callable or None
        Called as callback(self) after each sweep.

    Attributes
    ----------
    clusters_ : dict
        cluster id -> cluster

    labels_ : ndarray
        Cluster id of every training record.

    feature_ids_ : dict
        feature -> column index of the dense cluster statistics.

    n_iter_ : int
        Number of sweeps performed.

    n_clusters_history_ : list
        Number of clusters after every sweep.
    """

    def _check_hyperparameters(self):
        if self.alpha <= 0:
            raise ValueError("alpha must be positive")
        if self.max_iter < 1:
            raise ValueError("max_iter must be at least 1")
        if self.max_clusters is not None and self.max_clusters < 1:
            raise ValueError("max_clusters must be at least 1")

    def _new_cluster(self, cluster_id):
        raise NotImplementedError

    def _initialize_clusters(self, ids, vectors, initialization, random_state):
        clusters = self.store_.get_map("clusters")
        assignments = self.store_.get_map("assignments", big=True)
        if initialization == "one_cluster_per_record":
            for cluster_id, record_id in enumerate(ids):
                cluster = self._new_cluster(cluster_id)
                cluster.add_vector(vectors[record_id])
                clusters[cluster_id] = cluster
                assignments[record_id] = cluster_id
        else:
            n_initial = int(max(self.alpha, 1.0) * math.log(len(ids)))
            if self.max_clusters is not None:
                n_initial = min(n_initial, self.max_clusters)
            n_initial = max(n_initial, 1)
            for cluster_id in range(n_initial):
                clusters[cluster_id] = self._new_cluster(cluster_id)
            for record_id in ids:
                cluster_id = int(random_state.randint(n_initial))
                clusters[cluster_id].add_vector(vectors[record_id])
                assignments[record_id] = cluster_id
            for cluster_id in [k for k, c in clusters.items() if c.size == 0]:
                del clusters[cluster_id]
        return clusters, assignments

    def _fit(self, frame):
        self._check_hyperparameters()
        initialization = check_option("initialization", self.initialization, INITIALIZATIONS)
        assignment = check_option("assignment", self.assignment, ASSIGNMENTS)
        random_state = check_random_state(self.random_state)

        feature_ids = {}
        for record in frame:
            for feature in record.x:
                feature_ids.setdefault(feature, len(feature_ids))
        if not feature_ids:
            raise ValueError("the records have no features")
        self.feature_ids_ = feature_ids

        ids = frame.ids()
        vectors = {
            record_id: AssociativeArray.to_vector(record.x, feature_ids)
            for record_id, record in frame.items()
        }
        clusters, assignments = self._initialize_clusters(ids, vectors, initialization, random_state)
        self.clusters_ = clusters
        next_id = max(clusters) + 1

        n = len(ids)
        log_alpha = math.log(self.alpha)
        log_denominator = math.log(self.alpha + n - 1.0)

        def existing_cluster_scores(xi):
            items = list(clusters.items())
            scores = parallel_apply(
                lambda item: item[1].log_pdf_vector(xi) + math.log(item[1].size) - log_denominator,
                items,
                self.n_jobs,
            )
            return AssociativeArray(zip((k for k, _ in items), scores))

        self.n_clusters_history_ = []
        self._start_iterations()
        converged = False
        for iteration in range(self.max_iter):
            changed = False
            for record_id in ids:
                xi = vectors[record_id]
                current_id = assignments[record_id]
                current = clusters[current_id]
                current.remove_vector(xi)
                retired = current.size == 0
                if retired:
                    del clusters[current_id]

                scores = existing_cluster_scores(xi)

                new_cluster = None
                if self.max_clusters is None or len(clusters) < self.max_clusters:
                    # A record alone in its cluster keeps its cluster id
                    new_id = current_id if retired else next_id
                    new_cluster = self._new_cluster(new_id)
                    scores[new_id] = new_cluster.log_pdf_vector(xi) + log_alpha - log_denominator

                normalize_exp(scores)
                if assignment == "argmax":
                    selected_id = select_max_key(scores)
                else:
                    selected_id = weighted_sampling(scores, random_state)

                if new_cluster is not None and selected_id == new_cluster.cluster_id:
                    clusters[selected_id] = new_cluster
                    if selected_id == next_id:
                        next_id += 1
                clusters[selected_id].add_vector(xi)

                if selected_id != current_id:
                    assignments[record_id] = selected_id
                    changed = True

            self.n_clusters_history_.append(len(clusters))
            if self.verbose:
                print("Iteration #", iteration)
            if self.verbose >= 2:
                print(f"  {len(clusters)} clusters")
            self._on_iteration(iteration)
            if not changed:
                converged = True
                break

        if not converged:
            warnings.warn(
                f"Gibbs sampling did not settle within max_iter={self.max_iter} sweeps; "
                "cluster assignments were still changing.",
                ConvergenceWarning,
            )
        self.labels_ = np.array([assignments[record_id] for record_id in ids])

    def _cluster_scores(self, x):
        xi = AssociativeArray.to_vector(x, self.feature_ids_)
        scores = AssociativeArray(
            (cluster_id, cluster.log_pdf_vector(xi)) for cluster_id, cluster in self.clusters_.items()
        )
        return normalize_exp(scores)

    def predict_proba(self, X):
        """
        Posterior cluster probabilities, of shape (n_samples, n_clusters),
        with columns in the order of `cluster_ids_`.
        """
        return self._score_matrix(X)


class GaussianDPMM(BaseDPMM):
    """
    Dirichlet Process Mixture of multivariate normals.

    See BaseDPMM for the common parameters and GaussianCluster for the
    prior hyperparameters kappa0, nu0, mu0 and psi0. mu0 and psi0 default
    to zeros and the identity matrix.
    """

    def __init__(
        self,
        *,
        alpha=1.0,
        kappa0=0.0,
        nu0=1.0,
        mu0=None,
        psi0=None,
        max_iter=1000,
        initialization="one_cluster_per_record",
        assignment="sample",
        max_clusters=None,
        random_state=None,
        n_jobs=None,
        verbose=0,
        callback=None,
    ):
        self.alpha = alpha
        self.kappa0 = kappa0
        self.nu0 = nu0
        self.mu0 = mu0
        self.psi0 = psi0
        self.max_iter = max_iter
        self.initialization = initialization
        self.assignment = assignment
        self.max_clusters = max_clusters
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.verbose = verbose
        self.callback = callback

    def _check_hyperparameters(self):
        super()._check_hyperparameters()
        if self.kappa0 < 0:
            raise ValueError("kappa0 must be non-negative")

    def _new_cluster(self, cluster_id):
        cluster = GaussianCluster(
            cluster_id,
            len(self.feature_ids_),
            kappa0=self.kappa0,
            nu0=self.nu0,
            mu0=self.mu0,
            psi0=self.psi0,
        )
        cluster.set_feature_ids(self.feature_ids_)
        return cluster


class MultinomialDPMM(BaseDPMM):
    """
    Dirichlet Process Mixture of multinomials, for count data such as
    word counts.

    See BaseDPMM for the common parameters.

    Parameters
    ----------
    alpha_words : float (default 50.0)
        Dirichlet concentration of every cluster's word distribution.
    """

    def __init__(
        self,
        *,
        alpha=1.0,
        alpha_words=50.0,
        max_iter=1000,
        initialization="one_cluster_per_record",
        assignment="sample",
        max_clusters=None,
        random_state=None,
        n_jobs=None,
        verbose=0,
        callback=None,
    ):
        self.alpha = alpha
        self.alpha_words = alpha_words
        self.max_iter = max_iter
        self.initialization = initialization
        self.assignment = assignment
        self.max_clusters = max_clusters
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.verbose = verbose
        self.callback = callback

    def _check_hyperparameters(self):
        super()._check_hyperparameters()
        if self.alpha_words <= 0:
            raise ValueError("alpha_words must be positive")

    def _new_cluster(self, cluster_id):
        cluster = MultinomialCluster(cluster_id, len(self.feature_ids_), alpha_words=self.alpha_words)
        cluster.set_feature_ids(self.feature_ids_)
        return cluster
