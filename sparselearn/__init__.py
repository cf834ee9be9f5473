"""
# sparselearn: Classifiers and clusterers for sparse feature records.

Observations are sparse, named feature vectors (mappings from feature
keys to numeric or boolean values) with an optional label. Every
estimator follows the scikit-learn API and also accepts a `Dataframe` of
`Record`s, or a 2d array whose column indices become the feature keys.


## Classifiers:

- MaximumEntropy: conditional maximum entropy over binarized features,
  fitted with Improved Iterative Scaling.
- SoftMaxRegression: multinomial logistic regression with L1, L2 or
  elastic net regularization.
- OrdinalRegression: the cumulative logit model for ordered classes.
- MultinomialNaiveBayes, BinarizedNaiveBayes, BernoulliNaiveBayes.

The two regression models are fitted by batch gradient descent with the
"bold driver" learning-rate heuristic: the rate grows by 5% after an
iteration that does not increase the loss and is halved (and the step
rejected) after one that does.


## Clusterers:

- GaussianDPMM, MultinomialDPMM: Dirichlet Process Mixture Models fitted
  by collapsed Gibbs sampling; the number of clusters is inferred.
- HierarchicalAgglomerative: bottom-up merging with single, complete or
  average linkage.
- Kmeans: k-means with the k-prototypes weighting of non-numerical
  columns.


## Parallelism:

Pass `n_jobs` to spread the per-record work of fitting and prediction
over a pool of threads. Records are split into contiguous chunks; each
thread accumulates a private partial result and the partial results are
merged in the calling thread.
"""

from .records import AssociativeArray, DataType, Dataframe, Record
from .storage import ParameterStore
from .utils import ContractViolation, UnsupportedOptionError
from .maxent import MaximumEntropy
from .softmax import SoftMaxRegression
from .ordinal import OrdinalRegression
from .naive_bayes import (BernoulliNaiveBayes,
                          BinarizedNaiveBayes,
                          MultinomialNaiveBayes)
from .dpmm import GaussianDPMM, MultinomialDPMM
from .hierarchical import HierarchicalAgglomerative
from .kmeans import Kmeans


__all__ = ['AssociativeArray',
           'DataType',
           'Dataframe',
           'Record',
           'ParameterStore',
           'ContractViolation',
           'UnsupportedOptionError',
           'MaximumEntropy',
           'SoftMaxRegression',
           'OrdinalRegression',
           'MultinomialNaiveBayes',
           'BinarizedNaiveBayes',
           'BernoulliNaiveBayes',
           'GaussianDPMM',
           'MultinomialDPMM',
           'HierarchicalAgglomerative',
           'Kmeans']

# PEP0440 compatible formatted version, see:
# https://www.python.org/dev/peps/pep-0440/
#
# Dev branch marker is: 'X.Y.dev' or 'X.Y.devN' where N is an integer.
#
__version__ = '0.1.dev0'
