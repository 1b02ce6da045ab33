"""
Hybrid elimination over discrete and continuous variables.

Loosely following the hybrid factor graphs of GTSAM

* https://github.com/borglab/gtsam/tree/develop/gtsam/hybrid

There are several data structures of note:

1. decision trees map discrete assignments to leaf values; sums of Gaussian
   evidence are trees of `GaussianFactorGraph`s
2. mixture factors are decision trees of Gaussian factors, and the hybrid
   conditional (`GaussianMixture`) a decision tree of Gaussian conditionals
3. elimination results are (conditional, factor) pairs, where (None, None)
   marks a branch that had nothing to eliminate

A remainder with no continuous keys left becomes a discrete factor with value
exp(-error) per branch; a missing remainder counts as probability 0, not as
an uninformative 1.
"""

from ._base import HybridError, HybridConfigurationError, \
    HybridEliminationError, KeyInvarianceError
from .mixture import GaussianMixtureFactor, GaussianMixture
from .eliminate import eliminate_hybrid
from .factor_graph import HybridGaussianFactorGraph
