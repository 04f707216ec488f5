"""
policy_methods -- estimators for the policy-methods course.

Each sub-module implements one family of methods directly with numpy /
scipy linear algebra and optimization; statsmodels is used only for the
mixed-effects fit. Results come back as plain dicts so they can be
tabulated with `tables.regression_table`.
"""

from .utils import ols_fit, add_const, design_matrix
from . import mle
from . import ols
from . import binary_outcomes
from . import timeseries
from . import panel
from . import spatial
from . import tables
from . import data
