# -*- coding: utf-8 -*-
from importlib.metadata import PackageNotFoundError, version as _pkg_version

from .Matcher import Matcher
from .exceptions import (
    MatchingError,
    InsufficientDataError,
    InsufficientControlsError,
    MissingValueError,
    GroupLabelError,
)
from .matching import MatchResult
from .table import CovariateTable, build_covariate_table
from .diagnostics import BalanceThresholds
from . import utils
from . import modeling
from . import matching
from . import diagnostics
from . import visualization

try:
    from ._version import version as __version__  # type: ignore
except ImportError:
    try:
        __version__ = _pkg_version("balancematch")
    except PackageNotFoundError:
        __version__ = "0.0.0"
