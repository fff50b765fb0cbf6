"""
magsqw: dynamical structure factor S(q,E) of magnon models.
"""
__version__ = "0.1.0"

from .core import MagnonModel, Mode  # noqa: E402
from .engine import ExternalField, MagDyn, Variable  # noqa: E402
from .sqwbase import (  # noqa: E402
    InvalidParameterValue,
    InvalidVectorArity,
    SqwBase,
    SqwVar,
)
