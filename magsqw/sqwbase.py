"""
Host-facing S(q,E) model interface.

A host application (fitting or resolution convolution) only sees `SqwBase`:
it evaluates S(q,E), queries the dispersion, and reads or writes the model
parameters as (name, kind, text) triples without knowing the model internals.
"""
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

KIND_REAL = "real"
KIND_VECTOR = "vector"
KIND_COMPLEX = "complex"


class SqwVar(NamedTuple):
    name: str
    kind: str
    value: str


class InvalidParameterValue(ValueError):
    """A parameter value could not be parsed or is out of its domain."""


class InvalidVectorArity(InvalidParameterValue):
    """A vector parameter did not have the expected number of components."""


VarUpdate = Union[SqwVar, Tuple[str, str], Tuple[str, str, str]]


# --- Textual encoding of parameter values ---
def var_to_str(value) -> str:
    """
    Encode a parameter value as text.

    Reals use the shortest representation that reads back to the same float,
    so "0.2" stays "0.2". Vectors are written as "[x y z]", complex numbers
    as "(re+imj)" and booleans as "1.0" / "0.0".
    """
    if isinstance(value, (bool, np.bool_)):
        return "1.0" if value else "0.0"
    if isinstance(value, (complex, np.complexfloating)):
        value = complex(value)
        if value.imag == 0.0:
            return repr(value.real)
        return repr(value)
    if isinstance(value, (list, tuple, np.ndarray)):
        return "[" + " ".join(repr(float(x)) for x in value) + "]"
    return repr(float(value))


def str_to_real(text: str) -> float:
    try:
        return float(text.strip())
    except (AttributeError, ValueError) as e:
        raise InvalidParameterValue(f"'{text}' is not a real number.") from e


def str_to_complex(text: str) -> complex:
    try:
        return complex(text.strip().replace(" ", ""))
    except (AttributeError, ValueError) as e:
        raise InvalidParameterValue(f"'{text}' is not a complex number.") from e


def str_to_vector(text: str, length: int = 3) -> np.ndarray:
    """Parse "[x y z]" (commas and missing brackets tolerated)."""
    try:
        stripped = text.strip().strip("[]()").replace(",", " ")
        values = np.array([float(tok) for tok in stripped.split()], dtype=float)
    except (AttributeError, ValueError) as e:
        raise InvalidParameterValue(f"'{text}' is not a vector of reals.") from e
    if len(values) != length:
        raise InvalidVectorArity(
            f"Expected {length} components, got {len(values)} in '{text}'."
        )
    return values


def str_to_bool(text: str) -> bool:
    lowered = str(text).strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    return str_to_real(lowered) != 0.0


def normalise_update(var: VarUpdate) -> Tuple[str, str]:
    """(name, text) of an update given as a pair or as an SqwVar triple."""
    if isinstance(var, SqwVar):
        return var.name, var.value
    if len(var) == 3:
        return var[0], var[2]
    if len(var) == 2:
        return var[0], var[1]
    raise InvalidParameterValue(f"Malformed parameter update {var!r}.")


class SqwBase(ABC):
    """
    Base class of all S(q,E) models.

    Subclasses set `self._ok` during construction to signal whether the
    model is usable.
    """

    def __init__(self):
        self._ok: bool = False

    def is_ok(self) -> bool:
        return self._ok

    @abstractmethod
    def dispersion(self, h: float, k: float, l: float, extra: bool = False) -> List:
        """Modes (energy, weight) at the momentum transfer (h, k, l)."""

    @abstractmethod
    def evaluate(self, h: float, k: float, l: float, E):
        """S(q,E) at the momentum transfer (h, k, l) and energy E."""

    @abstractmethod
    def get_vars(self) -> List[SqwVar]:
        """All parameters as (name, kind, text) triples."""

    @abstractmethod
    def set_vars(self, vars: Iterable[VarUpdate]) -> List[str]:
        """Apply parameter updates, returning diagnostics for skipped keys."""

    @abstractmethod
    def clone(self) -> "SqwBase":
        """Independent copy of the model."""

    def __call__(self, h: float, k: float, l: float, E):
        return self.evaluate(h, k, l, E)

    def get_var(self, name: str) -> Optional[str]:
        """Text value of a single parameter, None if it does not exist."""
        for var in self.get_vars():
            if var.name == name:
                return var.value
        return None

    def set_var_if_avail(self, name: str, value: str) -> bool:
        """
        Set a parameter only if it is already known to the model.

        Returns:
            bool: True if the parameter exists and was updated without error.
        """
        if self.get_var(name) is None:
            return False
        return not self.set_vars([(name, value)])

    def set_vars_from(self, names: Sequence[str], values: Sequence[float]) -> List[str]:
        """Convenience for optimizers: set real parameters from numbers."""
        return self.set_vars([(n, var_to_str(float(v))) for n, v in zip(names, values)])
