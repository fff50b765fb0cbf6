"""
Named parameter registry.

Parameters are dispatched through an ordered list of rules. The first rule
whose `matches` accepts a key handles it; the last rule is a catch-all that
forwards unknown keys to the dynamics engine as model variables. Each rule
also reports its current values, so enumeration and updates share one
source of truth.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set

from .engine import Variable
from .sqwbase import (
    KIND_COMPLEX,
    KIND_REAL,
    InvalidParameterValue,
    SqwVar,
    VarUpdate,
    normalise_update,
    str_to_complex,
    str_to_real,
    var_to_str,
)

logger = logging.getLogger(__name__)

# engine recomputations, in the order they have to run
CALC_ATOM_SITES = "atom_sites"
CALC_SPIN_ROTATION = "spin_rotation"
CALC_EXCHANGE_TERMS = "exchange_terms"
RECOMPUTE_ORDER = (CALC_ATOM_SITES, CALC_SPIN_ROTATION, CALC_EXCHANGE_TERMS)

FIELD_TRIGGERS = frozenset(RECOMPUTE_ORDER)
BRAGG_TRIGGERS = frozenset({CALC_SPIN_ROTATION})
VARIABLE_TRIGGERS = frozenset(RECOMPUTE_ORDER)


def positive_real(text: str) -> float:
    value = str_to_real(text)
    if not value > 0.0:
        raise InvalidParameterValue(f"Value must be positive, got {value}.")
    return value


def non_negative_real(text: str) -> float:
    value = str_to_real(text)
    if not value >= 0.0:
        raise InvalidParameterValue(f"Value must not be negative, got {value}.")
    return value


class ParameterRule(ABC):
    """Base class of registry rules."""

    @abstractmethod
    def matches(self, name: str) -> bool:
        """True if the rule handles the key."""

    @abstractmethod
    def apply(self, name: str, text: str) -> Set[str]:
        """Apply an update and return the engine recomputations it requires."""

    @abstractmethod
    def read(self) -> List[SqwVar]:
        """Current values of the keys handled by the rule."""


class KeyRule(ParameterRule):
    """
    A fixed, recognised key.

    Args:
        key: Parameter name.
        kind: One of the SqwVar kinds, tells the host how to parse the text.
        getter: Returns the current value, or None to hide the key.
        setter: Receives the parsed value.
        parse: Converts the text to a value, raising InvalidParameterValue.
        triggers: Engine recomputations needed after an update.
    """

    def __init__(
        self,
        key: str,
        kind: str,
        getter: Callable[[], Any],
        setter: Callable[[Any], None],
        parse: Callable[[str], Any] = str_to_real,
        triggers: Iterable[str] = (),
    ):
        self.key = key
        self.kind = kind
        self.getter = getter
        self.setter = setter
        self.parse = parse
        self.triggers = frozenset(triggers)

    def matches(self, name: str) -> bool:
        return name == self.key

    def apply(self, name: str, text: str) -> Set[str]:
        self.setter(self.parse(text))
        return set(self.triggers)

    def read(self) -> List[SqwVar]:
        value = self.getter()
        if value is None:
            return []
        return [SqwVar(self.key, self.kind, var_to_str(value))]


class VariableRule(ParameterRule):
    """Catch-all: every key is a model variable owned by the engine."""

    def __init__(self, get_engine: Callable[[], Any]):
        self.get_engine = get_engine

    def matches(self, name: str) -> bool:
        return True

    def apply(self, name: str, text: str) -> Set[str]:
        engine = self.get_engine()
        value = str_to_complex(text)
        known = {var.name for var in engine.get_variables()}
        if name not in known:
            logger.debug(f"Parameter '{name}' is not a known variable, adding it to the model.")
        engine.set_variable(Variable(name, value))
        return set(VARIABLE_TRIGGERS)

    def read(self) -> List[SqwVar]:
        result = []
        for var in self.get_engine().get_variables():
            value = complex(var.value)
            kind = KIND_REAL if value.imag == 0.0 else KIND_COMPLEX
            result.append(SqwVar(var.name, kind, var_to_str(value)))
        return result


class ParameterRegistry:
    """Ordered rule list dispatching named parameter reads and writes."""

    def __init__(self, rules: Optional[Sequence[ParameterRule]] = None):
        self.rules: List[ParameterRule] = list(rules or [])

    def add_rule(self, rule: ParameterRule, index: Optional[int] = None):
        """Adds a rule, by default before the catch-all rule at the end."""
        if index is None:
            index = max(len(self.rules) - 1, 0)
        self.rules.insert(index, rule)

    def rule_for(self, name: str) -> Optional[ParameterRule]:
        for rule in self.rules:
            if rule.matches(name):
                return rule
        return None

    def enumerate(self) -> List[SqwVar]:
        result: List[SqwVar] = []
        for rule in self.rules:
            result.extend(rule.read())
        return result

    def apply(self, updates: Iterable[VarUpdate], engine: Any) -> List[str]:
        """
        Applies a batch of updates.

        Invalid entries are skipped and reported; they never abort the
        batch. The engine recomputations requested by the applied entries
        run once, after the batch.

        Returns:
            List[str]: One diagnostic message per skipped entry.
        """
        pending: Set[str] = set()
        diagnostics: List[str] = []

        for update in updates:
            try:
                name, text = normalise_update(update)
            except (InvalidParameterValue, TypeError) as e:
                msg = f"Skipping malformed parameter update {update!r}: {e}"
                logger.warning(msg)
                diagnostics.append(msg)
                continue

            rule = self.rule_for(name)
            if rule is None:
                msg = f"Skipping parameter '{name}': no rule accepts it."
                logger.warning(msg)
                diagnostics.append(msg)
                continue

            try:
                pending |= rule.apply(name, text)
            except InvalidParameterValue as e:
                msg = f"Skipping parameter '{name}' = '{text}': {e}"
                logger.warning(msg)
                diagnostics.append(msg)

        run_recomputations(engine, pending)
        return diagnostics


def run_recomputations(engine: Any, pending: Set[str]):
    for step in RECOMPUTE_ORDER:
        if step in pending:
            getattr(engine, f"calc_{step}")()
