"""
Symbolic coupling expressions.

Exchange constants, DMI components, spin directions and spin magnitudes in a
model may be given as expressions in the model variables, e.g. ``"-2*J2"``
or ``"cos(phi)"``. They are parsed once into SymPy expressions and evaluated
numerically whenever the variables change.
"""
import logging
import tokenize
from typing import Dict, Iterable, List, Union

import numpy as np
import sympy as sp
from sympy.parsing.sympy_parser import parse_expr, standard_transformations

logger = logging.getLogger(__name__)

ExprLike = Union[float, int, complex, str, sp.Expr]

# names usable in expressions besides the model variables
_ALLOWED_NAMES: Dict[str, object] = {
    "sqrt": sp.sqrt,
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "asin": sp.asin,
    "acos": sp.acos,
    "atan": sp.atan,
    "atan2": sp.atan2,
    "exp": sp.exp,
    "log": sp.log,
    "abs": sp.Abs,
    "pi": sp.pi,
    "I": sp.I,
}

# only what the parser transformations emit, so that names such as
# "gamma", "beta" or "S" become plain symbols instead of SymPy objects
_PARSER_GLOBALS: Dict[str, object] = {
    "Symbol": sp.Symbol,
    "Integer": sp.Integer,
    "Float": sp.Float,
    "Rational": sp.Rational,
    "Lambda": sp.Lambda,
    "factorial": sp.factorial,
}


def to_expr(value: ExprLike) -> sp.Expr:
    """
    Convert a number or an expression string into a SymPy expression.

    Raises:
        ValueError: If the string cannot be parsed.
    """
    if isinstance(value, sp.Basic):
        return value
    if isinstance(value, (int, float, complex, np.number)):
        return sp.sympify(complex(value) if isinstance(value, complex) else float(value))
    text = str(value).strip()
    if not text:
        raise ValueError("Empty expression.")
    try:
        return parse_expr(
            text,
            local_dict=dict(_ALLOWED_NAMES),
            global_dict=dict(_PARSER_GLOBALS),
            transformations=standard_transformations,
        )
    except (SyntaxError, TypeError, ValueError, tokenize.TokenError, sp.SympifyError) as e:
        raise ValueError(f"Cannot parse expression '{text}': {e}") from e


def to_expr_vector(values: Iterable[ExprLike]) -> List[sp.Expr]:
    return [to_expr(v) for v in values]


def free_names(expr: sp.Expr) -> List[str]:
    """Sorted names of the free symbols of an expression."""
    return sorted(s.name for s in expr.free_symbols)


def evaluate(expr: sp.Expr, variables: Dict[str, complex]) -> complex:
    """
    Numerically evaluate an expression with the given variable values.

    Args:
        expr (sp.Expr): Expression as returned by `to_expr`.
        variables (Dict[str, complex]): Variable name -> value.

    Returns:
        complex: The value of the expression.

    Raises:
        KeyError: If the expression references an undefined variable.
    """
    missing = [name for name in free_names(expr) if name not in variables]
    if missing:
        raise KeyError(f"Undefined variable(s) {missing} in expression '{expr}'.")

    subs = {sp.Symbol(name): variables[name] for name in free_names(expr)}
    # symbols created by parse_expr carry no assumptions, same as sp.Symbol(name)
    return complex(sp.N(expr.subs(subs)))
