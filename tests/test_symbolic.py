# test_symbolic.py
import pytest
import sympy as sp

from magsqw import symbolic


def test_numbers_become_expressions():
    assert symbolic.evaluate(symbolic.to_expr(1.5), {}) == pytest.approx(1.5)
    assert symbolic.evaluate(symbolic.to_expr(2), {}) == pytest.approx(2.0)


def test_expression_in_variables():
    expr = symbolic.to_expr("-2*J2 + sqrt(S)")
    assert symbolic.free_names(expr) == ["J2", "S"]
    assert symbolic.evaluate(expr, {"J2": 0.5, "S": 4.0}) == pytest.approx(1.0)


def test_sympy_names_are_plain_symbols():
    expr = symbolic.to_expr("gamma*beta + S + E")
    assert symbolic.free_names(expr) == ["E", "S", "beta", "gamma"]
    value = symbolic.evaluate(expr, {"gamma": 2.0, "beta": 3.0, "S": 1.0, "E": 0.5})
    assert value == pytest.approx(7.5)


def test_complex_expression():
    expr = symbolic.to_expr("I*D + cos(pi)")
    assert symbolic.evaluate(expr, {"D": 2.0}) == pytest.approx(-1.0 + 2.0j)


def test_existing_expression_passes_through():
    x = sp.Symbol("x")
    assert symbolic.to_expr(x) is x


def test_undefined_variable_raises_key_error():
    with pytest.raises(KeyError):
        symbolic.evaluate(symbolic.to_expr("J1*2"), {"J2": 1.0})


@pytest.mark.parametrize("text", ["", "2*(J1", "J1 +* 3"])
def test_unparseable_expression_raises_value_error(text):
    with pytest.raises(ValueError):
        symbolic.to_expr(text)


def test_to_expr_vector():
    vec = symbolic.to_expr_vector([0, "sin(phi)", 1.0])
    assert [complex(symbolic.evaluate(e, {"phi": 0.0})) for e in vec] == [0, 0, 1]
