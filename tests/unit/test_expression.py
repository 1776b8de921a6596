"""
Unit tests for expression module.

Tests for tokenizing, parsing, differentiation, evaluation and compilation.
"""
import math

import numpy as np
import pytest

from pybond.errors import ExpressionError
from pybond.expression import (
    CompiledExpression,
    Op,
    differentiate,
    evaluate,
    parse_expression,
    tokenize,
)
from pybond.function import TabulatedFunction


def constant_value(text: str) -> float:
    """Parse and evaluate an expression without variables."""
    return float(evaluate(parse_expression(text), []))


class TestTokenizer:
    """Tests for tokenize()."""

    def test_kinds(self) -> None:
        """Numbers, names and symbols are recognized."""
        tokens = tokenize("2.5e-1*k + x1")
        assert [t.kind for t in tokens] == ["number", "symbol", "name", "symbol", "name"]
        assert tokens[0].text == "2.5e-1"

    def test_bad_character(self) -> None:
        """A character that starts no token is reported with its position."""
        with pytest.raises(ExpressionError, match="position 2"):
            tokenize("1 $ 2")


class TestParser:
    """Tests for operator precedence and syntax errors."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2+3*4", 14.0),
            ("(2+3)*4", 20.0),
            ("10-4-3", 3.0),
            ("24/4/2", 3.0),
            ("-2^2", -4.0),
            ("2^3^2", 512.0),
            ("2^-1", 0.5),
            ("-(-3)", 3.0),
            (".5 + 1e1", 10.5),
        ],
    )
    def test_precedence(self, text: str, expected: float) -> None:
        """Arithmetic follows the usual precedence rules."""
        assert constant_value(text) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "text, message",
        [
            ("1+", "end of expression"),
            ("(1+2", "unbalanced parentheses"),
            ("1+2)", "Unmatched"),
            ("", "Empty"),
            ("2 3", "Unexpected"),
            ("foo(1)", "Unknown function 'foo'"),
            ("sqrt(1, 2)", "expects 1 argument"),
            ("min(1)", "expects 2 argument"),
            ("angle(p1, p2)", "expects 3 argument"),
            ("distance(p1, 2)", "particle names"),
        ],
    )
    def test_syntax_errors(self, text: str, message: str) -> None:
        """Malformed expressions fail with a descriptive error."""
        with pytest.raises(ExpressionError, match=message):
            parse_expression(text)

    def test_definitions_are_substituted(self) -> None:
        """Intermediate definitions may refer to later ones."""
        assert constant_value("a*b; a=b+1; b=3") == 12.0

    def test_circular_definition(self) -> None:
        """Definitions may not refer back to themselves."""
        with pytest.raises(ExpressionError, match="Circular"):
            parse_expression("a; a=b; b=a")

    def test_definition_without_equals(self) -> None:
        """A ';' part must be a definition."""
        with pytest.raises(ExpressionError, match="has no '='"):
            parse_expression("a; b")

    def test_geometry_node(self) -> None:
        """Geometry calls stay unresolved until compilation."""
        tree = parse_expression("distance(p1, p2)")
        assert tree.op is Op.GEOMETRY
        assert [child.name for child in tree.children] == ["p1", "p2"]


def energy_and_slope(text: str, x: float):
    """Energy and analytic dE/dx1 of a one-particle expression at x1=x."""
    compiled = CompiledExpression(text, 1)
    values = [x, 0.2, 0.1]
    energy = evaluate(compiled.energy, values)
    derivative = compiled.coordinate_derivatives.get(0)
    slope = 0.0 if derivative is None else evaluate(derivative, values)
    return compiled, float(energy), float(slope)


class TestDifferentiation:
    """Tests for symbolic derivatives against finite differences."""

    @pytest.mark.parametrize(
        "text, x",
        [
            ("sqrt(x1)", 0.7),
            ("exp(2*x1)", 0.3),
            ("log(x1)", 0.4),
            ("sin(x1)", 0.3),
            ("cos(x1)", 0.3),
            ("sec(x1)", 0.3),
            ("csc(x1)", 0.3),
            ("tan(x1)", 0.3),
            ("cot(x1)", 0.3),
            ("asin(x1)", 0.3),
            ("acos(x1)", 0.3),
            ("atan(x1)", 0.3),
            ("sinh(x1)", 0.3),
            ("cosh(x1)", 0.3),
            ("tanh(x1)", 0.3),
            ("erf(x1)", 0.3),
            ("erfc(x1)", 0.3),
            ("abs(x1)", -0.4),
            ("x1^3", 0.6),
            ("x1^y1", 0.6),
            ("y1^x1", 0.6),
            ("min(x1, 0.5)", 0.3),
            ("max(x1, 0.5)", 0.3),
            ("x1/(1+x1^2)", 0.8),
            ("-x1*z1 + 3", 0.8),
        ],
    )
    def test_matches_finite_difference(self, text: str, x: float) -> None:
        """Analytic derivative agrees with a central difference."""
        h = 1e-6
        _, _, slope = energy_and_slope(text, x)
        _, e_plus, _ = energy_and_slope(text, x + h)
        _, e_minus, _ = energy_and_slope(text, x - h)
        assert slope == pytest.approx((e_plus - e_minus) / (2 * h), rel=1e-5, abs=1e-7)

    def test_step_and_delta_values(self) -> None:
        """step(0)=1, step(x<0)=0, delta(0)=1, delta(x≠0)=0."""
        assert constant_value("step(-1)+2*step(0)") == 2.0
        assert energy_and_slope("step(x1)", -0.5)[1] == 0.0
        assert energy_and_slope("step(x1)", 0.0)[1] == 1.0
        assert energy_and_slope("delta(x1)", 0.0)[1] == 1.0
        assert energy_and_slope("delta(x1)", 0.1)[1] == 0.0

    def test_step_has_zero_derivative(self) -> None:
        """step and delta contribute no derivative."""
        compiled, _, slope = energy_and_slope("step(x1) + delta(x1)", 0.3)
        assert compiled.coordinate_derivatives == {}
        assert slope == 0.0

    def test_abs_derivative_at_zero(self) -> None:
        """abs has zero slope at its kink."""
        assert energy_and_slope("abs(x1)", 0.0)[2] == 0.0

    def test_simplification(self) -> None:
        """Derivatives of simple expressions fold to constants."""
        compiled = CompiledExpression("3*x1 + y1", 1)
        derivative = differentiate(compiled.energy, 0)
        assert derivative.op is Op.CONSTANT
        assert derivative.value == 3.0


class TestEvaluation:
    """Tests for evaluate()."""

    def test_vector_lanes(self) -> None:
        """Variables may hold one value per bond."""
        compiled = CompiledExpression("x1*y1 + 1", 1)
        result = evaluate(compiled.energy, [np.array([1.0, 2.0]), np.array([3.0, 4.0]), 0.0])
        np.testing.assert_allclose(result, [4.0, 9.0])

    def test_floating_point_faults_do_not_raise(self) -> None:
        """Domain errors produce nan/inf rather than exceptions."""
        compiled = CompiledExpression("log(x1) + 1/y1", 1)
        with np.errstate(all="ignore"):
            result = evaluate(compiled.energy, [-1.0, 0.0, 0.0])
        assert math.isnan(result)

    def test_tabulated_call(self) -> None:
        """Tabulated functions evaluate through their spline."""
        table = TabulatedFunction([0.0, 1.0, 2.0], 0.0, 2.0)
        compiled = CompiledExpression("f(x1)^2", 1, functions={"f": table})
        values = [1.5, 0.0, 0.0]
        energy = evaluate(compiled.energy, values, compiled.functions)
        slope = evaluate(compiled.coordinate_derivatives[0], values, compiled.functions)
        assert float(energy) == pytest.approx(2.25)
        assert float(slope) == pytest.approx(3.0)


class TestCompiledExpression:
    """Tests for name resolution and derivative bookkeeping."""

    def test_slot_layout(self) -> None:
        """Coordinates, then per-bond, then globals, then geometry."""
        compiled = CompiledExpression(
            "k*(distance(p1,p2)-r0)^2*scale", 2, ["k", "r0"], ["scale"]
        )
        assert compiled.slot_of("x1") == 0
        assert compiled.slot_of("z2") == 5
        assert compiled.slot_of("k") == 6
        assert compiled.slot_of("r0") == 7
        assert compiled.slot_of("scale") == 8
        assert compiled.geometry_offset == 9
        assert compiled.num_variables == 10

    def test_geometry_terms_are_shared(self) -> None:
        """Repeated geometry calls map to one term."""
        compiled = CompiledExpression(
            "distance(p1,p2) + distance(p1,p2)^2 + angle(p3,p2,p1)", 3
        )
        assert [str(t) for t in compiled.geometry_terms] == [
            "distance(p1,p2)",
            "angle(p3,p2,p1)",
        ]
        assert compiled.geometry_terms[1].roles == (2, 1, 0)
        assert set(compiled.geometry_derivatives) == {0, 1}
        assert compiled.coordinate_derivatives == {}

    def test_unknown_variable(self) -> None:
        """Undeclared identifiers fail at build time."""
        with pytest.raises(ExpressionError, match="Unknown variable 'k'"):
            CompiledExpression("k*distance(p1,p2)", 2)

    def test_particle_out_of_range(self) -> None:
        """Particle labels must be within the bond."""
        with pytest.raises(ExpressionError, match="does not exist"):
            CompiledExpression("distance(p1,p3)", 2)

    def test_coordinate_out_of_range(self) -> None:
        """x3 is unknown when bonds have two particles."""
        with pytest.raises(ExpressionError, match="Unknown variable 'x3'"):
            CompiledExpression("x3", 2)

    def test_bare_particle_name(self) -> None:
        """Particle labels are only valid inside geometry calls."""
        with pytest.raises(ExpressionError, match="may only appear"):
            CompiledExpression("p1 + 1", 2)

    def test_non_particle_geometry_argument(self) -> None:
        """Geometry arguments must be particle labels."""
        with pytest.raises(ExpressionError, match="not a particle name"):
            CompiledExpression("distance(p1, k)", 2, ["k"])

    def test_reserved_parameter_name(self) -> None:
        """Parameters may not shadow coordinates or functions."""
        with pytest.raises(ExpressionError, match="reserved"):
            CompiledExpression("1", 2, ["x1"])
        with pytest.raises(ExpressionError, match="reserved"):
            CompiledExpression("1", 2, [], ["sin"])

    def test_duplicate_names(self) -> None:
        """A name may be declared only once across namespaces."""
        with pytest.raises(ExpressionError, match="already in use"):
            CompiledExpression("k", 2, ["k"], ["k"])

    def test_unknown_tabulated_function(self) -> None:
        """Calls to undeclared functions fail."""
        with pytest.raises(ExpressionError, match="Unknown function 'g'"):
            CompiledExpression("g(x1)", 1)
