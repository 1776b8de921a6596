"""
Numerical evaluation of resolved expression trees.

Variable slots hold either scalars (global parameters) or (n,) arrays with
one lane per bond, so a tree is evaluated for a whole batch of bonds at
once. Callers should run inside ``np.errstate`` if they want floating
point faults (log of a negative, division by zero) to pass silently as
nan/inf.
"""
from typing import Any, Callable, Dict, Sequence

import numpy as np
from scipy.special import erf, erfc

from pybond.errors import ExpressionError

from .node import Node, Op


def _step(x: Any) -> Any:
    return np.where(x < 0.0, 0.0, 1.0)


def _delta(x: Any) -> Any:
    return np.where(x == 0.0, 1.0, 0.0)


_UNARY: Dict[Op, Callable[[Any], Any]] = {
    Op.NEGATE: np.negative,
    Op.SQRT: np.sqrt,
    Op.EXP: np.exp,
    Op.LOG: np.log,
    Op.SIN: np.sin,
    Op.COS: np.cos,
    Op.SEC: lambda x: 1.0 / np.cos(x),
    Op.CSC: lambda x: 1.0 / np.sin(x),
    Op.TAN: np.tan,
    Op.COT: lambda x: 1.0 / np.tan(x),
    Op.ASIN: np.arcsin,
    Op.ACOS: np.arccos,
    Op.ATAN: np.arctan,
    Op.SINH: np.sinh,
    Op.COSH: np.cosh,
    Op.TANH: np.tanh,
    Op.ERF: erf,
    Op.ERFC: erfc,
    Op.ABS: np.abs,
    Op.STEP: _step,
    Op.DELTA: _delta,
}

_BINARY: Dict[Op, Callable[[Any, Any], Any]] = {
    Op.ADD: np.add,
    Op.SUBTRACT: np.subtract,
    Op.MULTIPLY: np.multiply,
    Op.DIVIDE: np.divide,
    Op.POWER: np.power,
    Op.MIN: np.minimum,
    Op.MAX: np.maximum,
}


def evaluate(tree: Node, values: Sequence[Any], functions: Sequence[Any] = ()) -> Any:
    """
    Evaluate a resolved tree.

    Args:
        tree: Tree whose variables and tabulated calls carry slot indices.
        values: Value of every variable slot (scalar or (n,) array).
        functions: Tabulated functions, indexed by TABULATED node slot.

    Returns:
        Scalar or array result, broadcast over the variable lanes.

    Raises:
        ExpressionError: If the tree still holds unresolved nodes.
    """
    op = tree.op
    if op is Op.CONSTANT:
        return tree.value
    if op is Op.VARIABLE:
        if tree.index < 0:
            raise ExpressionError(f"Unresolved variable '{tree.name}'")
        return values[tree.index]

    binary = _BINARY.get(op)
    if binary is not None:
        left, right = tree.children
        return binary(
            evaluate(left, values, functions), evaluate(right, values, functions)
        )
    unary = _UNARY.get(op)
    if unary is not None:
        return unary(evaluate(tree.children[0], values, functions))

    if op is Op.TABULATED or op is Op.TABULATED_DERIVATIVE:
        value, slope = functions[tree.index].evaluate(
            evaluate(tree.children[0], values, functions)
        )
        return value if op is Op.TABULATED else slope
    raise ExpressionError(f"Cannot evaluate node of kind {op}")
