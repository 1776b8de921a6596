"""
Expression tree nodes.

An expression is a tree of Node values. Every node carries an Op tag and a
payload (children, a constant value, a name, an integer slot); behaviour
is selected by tag in the evaluator and the differentiator rather than by
subclass.

The constructor helpers below fold constants and drop identity terms
(x + 0, x * 1, x ^ 1, ...) so that symbolic derivatives stay small.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Tuple

import numpy as np


class Op(Enum):
    """Node kinds."""
    # Leaves
    CONSTANT = "constant"
    VARIABLE = "variable"
    # Only present between parsing and resolution
    GEOMETRY = "geometry"
    # Arithmetic
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    POWER = "^"
    NEGATE = "neg"
    # Unary functions
    SQRT = "sqrt"
    EXP = "exp"
    LOG = "log"
    SIN = "sin"
    COS = "cos"
    SEC = "sec"
    CSC = "csc"
    TAN = "tan"
    COT = "cot"
    ASIN = "asin"
    ACOS = "acos"
    ATAN = "atan"
    SINH = "sinh"
    COSH = "cosh"
    TANH = "tanh"
    ERF = "erf"
    ERFC = "erfc"
    ABS = "abs"
    STEP = "step"
    DELTA = "delta"
    # Binary functions
    MIN = "min"
    MAX = "max"
    # Tabulated functions, index = function slot
    TABULATED = "tabulated"
    TABULATED_DERIVATIVE = "tabulated_derivative"


UNARY_FUNCTIONS = {
    op.value: op
    for op in (
        Op.SQRT, Op.EXP, Op.LOG, Op.SIN, Op.COS, Op.SEC, Op.CSC, Op.TAN,
        Op.COT, Op.ASIN, Op.ACOS, Op.ATAN, Op.SINH, Op.COSH, Op.TANH,
        Op.ERF, Op.ERFC, Op.ABS, Op.STEP, Op.DELTA,
    )
}
BINARY_FUNCTIONS = {"min": Op.MIN, "max": Op.MAX}


@dataclass(frozen=True)
class Node:
    """
    One node of an expression tree.

    Attributes:
        op: Node kind.
        children: Operand nodes.
        value: Payload of a CONSTANT.
        name: Identifier of a VARIABLE, GEOMETRY or tabulated call.
        index: Resolved variable slot, or tabulated function slot.
    """
    op: Op
    children: Tuple["Node", ...] = ()
    value: float = 0.0
    name: str = ""
    index: int = -1
    _hash: int = field(default=0, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_hash",
            hash((self.op, self.children, self.value, self.name, self.index)),
        )

    def __hash__(self) -> int:
        return self._hash

    @property
    def is_constant(self) -> bool:
        return self.op is Op.CONSTANT

    def is_value(self, value: float) -> bool:
        return self.op is Op.CONSTANT and self.value == value

    def __str__(self) -> str:
        if self.op is Op.CONSTANT:
            return repr(self.value)
        if self.op is Op.VARIABLE:
            return self.name or f"v{self.index}"
        args = ", ".join(str(child) for child in self.children)
        if self.op in (Op.ADD, Op.SUBTRACT, Op.MULTIPLY, Op.DIVIDE, Op.POWER):
            left, right = self.children
            return f"({left} {self.op.value} {right})"
        if self.op is Op.NEGATE:
            return f"(-{self.children[0]})"
        if self.op is Op.TABULATED_DERIVATIVE:
            return f"{self.name}'({args})"
        if self.op in (Op.TABULATED, Op.GEOMETRY):
            return f"{self.name}({args})"
        return f"{self.op.value}({args})"


ZERO = Node(Op.CONSTANT, value=0.0)
ONE = Node(Op.CONSTANT, value=1.0)


def _fold(fn: Callable[..., float], *values: float) -> Node:
    with np.errstate(all="ignore"):
        return constant(float(fn(*(np.float64(v) for v in values))))


def constant(value: float) -> Node:
    return Node(Op.CONSTANT, value=float(value))


def variable(name: str, index: int = -1) -> Node:
    return Node(Op.VARIABLE, name=name, index=index)


def add(a: Node, b: Node) -> Node:
    if a.is_constant and b.is_constant:
        return _fold(np.add, a.value, b.value)
    if a.is_value(0.0):
        return b
    if b.is_value(0.0):
        return a
    if b.op is Op.NEGATE:
        return subtract(a, b.children[0])
    return Node(Op.ADD, (a, b))


def subtract(a: Node, b: Node) -> Node:
    if a.is_constant and b.is_constant:
        return _fold(np.subtract, a.value, b.value)
    if b.is_value(0.0):
        return a
    if a.is_value(0.0):
        return negate(b)
    if a == b:
        return ZERO
    return Node(Op.SUBTRACT, (a, b))


def multiply(a: Node, b: Node) -> Node:
    if a.is_constant and b.is_constant:
        return _fold(np.multiply, a.value, b.value)
    if a.is_value(0.0) or b.is_value(0.0):
        return ZERO
    if a.is_value(1.0):
        return b
    if b.is_value(1.0):
        return a
    if a.is_value(-1.0):
        return negate(b)
    if b.is_value(-1.0):
        return negate(a)
    # Keep constants on the left so that c1 * (c2 * x) folds.
    if b.is_constant:
        a, b = b, a
    if a.is_constant and b.op is Op.MULTIPLY and b.children[0].is_constant:
        return multiply(_fold(np.multiply, a.value, b.children[0].value), b.children[1])
    return Node(Op.MULTIPLY, (a, b))


def divide(a: Node, b: Node) -> Node:
    if a.is_constant and b.is_constant and b.value != 0.0:
        return _fold(np.divide, a.value, b.value)
    if a.is_value(0.0):
        return ZERO
    if b.is_value(1.0):
        return a
    if b.is_value(-1.0):
        return negate(a)
    return Node(Op.DIVIDE, (a, b))


def power(a: Node, b: Node) -> Node:
    if a.is_constant and b.is_constant:
        return _fold(np.power, a.value, b.value)
    if b.is_value(0.0):
        return ONE
    if b.is_value(1.0):
        return a
    return Node(Op.POWER, (a, b))


def negate(a: Node) -> Node:
    if a.is_constant:
        return constant(-a.value)
    if a.op is Op.NEGATE:
        return a.children[0]
    return Node(Op.NEGATE, (a,))


def call(op: Op, *args: Node) -> Node:
    """Apply a built-in function node."""
    return Node(op, tuple(args))


def tabulated(name: str, index: int, arg: Node, derivative: bool = False) -> Node:
    op = Op.TABULATED_DERIVATIVE if derivative else Op.TABULATED
    return Node(op, (arg,), name=name, index=index)
