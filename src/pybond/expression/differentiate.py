"""
Symbolic differentiation of expression trees.

Derivatives are built once, at compile time, so evaluating a force is a
plain tree evaluation and never a finite difference.
"""
import math
from typing import Dict

from pybond.errors import ExpressionError

from . import node as nodes
from .node import ONE, ZERO, Node, Op

_TWO_OVER_SQRT_PI = 2.0 / math.sqrt(math.pi)


def differentiate(tree: Node, index: int) -> Node:
    """
    Differentiate a resolved tree with respect to one variable slot.

    Args:
        tree: Expression tree whose variables are resolved to slots.
        index: Variable slot to differentiate with respect to.

    Returns:
        Simplified derivative tree.
    """
    return _Differentiator(index).derive(tree)


class _Differentiator:
    def __init__(self, index: int) -> None:
        self.index = index
        self.cache: Dict[Node, Node] = {}

    def derive(self, tree: Node) -> Node:
        result = self.cache.get(tree)
        if result is None:
            result = self._derive(tree)
            self.cache[tree] = result
        return result

    def _derive(self, tree: Node) -> Node:
        op = tree.op
        if op is Op.CONSTANT:
            return ZERO
        if op is Op.VARIABLE:
            return ONE if tree.index == self.index else ZERO
        if op is Op.GEOMETRY:
            raise ExpressionError(f"Unresolved geometry term '{tree}'")

        a = tree.children[0]
        da = self.derive(a)

        if op is Op.ADD:
            return nodes.add(da, self.derive(tree.children[1]))
        if op is Op.SUBTRACT:
            return nodes.subtract(da, self.derive(tree.children[1]))
        if op is Op.MULTIPLY:
            b = tree.children[1]
            return nodes.add(nodes.multiply(da, b), nodes.multiply(a, self.derive(b)))
        if op is Op.DIVIDE:
            b = tree.children[1]
            db = self.derive(b)
            if db.is_value(0.0):
                return nodes.divide(da, b)
            numerator = nodes.subtract(nodes.multiply(da, b), nodes.multiply(a, db))
            return nodes.divide(numerator, nodes.power(b, nodes.constant(2.0)))
        if op is Op.POWER:
            return self._derive_power(tree, a, da)
        if op is Op.NEGATE:
            return nodes.negate(da)
        if op in (Op.MIN, Op.MAX):
            b = tree.children[1]
            db = self.derive(b)
            if op is Op.MIN:
                choose_a = nodes.call(Op.STEP, nodes.subtract(b, a))
            else:
                choose_a = nodes.call(Op.STEP, nodes.subtract(a, b))
            return nodes.add(
                nodes.multiply(choose_a, da),
                nodes.multiply(nodes.subtract(ONE, choose_a), db),
            )

        if da.is_value(0.0):
            return ZERO
        return nodes.multiply(self._outer(tree, a), da)

    def _derive_power(self, tree: Node, a: Node, da: Node) -> Node:
        b = tree.children[1]
        if b.is_constant:
            exponent = b.value
            outer = nodes.multiply(
                b, nodes.power(a, nodes.constant(exponent - 1.0))
            )
            return nodes.multiply(outer, da)
        db = self.derive(b)
        # d(a^b) = a^b * (db * log(a) + b * da / a)
        inner = nodes.add(
            nodes.multiply(db, nodes.call(Op.LOG, a)),
            nodes.divide(nodes.multiply(b, da), a),
        )
        return nodes.multiply(tree, inner)

    @staticmethod
    def _outer(tree: Node, a: Node) -> Node:
        """Derivative of a unary function with respect to its argument."""
        op = tree.op
        two = nodes.constant(2.0)
        if op is Op.SQRT:
            return nodes.divide(nodes.constant(0.5), tree)
        if op is Op.EXP:
            return tree
        if op is Op.LOG:
            return nodes.divide(ONE, a)
        if op is Op.SIN:
            return nodes.call(Op.COS, a)
        if op is Op.COS:
            return nodes.negate(nodes.call(Op.SIN, a))
        if op is Op.SEC:
            return nodes.multiply(tree, nodes.call(Op.TAN, a))
        if op is Op.CSC:
            return nodes.negate(nodes.multiply(tree, nodes.call(Op.COT, a)))
        if op is Op.TAN:
            return nodes.power(nodes.call(Op.SEC, a), two)
        if op is Op.COT:
            return nodes.negate(nodes.power(nodes.call(Op.CSC, a), two))
        if op in (Op.ASIN, Op.ACOS):
            root = nodes.call(Op.SQRT, nodes.subtract(ONE, nodes.power(a, two)))
            slope = nodes.divide(ONE, root)
            return slope if op is Op.ASIN else nodes.negate(slope)
        if op is Op.ATAN:
            return nodes.divide(ONE, nodes.add(ONE, nodes.power(a, two)))
        if op is Op.SINH:
            return nodes.call(Op.COSH, a)
        if op is Op.COSH:
            return nodes.call(Op.SINH, a)
        if op is Op.TANH:
            return nodes.subtract(ONE, nodes.power(tree, two))
        if op in (Op.ERF, Op.ERFC):
            gauss = nodes.multiply(
                nodes.constant(_TWO_OVER_SQRT_PI),
                nodes.call(Op.EXP, nodes.negate(nodes.power(a, two))),
            )
            return gauss if op is Op.ERF else nodes.negate(gauss)
        if op is Op.ABS:
            return nodes.subtract(
                nodes.call(Op.STEP, a), nodes.call(Op.STEP, nodes.negate(a))
            )
        if op in (Op.STEP, Op.DELTA):
            # Zero almost everywhere; the jump itself is not differentiated.
            return ZERO
        if op is Op.TABULATED:
            return nodes.tabulated(tree.name, tree.index, a, derivative=True)
        if op is Op.TABULATED_DERIVATIVE:
            raise ExpressionError(
                f"Second derivative of tabulated function '{tree.name}' is not supported"
            )
        raise ExpressionError(f"Cannot differentiate node of kind {op}")
