"""
Compilation of an energy expression into an evaluable, differentiated form.

The compiler parses the expression once, binds every identifier to an
integer slot of a flat variable vector, and builds the derivative trees
needed for forces. Variable slots are laid out as::

    [ x1 y1 z1 ... xN yN zN | per-bond params | globals | geometry terms ]

Each distinct geometry call, e.g. angle(p1,p2,p3), becomes one geometry
term slot. The chain rule through a geometry term is applied at
evaluation time from the closed-form gradients of the primitive.
"""
import logging
import re
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple

from pybond.errors import ExpressionError
from pybond.function import TabulatedFunction
from pybond.geometry import GEOMETRY_FUNCTIONS

from .differentiate import differentiate
from .node import BINARY_FUNCTIONS, UNARY_FUNCTIONS, Node, Op, variable
from .parser import parse_expression

logger = logging.getLogger(__name__)

_PARTICLE_RE = re.compile(r"^p([1-9][0-9]*)$")
_COORDINATE_RE = re.compile(r"^([xyz])([1-9][0-9]*)$")
_AXES = "xyz"


class GeometryTerm(NamedTuple):
    """A geometry function applied to particles of the bond (0-based roles)."""

    kind: str
    roles: Tuple[int, ...]

    @property
    def primitive(self):
        return GEOMETRY_FUNCTIONS[self.kind][1]

    def __str__(self) -> str:
        labels = ",".join(f"p{role + 1}" for role in self.roles)
        return f"{self.kind}({labels})"


class CompiledExpression:
    """
    Parsed and differentiated energy expression of one bond.

    Built once per structural configuration and shared read-only by every
    bond evaluation. Only global-parameter values and tabulated sample data
    (held by the TabulatedFunction objects) may change afterwards.

    Attributes:
        expression: Source expression string.
        num_particles: Particles per bond (N).
        per_bond_parameters: Per-bond parameter names in slot order.
        global_parameters: Global parameter names in slot order.
        functions: Tabulated functions in slot order.
        energy: Resolved energy tree.
        geometry_terms: Distinct geometry calls, in geometry slot order.
        coordinate_derivatives: Coordinate slot -> dE/d(coordinate) tree,
            for every coordinate the energy depends on directly.
        geometry_derivatives: Geometry term index -> dE/d(term) tree.

    Example:
        >>> compiled = CompiledExpression(
        ...     "0.5*k*(distance(p1,p2)-r0)^2", 2, ["k", "r0"], [], {})
        >>> compiled.geometry_terms
        [GeometryTerm(kind='distance', roles=(0, 1))]
    """

    def __init__(
        self,
        expression: str,
        num_particles: int,
        per_bond_parameters: Sequence[str] = (),
        global_parameters: Sequence[str] = (),
        functions: Optional[Mapping[str, TabulatedFunction]] = None,
    ) -> None:
        """
        Compile an expression.

        Args:
            expression: Energy of one bond.
            num_particles: Particles per bond.
            per_bond_parameters: Per-bond parameter names.
            global_parameters: Global parameter names.
            functions: Tabulated functions by name.

        Raises:
            ExpressionError: On syntax errors, unknown identifiers, wrong
                arity, bad particle labels or clashing names.
        """
        if num_particles < 1:
            raise ValueError(f"num_particles must be positive, got {num_particles}")
        functions = dict(functions or {})

        self.expression = expression
        self.num_particles = num_particles
        self.per_bond_parameters = list(per_bond_parameters)
        self.global_parameters = list(global_parameters)
        self.function_names = list(functions)
        self.functions: List[TabulatedFunction] = list(functions.values())

        self._slots = self._build_namespace()
        self.parameter_offset = 3 * num_particles
        self.global_offset = self.parameter_offset + len(self.per_bond_parameters)
        self.geometry_offset = self.global_offset + len(self.global_parameters)
        self.geometry_terms: List[GeometryTerm] = []
        self._geometry_slots: Dict[GeometryTerm, int] = {}

        tree = parse_expression(expression, frozenset(self.function_names))
        self.energy = self._resolve(tree)

        used = self._used_slots(self.energy)
        self.coordinate_derivatives: Dict[int, Node] = {}
        for slot in sorted(s for s in used if s < self.parameter_offset):
            derivative = differentiate(self.energy, slot)
            if not derivative.is_value(0.0):
                self.coordinate_derivatives[slot] = derivative
        self.geometry_derivatives: Dict[int, Node] = {}
        for k in range(len(self.geometry_terms)):
            derivative = differentiate(self.energy, self.geometry_offset + k)
            if not derivative.is_value(0.0):
                self.geometry_derivatives[k] = derivative

        logger.debug(
            "Compiled '%s': %d geometry term(s), %d coordinate derivative(s)",
            expression,
            len(self.geometry_terms),
            len(self.coordinate_derivatives),
        )

    @property
    def num_variables(self) -> int:
        return self.geometry_offset + len(self.geometry_terms)

    # ------------------------------------------------------------------ #
    #  Name resolution
    # ------------------------------------------------------------------ #

    def _build_namespace(self) -> Dict[str, int]:
        slots: Dict[str, int] = {}
        for role in range(self.num_particles):
            for axis, letter in enumerate(_AXES):
                slots[f"{letter}{role + 1}"] = 3 * role + axis

        reserved = set(UNARY_FUNCTIONS) | set(BINARY_FUNCTIONS) | set(GEOMETRY_FUNCTIONS)
        names = (
            [("per-bond parameter", n) for n in self.per_bond_parameters]
            + [("global parameter", n) for n in self.global_parameters]
        )
        seen: Set[str] = set()
        for kind, name in names + [("function", n) for n in self.function_names]:
            if name in reserved or _PARTICLE_RE.match(name) or _COORDINATE_RE.match(name):
                raise ExpressionError(f"The {kind} name '{name}' is reserved")
            if name in seen:
                raise ExpressionError(f"The {kind} name '{name}' is already in use")
            seen.add(name)

        offset = 3 * self.num_particles
        for i, (_, name) in enumerate(names):
            slots[name] = offset + i
        return slots

    def _particle_role(self, label: Node, function: str) -> int:
        match = _PARTICLE_RE.match(label.name)
        if match is None:
            raise ExpressionError(
                f"'{label.name}' is not a particle name in call to '{function}'",
                self.expression,
            )
        role = int(match.group(1)) - 1
        if role >= self.num_particles:
            raise ExpressionError(
                f"Particle '{label.name}' does not exist: each bond has "
                f"{self.num_particles} particle(s)",
                self.expression,
            )
        return role

    def _resolve(self, tree: Node) -> Node:
        op = tree.op
        if op is Op.CONSTANT:
            return tree
        if op is Op.VARIABLE:
            slot = self._slots.get(tree.name)
            if slot is None:
                if _PARTICLE_RE.match(tree.name):
                    message = (f"Particle name '{tree.name}' may only appear as an "
                               "argument of distance, angle or dihedral")
                else:
                    message = f"Unknown variable '{tree.name}'"
                raise ExpressionError(message, self.expression)
            return variable(tree.name, slot)
        if op is Op.GEOMETRY:
            roles = tuple(self._particle_role(label, tree.name) for label in tree.children)
            term = GeometryTerm(tree.name, roles)
            slot = self._geometry_slots.get(term)
            if slot is None:
                slot = self.geometry_offset + len(self.geometry_terms)
                self._geometry_slots[term] = slot
                self.geometry_terms.append(term)
            return variable(str(term), slot)

        children = tuple(self._resolve(child) for child in tree.children)
        if op is Op.TABULATED:
            return Node(op, children, name=tree.name, index=self.function_names.index(tree.name))
        return Node(op, children)

    @staticmethod
    def _used_slots(tree: Node) -> Set[int]:
        used: Set[int] = set()
        stack = [tree]
        while stack:
            current = stack.pop()
            if current.op is Op.VARIABLE:
                used.add(current.index)
            stack.extend(current.children)
        return used

    # ------------------------------------------------------------------ #
    #  Introspection
    # ------------------------------------------------------------------ #

    def slot_of(self, name: str) -> int:
        """Return the variable slot bound to a coordinate or parameter name."""
        if name not in self._slots:
            raise KeyError(name)
        return self._slots[name]

    def __repr__(self) -> str:
        return (f"CompiledExpression({self.expression!r}, "
                f"num_particles={self.num_particles})")
