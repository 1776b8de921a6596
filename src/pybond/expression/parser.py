"""
Tokenizer and parser for energy expressions.

Grammar (lowest to highest precedence)::

    expression  := term (('+' | '-') term)*
    term        := unary (('*' | '/') unary)*
    unary       := ('-' | '+') unary | power
    power       := primary ('^' unary)?
    primary     := NUMBER | NAME | NAME '(' arguments ')' | '(' expression ')'

'^' is right associative and binds tighter than unary minus, so -x^2 is
-(x^2). An expression may be followed by intermediate definitions::

    "k*(r - r0)^2; r = distance(p1, p2)"

Each definition is substituted into the expressions that use it. The
parser produces unresolved trees: identifiers stay as named VARIABLE
nodes and geometry calls as GEOMETRY nodes until the compiler binds them.
"""
import re
from dataclasses import replace
from typing import Dict, FrozenSet, List, Mapping, NamedTuple, Optional

from pybond.errors import ExpressionError
from pybond.geometry import GEOMETRY_FUNCTIONS

from . import node as nodes
from .node import BINARY_FUNCTIONS, UNARY_FUNCTIONS, Node, Op

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<symbol>[-+*/^(),])"
    r")"
)
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Token(NamedTuple):
    kind: str
    text: str
    position: int


def tokenize(text: str) -> List[Token]:
    """
    Split an expression into tokens.

    Raises:
        ExpressionError: On a character that starts no valid token.
    """
    tokens = []
    position = 0
    end = len(text.rstrip())
    while position < end:
        match = _TOKEN_RE.match(text, position)
        if match is None or match.lastgroup is None:
            offset = position + len(text[position:]) - len(text[position:].lstrip())
            raise ExpressionError(
                f"Unexpected character '{text[offset]}' at position {offset}", text
            )
        tokens.append(Token(match.lastgroup, match.group(match.lastgroup), match.start(match.lastgroup)))
        position = match.end()
    return tokens


class Parser:
    """
    Recursive-descent parser producing unresolved expression trees.

    Attributes:
        text: The expression being parsed.
        functions: Custom (tabulated) function names, each of arity 1.
    """

    def __init__(self, text: str, functions: FrozenSet[str] = frozenset()) -> None:
        self.text = text
        self.functions = functions
        self.tokens = tokenize(text)
        self.position = 0

    # ------------------------------------------------------------------ #
    #  Token helpers
    # ------------------------------------------------------------------ #

    def _peek(self) -> Optional[Token]:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def _accept(self, text: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == "symbol" and token.text == text:
            self.position += 1
            return True
        return False

    def _expect(self, text: str) -> None:
        if not self._accept(text):
            token = self._peek()
            found = f"'{token.text}' at position {token.position}" if token else "end of expression"
            raise ExpressionError(f"Expected '{text}' but found {found}", self.text)

    def _error(self, message: str) -> ExpressionError:
        return ExpressionError(message, self.text)

    # ------------------------------------------------------------------ #
    #  Grammar
    # ------------------------------------------------------------------ #

    def parse(self) -> Node:
        if not self.tokens:
            raise self._error("Empty expression")
        result = self._expression()
        token = self._peek()
        if token is not None:
            if token.text == ")":
                raise self._error(f"Unmatched ')' at position {token.position}")
            raise self._error(f"Unexpected '{token.text}' at position {token.position}")
        return result

    def _expression(self) -> Node:
        result = self._term()
        while True:
            if self._accept("+"):
                result = nodes.add(result, self._term())
            elif self._accept("-"):
                result = nodes.subtract(result, self._term())
            else:
                return result

    def _term(self) -> Node:
        result = self._unary()
        while True:
            if self._accept("*"):
                result = nodes.multiply(result, self._unary())
            elif self._accept("/"):
                result = nodes.divide(result, self._unary())
            else:
                return result

    def _unary(self) -> Node:
        if self._accept("-"):
            return nodes.negate(self._unary())
        if self._accept("+"):
            return self._unary()
        return self._power()

    def _power(self) -> Node:
        base = self._primary()
        if self._accept("^"):
            return nodes.power(base, self._unary())
        return base

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            raise self._error("Unexpected end of expression")
        if token.kind == "number":
            self.position += 1
            return nodes.constant(float(token.text))
        if token.kind == "name":
            self.position += 1
            if self._accept("("):
                return self._call(token)
            return nodes.variable(token.text)
        if self._accept("("):
            result = self._expression()
            if self._peek() is None:
                raise self._error("Missing ')': unbalanced parentheses")
            self._expect(")")
            return result
        raise self._error(f"Unexpected '{token.text}' at position {token.position}")

    def _arguments(self) -> List[Node]:
        args: List[Node] = []
        if self._accept(")"):
            return args
        while True:
            args.append(self._expression())
            if self._accept(","):
                continue
            if self._peek() is None:
                raise self._error("Missing ')': unbalanced parentheses")
            self._expect(")")
            return args

    def _call(self, token: Token) -> Node:
        name = token.text
        args = self._arguments()

        if name in UNARY_FUNCTIONS or name in self.functions:
            expected = 1
        elif name in BINARY_FUNCTIONS:
            expected = 2
        elif name in GEOMETRY_FUNCTIONS:
            expected = GEOMETRY_FUNCTIONS[name][0]
        else:
            raise self._error(f"Unknown function '{name}'")
        if len(args) != expected:
            raise self._error(
                f"Function '{name}' expects {expected} argument(s), got {len(args)}"
            )

        if name in GEOMETRY_FUNCTIONS:
            for arg in args:
                if arg.op is not Op.VARIABLE:
                    raise self._error(
                        f"Arguments of '{name}' must be particle names such as p1, got '{arg}'"
                    )
            return Node(Op.GEOMETRY, tuple(args), name=name)
        if name in UNARY_FUNCTIONS:
            return nodes.call(UNARY_FUNCTIONS[name], *args)
        if name in BINARY_FUNCTIONS:
            return nodes.call(BINARY_FUNCTIONS[name], *args)
        return nodes.tabulated(name, -1, args[0])


# ------------------------------------------------------------------ #
#  Intermediate definitions
# ------------------------------------------------------------------ #


def _substitute(
    tree: Node,
    definitions: Mapping[str, Node],
    resolving: FrozenSet[str],
    text: str,
) -> Node:
    if tree.op is Op.VARIABLE and tree.name in definitions:
        if tree.name in resolving:
            raise ExpressionError(f"Circular definition of '{tree.name}'", text)
        return _substitute(
            definitions[tree.name], definitions, resolving | {tree.name}, text
        )
    if tree.op is Op.GEOMETRY or not tree.children:
        return tree
    children = tuple(
        _substitute(child, definitions, resolving, text) for child in tree.children
    )
    return replace(tree, children=children)


def parse_expression(text: str, functions: FrozenSet[str] = frozenset()) -> Node:
    """
    Parse an energy expression with optional ';'-separated definitions.

    Args:
        text: Expression string, e.g. "k*(r-r0)^2; r=distance(p1,p2)".
        functions: Names of tabulated functions that may be called.

    Returns:
        Unresolved expression tree.

    Raises:
        ExpressionError: On any syntax error, unknown function, wrong
            arity or circular definition.
    """
    parts = text.split(";")
    main = Parser(parts[0], functions).parse()

    definitions: Dict[str, Node] = {}
    for part in parts[1:]:
        if not part.strip():
            continue
        if "=" not in part:
            raise ExpressionError(f"Definition '{part.strip()}' has no '='", text)
        name, _, body = part.partition("=")
        name = name.strip()
        if not _NAME_RE.match(name):
            raise ExpressionError(f"Invalid definition name '{name}'", text)
        if name in definitions:
            raise ExpressionError(f"'{name}' is defined more than once", text)
        definitions[name] = Parser(body, functions).parse()

    if not definitions:
        return main
    return _substitute(main, definitions, frozenset(), text)
