"""
Expression module for compound bond energies.

This module provides:
- Node/Op: tagged expression tree representation
- parse_expression: tokenizer and parser with ';' definitions
- differentiate: symbolic differentiation
- evaluate: vectorized tree evaluation
- CompiledExpression: resolved energy plus derivative trees
"""

from .compiler import CompiledExpression, GeometryTerm
from .differentiate import differentiate
from .evaluator import evaluate
from .node import Node, Op
from .parser import parse_expression, tokenize

__all__ = [
    "CompiledExpression",
    "GeometryTerm",
    "Node",
    "Op",
    "differentiate",
    "evaluate",
    "parse_expression",
    "tokenize",
]
