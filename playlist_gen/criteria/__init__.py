"""
Smart label criteria: parsing and SQL compilation.

    parse_criteria      text -> predicate tree (syntax only)
    compile_criteria    text -> TrackFilter, or None when invalid
    validate_criteria   text -> bool
    explain_criteria    text -> first CriteriaError, or None
"""

from playlist_gen.criteria.compiler import (
    ATTRIBUTES,
    TrackFilter,
    compile_criteria,
    compile_node,
    explain_criteria,
    validate_criteria,
)
from playlist_gen.criteria.nodes import And, AttributeRef, Comparison, Node, Not, Or
from playlist_gen.criteria.parser import parse_criteria, tokenize

__all__ = [
    # Compiler
    "ATTRIBUTES",
    "TrackFilter",
    "compile_criteria",
    "compile_node",
    "explain_criteria",
    "validate_criteria",
    # Parser
    "parse_criteria",
    "tokenize",
    # Nodes
    "And",
    "AttributeRef",
    "Comparison",
    "Node",
    "Not",
    "Or",
]
