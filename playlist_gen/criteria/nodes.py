"""
Predicate tree produced by the criteria parser.

The tree is a closed set of five immutable node variants. Code that walks
it (the SQL compiler) handles every variant explicitly and treats anything
else as a programming error.

    AttributeRef  bare boolean attribute          explicit
    Comparison    attribute, operator, literal    artist = "Muse"
    Not           negated operand                 not explicit
    And           two or more operands            a and b and c
    Or            two or more operands            a or b
"""

from dataclasses import dataclass
from typing import Union


Literal = Union[str, int, bool]


@dataclass(frozen=True)
class AttributeRef:
    name: str
    position: int = 0


@dataclass(frozen=True)
class Comparison:
    attribute: str
    operator: str
    value: Literal
    position: int = 0


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class And:
    operands: tuple["Node", ...]


@dataclass(frozen=True)
class Or:
    operands: tuple["Node", ...]


Node = Union[AttributeRef, Comparison, Not, And, Or]
