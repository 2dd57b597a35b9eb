"""
Tokenizer and recursive-descent parser for smart label criteria.

Grammar (keywords are case-insensitive):

    expression  := or_expr
    or_expr     := and_expr ("or" and_expr)*
    and_expr    := not_expr ("and" not_expr)*
    not_expr    := "not" not_expr | primary
    primary     := "(" expression ")" | comparison | IDENT
    comparison  := IDENT OPERATOR literal
    OPERATOR    := "=" | "!=" | "<" | "<=" | ">" | ">=" | "~"
    literal     := STRING | NUMBER | "true" | "false"

Strings are single- or double-quoted; a backslash escapes the next
character. The parser only checks syntax. Whether an identifier names a
real attribute, or an operator suits it, is checked by the compiler.

Example:
    parse_criteria('explicit = false and artist = "Muse"')
    # And(operands=(Comparison('explicit', '=', False), Comparison('artist', '=', 'Muse')))
"""

import re
from dataclasses import dataclass

from playlist_gen.core.exceptions import CriteriaError
from playlist_gen.criteria.nodes import And, AttributeRef, Comparison, Node, Not, Or


_TOKEN_PATTERN = re.compile(r"""
    (?P<WS>\s+)
  | (?P<LPAREN>\()
  | (?P<RPAREN>\))
  | (?P<OP>!=|<=|>=|=|<|>|~)
  | (?P<NUMBER>\d+\b)
  | (?P<STRING>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<IDENT>[A-Za-z_][A-Za-z0-9_]*)
""", re.VERBOSE)

KEYWORDS = {"and", "or", "not", "true", "false"}

# Parentheses and "not" combined
MAX_NESTING_DEPTH = 100


@dataclass(frozen=True)
class Token:
    kind: str  # LPAREN, RPAREN, OP, NUMBER, STRING, IDENT, or a keyword in upper case
    value: str
    position: int


def tokenize(text: str) -> list[Token]:
    """
    Split criteria text into tokens.

    Raises:
        CriteriaError: On an unterminated string or an unexpected character.
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_PATTERN.match(text, pos)
        if match is None:
            if text[pos] in "\"'":
                raise CriteriaError("Unterminated string", position=pos)
            raise CriteriaError(f"Unexpected character {text[pos]!r}", position=pos)

        kind = match.lastgroup
        raw = match.group()
        if kind == "STRING":
            tokens.append(Token("STRING", re.sub(r"\\(.)", r"\1", raw[1:-1]), pos))
        elif kind == "IDENT" and raw.lower() in KEYWORDS:
            tokens.append(Token(raw.upper(), raw.lower(), pos))
        elif kind != "WS":
            tokens.append(Token(kind, raw, pos))
        pos = match.end()
    return tokens


class Parser:
    """Recursive-descent parser over a token list. One instance per parse."""

    def __init__(self, tokens: list[Token], text: str) -> None:
        self._tokens = tokens
        self._text = text
        self._index = 0
        self._depth = 0

    def parse(self) -> Node:
        if not self._tokens:
            raise CriteriaError("Criteria is empty", position=0)
        node = self._or_expr()
        token = self._peek()
        if token is not None:
            raise CriteriaError(f"Unexpected {token.value!r}", position=token.position)
        return node

    def _peek(self) -> Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> Token:
        token = self._peek()
        if token is None:
            raise CriteriaError("Unexpected end of criteria", position=len(self._text))
        self._index += 1
        return token

    def _accept(self, kind: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == kind:
            self._index += 1
            return True
        return False

    def _or_expr(self) -> Node:
        operands = [self._and_expr()]
        while self._accept("OR"):
            operands.append(self._and_expr())
        return operands[0] if len(operands) == 1 else Or(tuple(operands))

    def _and_expr(self) -> Node:
        operands = [self._not_expr()]
        while self._accept("AND"):
            operands.append(self._not_expr())
        return operands[0] if len(operands) == 1 else And(tuple(operands))

    def _not_expr(self) -> Node:
        token = self._peek()
        if self._accept("NOT"):
            self._enter(token)
            node = Not(self._not_expr())
            self._depth -= 1
            return node
        return self._primary()

    def _enter(self, token: Token) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise CriteriaError("Criteria nested too deeply", position=token.position)

    def _primary(self) -> Node:
        token = self._advance()

        if token.kind == "LPAREN":
            self._enter(token)
            node = self._or_expr()
            self._depth -= 1
            closing = self._peek()
            if not self._accept("RPAREN"):
                position = closing.position if closing else len(self._text)
                raise CriteriaError("Expected ')'", position=position)
            return node

        if token.kind != "IDENT":
            raise CriteriaError(f"Expected an attribute, got {token.value!r}", position=token.position)

        attribute = token.value.lower()
        if not self._accept("OP"):
            return AttributeRef(attribute, token.position)

        operator = self._tokens[self._index - 1].value
        literal = self._advance()
        if literal.kind == "STRING":
            value: str | int | bool = literal.value
        elif literal.kind == "NUMBER":
            try:
                value = int(literal.value)
            except ValueError:
                raise CriteriaError("Number is too long", position=literal.position) from None
        elif literal.kind in ("TRUE", "FALSE"):
            value = literal.kind == "TRUE"
        else:
            raise CriteriaError(f"Expected a value, got {literal.value!r}", position=literal.position)

        return Comparison(attribute, operator, value, token.position)


def parse_criteria(text: str) -> Node:
    """
    Parse criteria text into a predicate tree.

    Raises:
        CriteriaError: If the text is not syntactically valid.
    """
    return Parser(tokenize(text), text).parse()
