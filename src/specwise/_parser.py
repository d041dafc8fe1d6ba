"""
Rule text: turns ``is_active & ~is_locked & amount_above(3000)`` into a
specification.

Names are resolved through a callback, so the parser never holds rules
itself. ``Registry.load`` passes its own resolver; any callable
``resolve(name, args)`` returning a Specification works.

Precedence, lowest to highest: ``|`` / ``OR``, ``&`` / ``AND``, then the
prefix ``~`` / ``!`` / ``NOT``. Keywords are case-insensitive and ``#``
starts a comment running to the end of the line.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from specwise._core import AndSpecification, NotSpecification, OrSpecification, Specification
from specwise._errors import ExpressionSyntaxError, require

# resolve(name, args) where args is None for a bare name
Resolver = Callable[[str, Any], Specification[Any]]


class TokenType(enum.Enum):
    AND = "&"
    OR = "|"
    NOT = "~"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    NAME = "name"
    NUMBER = "number"
    STRING = "string"
    EOF = "end of expression"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any
    position: int


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<skip>\s+|\#[^\n]*)
    | (?P<number>-?\d+(?:\.\d+)?)
    | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<name>[A-Za-z_]\w*)
    | (?P<symbol>[&|~!(),])
    """,
    re.VERBOSE,
)

_SYMBOLS = {
    "&": TokenType.AND,
    "|": TokenType.OR,
    "~": TokenType.NOT,
    "!": TokenType.NOT,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
}
_KEYWORDS = {"and": TokenType.AND, "or": TokenType.OR, "not": TokenType.NOT}
_LITERALS = {"true": True, "false": False, "none": None}
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

# Binary operators: token -> (binding power, combinator)
_BINARY: dict[TokenType, tuple[int, Callable[..., Specification[Any]]]] = {
    TokenType.OR: (1, OrSpecification),
    TokenType.AND: (2, AndSpecification),
}


def _unescape(quoted: str) -> str:
    return re.sub(
        r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), quoted[1:-1]
    )


def tokenize(text: str) -> list[Token]:
    """Split rule text into tokens, ending with an EOF token."""
    tokens: list[Token] = []
    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            char = text[position]
            if char in "'\"":
                raise ExpressionSyntaxError("Unterminated string literal", position)
            raise ExpressionSyntaxError(
                f"Unexpected character {char!r} at position {position}", position
            )

        kind, lexeme = match.lastgroup, match.group()
        if kind == "number":
            value = float(lexeme) if "." in lexeme else int(lexeme)
            tokens.append(Token(TokenType.NUMBER, value, position))
        elif kind == "string":
            tokens.append(Token(TokenType.STRING, _unescape(lexeme), position))
        elif kind == "name":
            keyword = _KEYWORDS.get(lexeme.lower())
            tokens.append(Token(keyword or TokenType.NAME, lexeme, position))
        elif kind == "symbol":
            tokens.append(Token(_SYMBOLS[lexeme], lexeme, position))
        position = match.end()

    tokens.append(Token(TokenType.EOF, None, len(text)))
    return tokens


class ExpressionParser:
    """
    Parses rule text straight into a specification tree.

    ``a | b | c`` becomes ``(a | b) | c``; chains associate to the left just
    like the Python operators they mirror. Rule arguments may be numbers,
    quoted strings, ``true`` / ``false`` / ``none`` or bare words (taken as
    strings).

    Example:
        parser = ExpressionParser("is_active AND NOT is_locked", registry_resolver)
        spec = parser.parse()
    """

    def __init__(self, text: str, resolve: Resolver):
        require(text, "text")
        require(resolve, "resolve")
        self.text = text
        self.resolve = resolve
        self._tokens = tokenize(text)
        self._index = 0

    def parse(self) -> Specification[Any]:
        specification = self._expression(1)
        trailing = self._peek()
        if trailing.type is not TokenType.EOF:
            raise self._unexpected(trailing)
        return specification

    # -------------------------------------------------
    # Token stream
    # -------------------------------------------------

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _expect(self, token_type: TokenType) -> Token:
        token = self._advance()
        if token.type is not token_type:
            raise ExpressionSyntaxError(
                f"Expected {token_type.value!r}, got {self._describe(token)} "
                f"at position {token.position}",
                token.position,
            )
        return token

    def _describe(self, token: Token) -> str:
        if token.type is TokenType.EOF:
            return "end of expression"
        return repr(token.value)

    def _unexpected(self, token: Token) -> ExpressionSyntaxError:
        if token.type is TokenType.EOF:
            return ExpressionSyntaxError("Unexpected end of expression", token.position)
        return ExpressionSyntaxError(
            f"Unexpected {self._describe(token)} at position {token.position}",
            token.position,
        )

    # -------------------------------------------------
    # Grammar
    # -------------------------------------------------

    def _expression(self, min_power: int) -> Specification[Any]:
        """Precedence climbing over the binary operators."""
        left = self._prefix()
        while True:
            entry = _BINARY.get(self._peek().type)
            if entry is None or entry[0] < min_power:
                return left
            power, combine = entry
            self._advance()
            left = combine(left, self._expression(power + 1))

    def _prefix(self) -> Specification[Any]:
        negations = 0
        while self._peek().type is TokenType.NOT:
            self._advance()
            negations += 1

        specification = self._primary()
        for _ in range(negations):
            specification = NotSpecification(specification)
        return specification

    def _primary(self) -> Specification[Any]:
        token = self._advance()

        if token.type is TokenType.LPAREN:
            inner = self._expression(1)
            self._expect(TokenType.RPAREN)
            return inner

        if token.type is TokenType.NAME:
            args = None
            if self._peek().type is TokenType.LPAREN:
                self._advance()
                args = self._arguments()
            return self.resolve(token.value, args)

        raise self._unexpected(token)

    def _arguments(self) -> list[Any]:
        args: list[Any] = []
        if self._peek().type is TokenType.RPAREN:
            self._advance()
            return args

        while True:
            args.append(self._argument())
            separator = self._advance()
            if separator.type is TokenType.RPAREN:
                return args
            if separator.type is not TokenType.COMMA:
                raise self._unexpected(separator)

    def _argument(self) -> Any:
        token = self._advance()
        if token.type in (TokenType.NUMBER, TokenType.STRING):
            return token.value
        if token.type is TokenType.NAME:
            lowered = token.value.lower()
            return _LITERALS[lowered] if lowered in _LITERALS else token.value
        raise ExpressionSyntaxError(
            f"Invalid argument {self._describe(token)} at position {token.position}",
            token.position,
        )


def parse_expression(text: str, resolve: Resolver) -> Specification[Any]:
    """
    Parse rule text into a specification, resolving names with ``resolve``.

    Example:
        spec = parse_expression("is_active & amount_above(3000)", registry_resolver)
    """
    return ExpressionParser(text, resolve).parse()
