"""
Parser for the grid query language.

Filter, sort, projection, and include strings are parsed into frozen dataclass
nodes. Nothing here knows about SQLAlchemy or any particular model; field names
are validated and compiled in services/query_builder.py.

Filter examples:
    ReleaseDate > @0
    Title.Contains("o") and not IsSolo
    (Id in (1, 2, 3) || Title.StartsWith(@1)) && ReleaseDate != null

Sort examples:
    Title
    ReleaseDate desc, Title

Projection examples:
    new {SysGuid, Title}
    new (Title as Name, ReleaseDate)
    SysGuid, Title
"""
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from services.exceptions import QueryExpressionError


class ComparisonOperator(StrEnum):
    """Binary comparison between a field and a value."""

    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


class StringMethod(StrEnum):
    """String predicate callable on a text field."""

    CONTAINS = "contains"
    STARTS_WITH = "startswith"
    ENDS_WITH = "endswith"


@dataclass(frozen=True)
class FieldRef:
    """Reference to an entity field, as written in the expression."""

    name: str


@dataclass(frozen=True)
class Constant:
    """Literal value (string, number, bool, or None)."""

    value: Any


@dataclass(frozen=True)
class Parameter:
    """Positional parameter (@0, @1, ...)."""

    index: int


Operand = Constant | Parameter


@dataclass(frozen=True)
class Comparison:
    field: FieldRef
    operator: ComparisonOperator
    operand: Operand


@dataclass(frozen=True)
class MethodCall:
    field: FieldRef
    method: StringMethod
    operand: Operand


@dataclass(frozen=True)
class InList:
    field: FieldRef
    operands: tuple[Operand, ...]


@dataclass(frozen=True)
class BooleanField:
    """A bare boolean field used as a predicate (e.g. `IsSolo`)."""

    field: FieldRef


@dataclass(frozen=True)
class And:
    clauses: tuple["FilterNode", ...]


@dataclass(frozen=True)
class Or:
    clauses: tuple["FilterNode", ...]


@dataclass(frozen=True)
class Not:
    clause: "FilterNode"


FilterNode = Comparison | MethodCall | InList | BooleanField | And | Or | Not


@dataclass(frozen=True)
class SortKey:
    field: FieldRef
    descending: bool = False


@dataclass(frozen=True)
class ProjectedField:
    field: FieldRef
    alias: str | None = None


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<number>\d+(?:\.\d+)?)
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<parameter>@\d+)
    |(?P<operator>==|!=|<>|<=|>=|&&|\|\||[<>=!(),.{}-])
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_COMPARISON_OPERATORS = {
    "==": ComparisonOperator.EQ,
    "=": ComparisonOperator.EQ,
    "!=": ComparisonOperator.NE,
    "<>": ComparisonOperator.NE,
    "<": ComparisonOperator.LT,
    "<=": ComparisonOperator.LE,
    ">": ComparisonOperator.GT,
    ">=": ComparisonOperator.GE,
}

_STRING_METHODS = {method.value: method for method in StringMethod}

_KEYWORDS = {"and", "or", "not", "true", "false", "null", "in"}


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    position: int


def _tokenize(text: str) -> list[_Token]:
    tokens = []
    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            raise QueryExpressionError(
                f"Unexpected character {text[position]!r} at position {position}",
                text,
            )
        if match.lastgroup != "space":
            tokens.append(_Token(match.lastgroup, match.group(), position))
        position = match.end()
    tokens.append(_Token("end", "", len(text)))
    return tokens


def _unquote(literal: str) -> str:
    return re.sub(r"\\(.)", r"\1", literal[1:-1])


def _to_number(literal: str) -> int | float:
    return float(literal) if "." in literal else int(literal)


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = _tokenize(text)
        self._index = 0

    # --- Token helpers ---

    def _peek(self) -> _Token:
        return self._tokens[self._index]

    def _advance(self) -> _Token:
        token = self._tokens[self._index]
        if token.kind != "end":
            self._index += 1
        return token

    def _error(self, message: str, token: _Token | None = None) -> QueryExpressionError:
        token = token or self._peek()
        found = "end of expression" if token.kind == "end" else repr(token.value)
        return QueryExpressionError(
            f"{message} at position {token.position} (found {found}) in {self._text!r}",
            self._text,
        )

    def _accept_operator(self, value: str) -> bool:
        token = self._peek()
        if token.kind == "operator" and token.value == value:
            self._advance()
            return True
        return False

    def _expect_operator(self, value: str) -> None:
        if not self._accept_operator(value):
            raise self._error(f"Expected '{value}'")

    def _accept_keyword(self, word: str) -> bool:
        token = self._peek()
        if token.kind == "name" and token.value.lower() == word:
            self._advance()
            return True
        return False

    def _expect_name(self) -> _Token:
        token = self._peek()
        if token.kind != "name":
            raise self._error("Expected a name")
        return self._advance()

    def expect_end(self) -> None:
        if self._peek().kind != "end":
            raise self._error("Unexpected token")

    # --- Filter grammar ---

    def parse_filter(self) -> FilterNode:
        return self._parse_or()

    def _parse_or(self) -> FilterNode:
        clauses = [self._parse_and()]
        while self._accept_keyword("or") or self._accept_operator("||"):
            clauses.append(self._parse_and())
        return clauses[0] if len(clauses) == 1 else Or(tuple(clauses))

    def _parse_and(self) -> FilterNode:
        clauses = [self._parse_unary()]
        while self._accept_keyword("and") or self._accept_operator("&&"):
            clauses.append(self._parse_unary())
        return clauses[0] if len(clauses) == 1 else And(tuple(clauses))

    def _parse_unary(self) -> FilterNode:
        if self._accept_keyword("not") or self._accept_operator("!"):
            return Not(self._parse_unary())
        if self._accept_operator("("):
            node = self._parse_or()
            self._expect_operator(")")
            return node
        return self._parse_predicate()

    def _parse_predicate(self) -> FilterNode:
        field = self.parse_field()

        if self._accept_operator("."):
            method_token = self._expect_name()
            method = _STRING_METHODS.get(method_token.value.lower())
            if method is None:
                raise self._error(
                    f"Unsupported method or nested member '{method_token.value}'",
                    method_token,
                )
            self._expect_operator("(")
            operand = self._parse_operand()
            self._expect_operator(")")
            return MethodCall(field, method, operand)

        token = self._peek()
        if token.kind == "operator" and token.value in _COMPARISON_OPERATORS:
            self._advance()
            return Comparison(field, _COMPARISON_OPERATORS[token.value], self._parse_operand())

        if self._accept_keyword("in"):
            self._expect_operator("(")
            operands = [self._parse_operand()]
            while self._accept_operator(","):
                operands.append(self._parse_operand())
            self._expect_operator(")")
            return InList(field, tuple(operands))

        return BooleanField(field)

    def parse_field(self) -> FieldRef:
        token = self._peek()
        if token.kind != "name" or token.value.lower() in _KEYWORDS:
            raise self._error("Expected a field name")
        self._advance()
        return FieldRef(token.value)

    def _parse_operand(self) -> Operand:
        token = self._advance()
        if token.kind == "parameter":
            return Parameter(int(token.value[1:]))
        if token.kind == "string":
            return Constant(_unquote(token.value))
        if token.kind == "number":
            return Constant(_to_number(token.value))
        if token.kind == "operator" and token.value == "-":
            number = self._advance()
            if number.kind != "number":
                raise self._error("Expected a number after '-'", number)
            return Constant(-_to_number(number.value))
        if token.kind == "name":
            lowered = token.value.lower()
            if lowered == "true":
                return Constant(True)
            if lowered == "false":
                return Constant(False)
            if lowered == "null":
                return Constant(None)
        raise self._error("Expected a literal or parameter", token)

    # --- Sort grammar ---

    def parse_order_by(self) -> list[SortKey]:
        keys = []
        while True:
            field = self.parse_field()
            descending = False
            if self._accept_keyword("desc") or self._accept_keyword("descending"):
                descending = True
            elif self._accept_keyword("asc") or self._accept_keyword("ascending"):
                descending = False
            keys.append(SortKey(field, descending))
            if not self._accept_operator(","):
                break
        return keys

    # --- Projection grammar ---

    def parse_select(self) -> list[ProjectedField]:
        closing = None
        if self._accept_keyword("new"):
            if self._accept_operator("{"):
                closing = "}"
            elif self._accept_operator("("):
                closing = ")"
            else:
                raise self._error("Expected '{' or '(' after 'new'")

        items = []
        while True:
            field = self.parse_field()
            alias = None
            if self._accept_keyword("as"):
                alias = self._expect_name().value
            items.append(ProjectedField(field, alias))
            if not self._accept_operator(","):
                break

        if closing:
            self._expect_operator(closing)
        return items


def normalize_field_name(name: str) -> str:
    """Normalize a field name for lookup: lowercase, underscores removed."""
    return name.replace("_", "").lower()


def parse_filter(text: str) -> FilterNode:
    """Parse a boolean filter expression."""
    parser = _Parser(text)
    node = parser.parse_filter()
    parser.expect_end()
    return node


def parse_order_by(text: str) -> list[SortKey]:
    """Parse a comma-separated sort expression."""
    parser = _Parser(text)
    keys = parser.parse_order_by()
    parser.expect_end()
    return keys


def parse_select(text: str) -> list[ProjectedField]:
    """Parse a projection expression."""
    parser = _Parser(text)
    items = parser.parse_select()
    parser.expect_end()

    # Field lookup ignores case and underscores, so names clash the same way
    output_names = [item.alias or item.field.name for item in items]
    normalized = [normalize_field_name(name) for name in output_names]
    duplicates = {
        name for name, key in zip(output_names, normalized, strict=True) if normalized.count(key) > 1
    }
    if duplicates:
        raise QueryExpressionError(
            f"Duplicate projection names: {', '.join(sorted(duplicates))}",
            text,
        )
    return items


def parse_includes(text: str) -> list[str]:
    """
    Parse navigation names separated by ',' or ';'.

    Only single-level navigation names are supported (e.g. `Songs`, not `Songs.Artist`).
    """
    names = [part.strip() for part in re.split(r"[;,]", text)]
    names = [name for name in names if name]
    for name in names:
        if not _IDENTIFIER_PATTERN.match(name):
            raise QueryExpressionError(f"Invalid include '{name}'", text)
    return names
