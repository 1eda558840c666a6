"""
Compile parsed query expressions into SQLAlchemy constructs.

Every field referenced by an expression must be present in the service's
FieldMap (an explicit allow-list of columns and navigations). Names match
case-insensitively and ignore underscores, so `ReleaseDate`, `releaseDate` and
`release_date` all resolve to `Song.release_date`.
"""
import operator
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import and_, not_, or_
from sqlalchemy.orm import InstrumentedAttribute, selectinload
from sqlalchemy.orm.interfaces import LoaderOption
from sqlalchemy.sql.elements import ColumnElement

from services.exceptions import QueryExpressionError
from services.query_expressions import (
    And,
    BooleanField,
    Comparison,
    ComparisonOperator,
    Constant,
    FieldRef,
    FilterNode,
    InList,
    MethodCall,
    Not,
    Operand,
    Or,
    ProjectedField,
    SortKey,
    StringMethod,
    normalize_field_name,
)

_OPERATORS: dict[ComparisonOperator, Callable[[Any, Any], ColumnElement[bool]]] = {
    ComparisonOperator.EQ: operator.eq,
    ComparisonOperator.NE: operator.ne,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.LE: operator.le,
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.GE: operator.ge,
}


@dataclass(frozen=True)
class QueryField:
    """An allowed column: its attribute name, mapped attribute, and Python type."""

    name: str
    column: InstrumentedAttribute
    python_type: type


class FieldMap:
    """
    Allow-list of queryable columns and eager-loadable navigations for one entity.

    Built once per service instance.
    """

    def __init__(
        self,
        entity_name: str,
        fields: Mapping[str, InstrumentedAttribute],
        navigations: Mapping[str, InstrumentedAttribute] | None = None,
    ) -> None:
        self.entity_name = entity_name
        self._fields: dict[str, QueryField] = {}
        for name, column in fields.items():
            python_type = column.property.columns[0].type.python_type
            self._fields[normalize_field_name(name)] = QueryField(name, column, python_type)
        self._navigations = {
            normalize_field_name(name): relationship
            for name, relationship in (navigations or {}).items()
        }

    @property
    def fields(self) -> list[QueryField]:
        """Allowed fields, in declaration order."""
        return list(self._fields.values())

    def resolve(self, field: FieldRef, expression: str | None = None) -> QueryField:
        """Look up a field, raising QueryExpressionError when it is not allowed."""
        query_field = self._fields.get(normalize_field_name(field.name))
        if query_field is None:
            raise QueryExpressionError(
                f"No property or field '{field.name}' exists in type '{self.entity_name}'",
                expression,
            )
        return query_field

    def resolve_navigation(self, name: str, expression: str | None = None) -> InstrumentedAttribute:
        """Look up a navigation (relationship) by name."""
        relationship = self._navigations.get(normalize_field_name(name))
        if relationship is None:
            raise QueryExpressionError(
                f"No navigation '{name}' exists in type '{self.entity_name}'",
                expression,
            )
        return relationship


def coerce_value(field: QueryField, value: Any, expression: str | None = None) -> Any:  # noqa: PLR0911, PLR0912
    """
    Convert a literal or parameter value to the field's Python type.

    Strings are parsed for dates, datetimes, UUIDs, and numbers so that values
    arriving as JSON (e.g. "1972-01-01") compare correctly.
    """
    if value is None:
        return None

    target = field.python_type
    error = QueryExpressionError(
        f"Cannot convert {value!r} to {target.__name__} for field '{field.name}'",
        expression,
    )

    try:
        if target is bool:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.lower() in ("true", "false"):
                return value.lower() == "true"
            raise error
        if target is int:
            if isinstance(value, bool):
                raise error
            if isinstance(value, int):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
            if isinstance(value, str):
                return int(value)
            raise error
        if target in (float, Decimal):
            if isinstance(value, bool) or not isinstance(value, int | float | Decimal | str):
                raise error
            return target(value)
        if target is str:
            if isinstance(value, str):
                return value
            raise error
        if target is datetime:
            if isinstance(value, datetime):
                return value
            if isinstance(value, date):
                return datetime(value.year, value.month, value.day)
            if isinstance(value, str):
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            raise error
        if target is date:
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            if isinstance(value, str):
                return date.fromisoformat(value[:10])
            raise error
        if target is UUID:
            if isinstance(value, UUID):
                return value
            if isinstance(value, str):
                return UUID(value)
            raise error
    except (ValueError, InvalidOperation) as exc:
        raise error from exc

    return value


class FilterCompiler:
    """Compile a FilterNode tree into a SQLAlchemy boolean expression."""

    def __init__(
        self,
        field_map: FieldMap,
        parameters: Sequence[Any] | None = None,
        expression: str | None = None,
    ) -> None:
        self._field_map = field_map
        self._parameters = list(parameters or [])
        self._expression = expression

    def compile(self, node: FilterNode) -> ColumnElement[bool]:  # noqa: PLR0911
        if isinstance(node, And):
            return and_(*(self.compile(clause) for clause in node.clauses))
        if isinstance(node, Or):
            return or_(*(self.compile(clause) for clause in node.clauses))
        if isinstance(node, Not):
            return not_(self.compile(node.clause))
        if isinstance(node, Comparison):
            return self._compile_comparison(node)
        if isinstance(node, MethodCall):
            return self._compile_method_call(node)
        if isinstance(node, InList):
            return self._compile_in_list(node)
        if isinstance(node, BooleanField):
            field = self._field_map.resolve(node.field, self._expression)
            if field.python_type is not bool:
                raise QueryExpressionError(
                    f"Field '{field.name}' is not boolean and cannot be used as a condition",
                    self._expression,
                )
            return field.column.is_(True)
        raise QueryExpressionError(f"Unsupported expression node {node!r}", self._expression)

    def _value(self, operand: Operand, field: QueryField) -> Any:
        if isinstance(operand, Constant):
            raw = operand.value
        else:
            if operand.index >= len(self._parameters):
                raise QueryExpressionError(
                    f"Parameter @{operand.index} is out of range "
                    f"({len(self._parameters)} parameter(s) supplied)",
                    self._expression,
                )
            raw = self._parameters[operand.index]
        return coerce_value(field, raw, self._expression)

    def _compile_comparison(self, node: Comparison) -> ColumnElement[bool]:
        field = self._field_map.resolve(node.field, self._expression)
        value = self._value(node.operand, field)
        if value is None:
            if node.operator == ComparisonOperator.EQ:
                return field.column.is_(None)
            if node.operator == ComparisonOperator.NE:
                return field.column.is_not(None)
            raise QueryExpressionError(
                f"Operator '{node.operator}' cannot be applied to null",
                self._expression,
            )
        return _OPERATORS[node.operator](field.column, value)

    def _compile_method_call(self, node: MethodCall) -> ColumnElement[bool]:
        field = self._field_map.resolve(node.field, self._expression)
        if field.python_type is not str:
            raise QueryExpressionError(
                f"Method '{node.method}' requires a text field; '{field.name}' is "
                f"{field.python_type.__name__}",
                self._expression,
            )
        value = self._value(node.operand, field)
        if value is None:
            raise QueryExpressionError(
                f"Method '{node.method}' cannot be called with null",
                self._expression,
            )
        if node.method == StringMethod.CONTAINS:
            return field.column.contains(value, autoescape=True)
        if node.method == StringMethod.STARTS_WITH:
            return field.column.startswith(value, autoescape=True)
        return field.column.endswith(value, autoescape=True)

    def _compile_in_list(self, node: InList) -> ColumnElement[bool]:
        field = self._field_map.resolve(node.field, self._expression)
        values = [self._value(operand, field) for operand in node.operands]
        if any(value is None for value in values):
            raise QueryExpressionError(
                "null is not allowed in an 'in' list",
                self._expression,
            )
        return field.column.in_(values)


def compile_filter(
    node: FilterNode,
    field_map: FieldMap,
    parameters: Sequence[Any] | None = None,
    expression: str | None = None,
) -> ColumnElement[bool]:
    """Compile a parsed filter against a FieldMap with positional parameters."""
    return FilterCompiler(field_map, parameters, expression).compile(node)


def compile_order_by(
    keys: Sequence[SortKey],
    field_map: FieldMap,
    expression: str | None = None,
) -> list[ColumnElement]:
    """Compile sort keys into ORDER BY clauses."""
    clauses = []
    for key in keys:
        column = field_map.resolve(key.field, expression).column
        clauses.append(column.desc() if key.descending else column.asc())
    return clauses


def compile_projection(
    items: Sequence[ProjectedField],
    field_map: FieldMap,
    expression: str | None = None,
) -> list[ColumnElement]:
    """
    Compile projected fields into labeled columns.

    Each column is labeled with its alias when one is given, otherwise with the
    field's attribute name.
    """
    columns = []
    for item in items:
        field = field_map.resolve(item.field, expression)
        columns.append(field.column.label(item.alias or field.name))
    return columns


def compile_includes(
    names: Sequence[str],
    field_map: FieldMap,
    expression: str | None = None,
) -> list[LoaderOption]:
    """Compile navigation names into eager-load options, one per name."""
    return [
        selectinload(field_map.resolve_navigation(name, expression))
        for name in names
    ]
