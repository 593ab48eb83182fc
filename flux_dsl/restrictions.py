# Copyright 2018-present Kensho Technologies, LLC.
"""Predicates for the Flux filter() operator, e.g. (r["_measurement"] == "cpu" and ...)."""
from typing import Any, Collection, Tuple

from .entities import FluxExpression
from .exceptions import FluxValidationError
from .helpers import ensure_string
from .query_formatting.flux_formatting import represent_flux_value
from .query_formatting.representations import quote_flux_string


ROW_VARIABLE = "r"

AND_OPERATOR = "and"
OR_OPERATOR = "or"
ALLOWED_LOGICAL_OPERATORS = frozenset({AND_OPERATOR, OR_OPERATOR})

ALLOWED_COMPARISON_OPERATORS = frozenset({"==", "!=", "<", ">", "<=", ">=", "=~", "!~"})


def _represent_column(column_name: str) -> str:
    return "{}[{}]".format(ROW_VARIABLE, quote_flux_string(column_name))


class Restriction(FluxExpression):
    """A boolean expression over the columns of a row, used as a filter() predicate."""

    __slots__ = ()

    def to_fn(self) -> str:
        """Return the predicate wrapped in a Flux row function, e.g. (r) => <predicate>."""
        return "({}) => {}".format(ROW_VARIABLE, self.to_flux())


class ColumnComparison(Restriction):
    """A comparison of a single column against a value, e.g. r["_field"] == "usage"."""

    def __init__(self, column_name: str, operator: str, value: Any) -> None:
        """Construct a ColumnComparison, failing immediately if the value has no representation."""
        super(ColumnComparison, self).__init__(column_name, operator, value)
        self.column_name = column_name
        self.operator = operator
        self.value = value
        self.validate()

    def validate(self) -> None:
        """Ensure that the ColumnComparison is valid."""
        ensure_string(self.column_name, value_description="column name")
        if self.operator not in ALLOWED_COMPARISON_OPERATORS:
            raise FluxValidationError(
                "Unsupported comparison operator {}, expected one of {}".format(
                    self.operator, sorted(ALLOWED_COMPARISON_OPERATORS)
                )
            )
        represent_flux_value(self.value, quote_strings=True)

    def to_flux(self) -> str:
        """Return the Flux representation of the comparison."""
        return "{} {} {}".format(
            _represent_column(self.column_name),
            self.operator,
            represent_flux_value(self.value, quote_strings=True),
        )


class ColumnContains(Restriction):
    """A set-membership test of a column's value, e.g. contains(value: r["host"], set: [...])."""

    def __init__(self, column_name: str, values: Collection[Any]) -> None:
        """Construct a ColumnContains restriction against the given collection of values."""
        values = tuple(values)
        super(ColumnContains, self).__init__(column_name, values)
        self.column_name = column_name
        self.values = values
        self.validate()

    def validate(self) -> None:
        """Ensure that the ColumnContains restriction is valid."""
        ensure_string(self.column_name, value_description="column name")
        represent_flux_value(list(self.values))

    def to_flux(self) -> str:
        """Return the Flux representation of the set-membership test."""
        return "contains(value: {}, set: {})".format(
            _represent_column(self.column_name), represent_flux_value(list(self.values))
        )


class LogicalRestriction(Restriction):
    """A conjunction or disjunction of restrictions, e.g. (a and b and c)."""

    def __init__(self, operator: str, restrictions: Tuple[Restriction, ...]) -> None:
        """Construct a LogicalRestriction joining the restrictions with the given operator."""
        super(LogicalRestriction, self).__init__(operator, restrictions)
        self.operator = operator
        self.restrictions = restrictions
        self.validate()

    def validate(self) -> None:
        """Ensure that the LogicalRestriction is valid."""
        if self.operator not in ALLOWED_LOGICAL_OPERATORS:
            raise AssertionError("Unexpected logical operator: {}".format(self.operator))
        if not self.restrictions:
            raise FluxValidationError(
                'At least one restriction is required for the "{}" operator.'.format(
                    self.operator
                )
            )
        for restriction in self.restrictions:
            if not isinstance(restriction, Restriction):
                raise FluxValidationError(
                    "Expected Restriction operands, got: {} {}".format(
                        type(restriction).__name__, restriction
                    )
                )

    def to_flux(self) -> str:
        """Return the parenthesized Flux representation of the logical expression."""
        separator = " {} ".format(self.operator)
        return "(" + separator.join(r.to_flux() for r in self.restrictions) + ")"


class NegatedRestriction(Restriction):
    """The logical negation of a restriction."""

    def __init__(self, restriction: Restriction) -> None:
        """Construct a NegatedRestriction."""
        super(NegatedRestriction, self).__init__(restriction)
        self.restriction = restriction
        self.validate()

    def validate(self) -> None:
        """Ensure that the negated operand is a restriction."""
        if not isinstance(self.restriction, Restriction):
            raise FluxValidationError(
                "Expected a Restriction to negate, got: {} {}".format(
                    type(self.restriction).__name__, self.restriction
                )
            )

    def to_flux(self) -> str:
        """Return the Flux representation of the negation."""
        return "not {}".format(self.restriction.to_flux())


class ColumnRestriction(object):
    """Factory for restrictions on the values of a single column."""

    def __init__(self, column_name: str) -> None:
        """Construct a ColumnRestriction for the given column."""
        self.column_name = ensure_string(column_name, value_description="column name")

    def equal(self, value: Any) -> Restriction:
        """Return a restriction that the column is equal to the value."""
        return ColumnComparison(self.column_name, "==", value)

    def not_equal(self, value: Any) -> Restriction:
        """Return a restriction that the column is not equal to the value."""
        return ColumnComparison(self.column_name, "!=", value)

    def less(self, value: Any) -> Restriction:
        """Return a restriction that the column is less than the value."""
        return ColumnComparison(self.column_name, "<", value)

    def greater(self, value: Any) -> Restriction:
        """Return a restriction that the column is greater than the value."""
        return ColumnComparison(self.column_name, ">", value)

    def less_or_equal(self, value: Any) -> Restriction:
        """Return a restriction that the column is less than or equal to the value."""
        return ColumnComparison(self.column_name, "<=", value)

    def greater_or_equal(self, value: Any) -> Restriction:
        """Return a restriction that the column is greater than or equal to the value."""
        return ColumnComparison(self.column_name, ">=", value)

    def custom(self, value: Any, operator: str) -> Restriction:
        """Return a restriction comparing the column to the value with the given operator."""
        return ColumnComparison(self.column_name, operator, value)

    def contains(self, values: Collection[Any]) -> Restriction:
        """Return a restriction that the column's value is one of the given values."""
        return ColumnContains(self.column_name, values)


class Restrictions(object):
    """Entry points for building filter() predicates."""

    @staticmethod
    def and_(*restrictions: Restriction) -> Restriction:
        """Return the conjunction of the restrictions."""
        return LogicalRestriction(AND_OPERATOR, restrictions)

    @staticmethod
    def or_(*restrictions: Restriction) -> Restriction:
        """Return the disjunction of the restrictions."""
        return LogicalRestriction(OR_OPERATOR, restrictions)

    @staticmethod
    def not_(restriction: Restriction) -> Restriction:
        """Return the negation of the restriction."""
        return NegatedRestriction(restriction)

    @staticmethod
    def measurement() -> ColumnRestriction:
        return ColumnRestriction("_measurement")

    @staticmethod
    def field() -> ColumnRestriction:
        return ColumnRestriction("_field")

    @staticmethod
    def start() -> ColumnRestriction:
        return ColumnRestriction("_start")

    @staticmethod
    def stop() -> ColumnRestriction:
        return ColumnRestriction("_stop")

    @staticmethod
    def time() -> ColumnRestriction:
        return ColumnRestriction("_time")

    @staticmethod
    def value() -> ColumnRestriction:
        return ColumnRestriction("_value")

    @staticmethod
    def tag(tag_name: str) -> ColumnRestriction:
        """Return a factory for restrictions on the given tag."""
        return ColumnRestriction(tag_name)

    @staticmethod
    def column(column_name: str) -> ColumnRestriction:
        """Return a factory for restrictions on the given column."""
        return ColumnRestriction(column_name)
