# Copyright 2019-present Kensho Technologies, LLC.
"""Constructor functions and validators of the built-in Flux operators.

Every operator is a ClauseNode tagged with the operator's name. Each constructor function binds
its arguments to parameters in a fixed order, which is the order in which they are rendered.
Arguments left as None are absent, and are omitted from the rendered query.
"""
import datetime
from typing import TYPE_CHECKING, Any, Collection, Mapping, Optional, Union

from .clauses import BaseClause, ClauseNode, JoinClause
from .exceptions import FluxInvalidArgumentError, FluxValidationError
from .helpers import ensure_string
from .properties import (
    Absent,
    DurationLiteral,
    FluxProperty,
    ImmediateValue,
    NumericLiteral,
    PropertyStore,
    RawText,
    StringLiteral,
    TimeLiteral,
)
from .query_formatting.representations import TimeUnitLike
from .registry import (
    ClauseValidator,
    OperatorFactory,
    get_operator_definition,
    operator_factory,
    register_validator,
)
from .restrictions import ROW_VARIABLE, Restriction


if TYPE_CHECKING:
    from .pipeline import Pipeline  # noqa


COLUMN_VARIABLE = "column"

JOIN_METHOD_INNER = "inner"
JOIN_METHOD_CROSS = "cross"
ALLOWED_JOIN_METHODS = frozenset({JOIN_METHOD_INNER, JOIN_METHOD_CROSS})

# Aggregates and selectors whose only parameter is useStartTime.
USE_START_TIME_OPERATORS = (
    "count",
    "first",
    "last",
    "max",
    "mean",
    "min",
    "skew",
    "spread",
    "stddev",
    "sum",
)

# Type conversion operators, which take no parameters at all.
CONVERSION_OPERATORS = (
    "toBool",
    "toDuration",
    "toFloat",
    "toInt",
    "toString",
    "toTime",
    "toUInt",
)

DurationArgument = Union[int, datetime.timedelta, FluxProperty, None]
TimeArgument = Union[int, datetime.timedelta, datetime.datetime, str, FluxProperty, None]


######
# Argument conversion
######


def _duration_property(amount: DurationArgument, unit: Optional[TimeUnitLike]) -> FluxProperty:
    """Return the property for an argument that must be a duration."""
    if amount is None:
        return Absent()
    elif isinstance(amount, FluxProperty):
        return amount
    elif isinstance(amount, datetime.timedelta):
        return ImmediateValue(amount)
    elif isinstance(amount, int) and not isinstance(amount, bool):
        if unit is None:
            raise FluxInvalidArgumentError(
                "A unit is required for the integer duration amount {}.".format(amount)
            )
        return DurationLiteral(amount, unit)
    else:
        raise FluxInvalidArgumentError(
            "Expected an integer amount with a unit, or a timedelta, for a duration. "
            "Got {} of type {} instead.".format(amount, type(amount).__name__)
        )


def _time_property(value: TimeArgument, unit: Optional[TimeUnitLike]) -> FluxProperty:
    """Return the property for an argument that may be an absolute time or a relative duration."""
    if isinstance(value, (datetime.datetime, str)):
        return TimeLiteral(value)
    return _duration_property(value, unit)


def _columns_property(columns: Optional[Collection[str]]) -> FluxProperty:
    """Return the property for a list of column names."""
    if columns is None:
        return Absent()
    if isinstance(columns, str):
        columns = [columns]
    columns = list(columns)
    for column in columns:
        ensure_string(column, value_description="column name")
    return ImmediateValue(columns)


def _bool_property(value: Optional[bool]) -> FluxProperty:
    if value is None:
        return Absent()
    if not isinstance(value, bool):
        raise FluxInvalidArgumentError(
            "Expected a bool, got: {} {}".format(type(value).__name__, value)
        )
    return ImmediateValue(value)


def _escaped_property(value: Optional[str]) -> FluxProperty:
    return Absent() if value is None else StringLiteral(value)


def _number_property(value: Optional[Union[int, float]]) -> FluxProperty:
    return Absent() if value is None else NumericLiteral(value)


def _function_property(variable: str, body: Optional[str]) -> FluxProperty:
    """Return a raw function property, e.g. (r) => r._value > 0 for the body r._value > 0."""
    if body is None:
        return Absent()
    ensure_string(body, value_description="function body")
    return RawText("({}) => {}".format(variable, body))


def _immediate_python_value(properties: PropertyStore, name: str) -> Any:
    """Return the Python value of an immediate property, or None if it is unknown until render."""
    prop = properties.get(name)
    if isinstance(prop, (NumericLiteral, ImmediateValue, StringLiteral)):
        return prop.value
    return None


def _is_present(properties: PropertyStore, name: str) -> bool:
    return name in properties and not isinstance(properties.get(name), Absent)


######
# Validators
######


def _validate_from(properties: PropertyStore) -> None:
    bucket = _immediate_python_value(properties, "bucket")
    if isinstance(bucket, str) and not bucket:
        raise FluxValidationError("from() requires a non-empty bucket name.")


def _validate_join(properties: PropertyStore) -> None:
    if not _is_present(properties, "on"):
        raise FluxValidationError("join() requires the column(s) to join on.")

    on = _immediate_python_value(properties, "on")
    if on is not None:
        if not isinstance(on, list) or not on:
            raise FluxValidationError(
                "join() requires a non-empty list of columns to join on, got: {}".format(on)
            )

    method = _immediate_python_value(properties, "method")
    if method is not None and method not in ALLOWED_JOIN_METHODS:
        raise FluxValidationError(
            "Unsupported join method {}, expected one of {}.".format(
                method, sorted(ALLOWED_JOIN_METHODS)
            )
        )


def _validate_sample(properties: PropertyStore) -> None:
    n = _immediate_python_value(properties, "n")
    pos = _immediate_python_value(properties, "pos")
    if isinstance(n, int) and n <= 0:
        raise FluxValidationError("sample() requires n to be positive, got: {}".format(n))
    if isinstance(n, int) and isinstance(pos, int) and pos >= n:
        raise FluxValidationError(
            "sample() requires pos to be less than n, got: n={} pos={}".format(n, pos)
        )


def _validate_limit(properties: PropertyStore) -> None:
    for name in ("n", "offset"):
        value = _immediate_python_value(properties, name)
        if value is None:
            continue
        if not isinstance(value, int) or value < 0:
            raise FluxValidationError(
                "limit() requires {} to be a non-negative integer, got: {}".format(name, value)
            )


def _make_mutually_exclusive_validator(
    operator_name: str, first: str, second: str
) -> ClauseValidator:
    def validator(properties: PropertyStore) -> None:
        if _is_present(properties, first) and _is_present(properties, second):
            raise FluxValidationError(
                "{}() accepts either {} or {}, but not both.".format(operator_name, first, second)
            )

    return validator


register_validator("from", _validate_from)
register_validator("join", _validate_join)
register_validator("sample", _validate_sample)
register_validator("limit", _validate_limit)
register_validator("drop", _make_mutually_exclusive_validator("drop", "columns", "fn"))
register_validator("keep", _make_mutually_exclusive_validator("keep", "columns", "fn"))
register_validator("rename", _make_mutually_exclusive_validator("rename", "columns", "fn"))
register_validator("group", _make_mutually_exclusive_validator("group", "by", "except"))


######
# Sources
######


@operator_factory("from", is_source=True)
def make_from(bucket: str, hosts: Optional[Collection[str]] = None) -> ClauseNode:
    """Read data from the named bucket, optionally from the given hosts."""
    ensure_string(bucket, value_description="bucket name")
    properties = (
        PropertyStore()
        .with_property("bucket", StringLiteral(bucket))
        .with_property("hosts", _columns_property(hosts))
    )
    return ClauseNode("from", properties)


@operator_factory("join", is_source=True)
def make_join(
    tables: Mapping[str, "Pipeline"],
    on: Union[str, Collection[str]],
    method: Optional[str] = JOIN_METHOD_INNER,
) -> JoinClause:
    """Join the given named tables on the given column(s)."""
    if not on:
        raise FluxValidationError("join() requires the column(s) to join on.")
    properties = (
        PropertyStore()
        .with_property("on", _columns_property(on))
        .with_property("method", _escaped_property(method))
    )
    return JoinClause(tables, properties)


######
# Transformations
######


def _make_use_start_time_factory(operator_name: str) -> OperatorFactory:
    def factory(use_start_time: Optional[bool] = None) -> ClauseNode:
        properties = PropertyStore().with_property("useStartTime", _bool_property(use_start_time))
        return ClauseNode(operator_name, properties)

    factory.__name__ = "make_" + operator_name
    factory.__doc__ = "Construct a {}() clause.".format(operator_name)
    return factory


def _make_conversion_factory(operator_name: str) -> OperatorFactory:
    def factory() -> ClauseNode:
        return ClauseNode(operator_name)

    factory.__name__ = "make_" + operator_name
    factory.__doc__ = "Construct a {}() clause.".format(operator_name)
    return factory


for _operator_name in USE_START_TIME_OPERATORS:
    operator_factory(_operator_name)(_make_use_start_time_factory(_operator_name))

for _operator_name in CONVERSION_OPERATORS:
    operator_factory(_operator_name)(_make_conversion_factory(_operator_name))


@operator_factory("covariance")
def make_covariance(
    columns: Optional[Collection[str]] = None,
    pearsonr: Optional[bool] = None,
    value_dst: Optional[str] = None,
) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("columns", _columns_property(columns))
        .with_property("pearsonr", _bool_property(pearsonr))
        .with_property("valueDst", _escaped_property(value_dst))
    )
    return ClauseNode("covariance", properties)


@operator_factory("derivative")
def make_derivative(
    amount: DurationArgument = None,
    unit: Optional[TimeUnitLike] = None,
    non_negative: Optional[bool] = None,
    columns: Optional[Collection[str]] = None,
    time_src: Optional[str] = None,
) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("unit", _duration_property(amount, unit))
        .with_property("nonNegative", _bool_property(non_negative))
        .with_property("columns", _columns_property(columns))
        .with_property("timeSrc", _escaped_property(time_src))
    )
    return ClauseNode("derivative", properties)


@operator_factory("difference")
def make_difference(
    columns: Optional[Collection[str]] = None, non_negative: Optional[bool] = None
) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("columns", _columns_property(columns))
        .with_property("nonNegative", _bool_property(non_negative))
    )
    return ClauseNode("difference", properties)


@operator_factory("distinct")
def make_distinct(column: Optional[str] = None) -> ClauseNode:
    properties = PropertyStore().with_property("column", _escaped_property(column))
    return ClauseNode("distinct", properties)


@operator_factory("drop")
def make_drop(columns: Optional[Collection[str]] = None, fn: Optional[str] = None) -> ClauseNode:
    """Drop the given columns, or the columns whose names satisfy the predicate fn."""
    properties = (
        PropertyStore()
        .with_property("columns", _columns_property(columns))
        .with_property("fn", _function_property(COLUMN_VARIABLE, fn))
    )
    return ClauseNode("drop", properties)


@operator_factory("keep")
def make_keep(columns: Optional[Collection[str]] = None, fn: Optional[str] = None) -> ClauseNode:
    """Keep only the given columns, or the columns whose names satisfy the predicate fn."""
    properties = (
        PropertyStore()
        .with_property("columns", _columns_property(columns))
        .with_property("fn", _function_property(COLUMN_VARIABLE, fn))
    )
    return ClauseNode("keep", properties)


@operator_factory("filter")
def make_filter(restrictions: Optional[Union[Restriction, str]] = None) -> ClauseNode:
    """Keep only the rows matching the restrictions.

    Args:
        restrictions: either a Restriction, or the raw Flux text of a predicate over the row
                      variable "r", e.g. 'r._value > 0'

    Returns:
        new filter() ClauseNode
    """
    if isinstance(restrictions, Restriction):
        fn: FluxProperty = RawText(restrictions.to_fn())
    else:
        fn = _function_property(ROW_VARIABLE, restrictions)
    return ClauseNode("filter", PropertyStore().with_property("fn", fn))


@operator_factory("group")
def make_group(
    by: Optional[Collection[str]] = None,
    except_: Optional[Collection[str]] = None,
    keep: Optional[Collection[str]] = None,
) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("by", _columns_property(by))
        .with_property("except", _columns_property(except_))
        .with_property("keep", _columns_property(keep))
    )
    return ClauseNode("group", properties)


@operator_factory("integral")
def make_integral(
    amount: DurationArgument = None, unit: Optional[TimeUnitLike] = None
) -> ClauseNode:
    properties = PropertyStore().with_property("unit", _duration_property(amount, unit))
    return ClauseNode("integral", properties)


@operator_factory("limit")
def make_limit(n: Optional[int] = None, offset: Optional[int] = None) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("n", _number_property(n))
        .with_property("offset", _number_property(offset))
    )
    return ClauseNode("limit", properties)


@operator_factory("map")
def make_map(fn: Optional[str] = None) -> ClauseNode:
    """Apply the function body fn, written over the row variable "r", to each row."""
    properties = PropertyStore().with_property("fn", _function_property(ROW_VARIABLE, fn))
    return ClauseNode("map", properties)


@operator_factory("range")
def make_range(
    start: TimeArgument = None,
    stop: TimeArgument = None,
    unit: Optional[TimeUnitLike] = None,
) -> ClauseNode:
    """Restrict the time range of the data.

    Both bounds are either absolute times (datetime objects or ISO-8601 strings), timedeltas,
    or integer amounts of the given unit relative to now, e.g. start=-1, unit="h".
    """
    properties = (
        PropertyStore()
        .with_property("start", _time_property(start, unit))
        .with_property("stop", _time_property(stop, unit))
    )
    return ClauseNode("range", properties)


@operator_factory("rename")
def make_rename(
    columns: Optional[Mapping[str, str]] = None, fn: Optional[str] = None
) -> ClauseNode:
    """Rename columns, either by an old name -> new name mapping or by a function of "column"."""
    if columns is None:
        columns_property: FluxProperty = Absent()
    else:
        for new_name in columns.values():
            ensure_string(new_name, value_description="column name")
        columns_property = ImmediateValue(dict(columns))
    properties = (
        PropertyStore()
        .with_property("columns", columns_property)
        .with_property("fn", _function_property(COLUMN_VARIABLE, fn))
    )
    return ClauseNode("rename", properties)


@operator_factory("sample")
def make_sample(n: Optional[int] = None, pos: Optional[int] = None) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("n", _number_property(n))
        .with_property("pos", _number_property(pos))
    )
    return ClauseNode("sample", properties)


@operator_factory("set")
def make_set(key: Optional[str] = None, value: Optional[str] = None) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("key", _escaped_property(key))
        .with_property("value", _escaped_property(value))
    )
    return ClauseNode("set", properties)


@operator_factory("shift")
def make_shift(
    amount: DurationArgument = None,
    unit: Optional[TimeUnitLike] = None,
    columns: Optional[Collection[str]] = None,
) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("shift", _duration_property(amount, unit))
        .with_property("columns", _columns_property(columns))
    )
    return ClauseNode("shift", properties)


@operator_factory("sort")
def make_sort(columns: Optional[Collection[str]] = None, desc: Optional[bool] = None) -> ClauseNode:
    properties = (
        PropertyStore()
        .with_property("columns", _columns_property(columns))
        .with_property("desc", _bool_property(desc))
    )
    return ClauseNode("sort", properties)


@operator_factory("window")
def make_window(
    every: DurationArgument = None,
    period: DurationArgument = None,
    offset: TimeArgument = None,
    unit: Optional[TimeUnitLike] = None,
    column: Optional[str] = None,
    start_col: Optional[str] = None,
    stop_col: Optional[str] = None,
) -> ClauseNode:
    """Group rows into windows of time. Integer every/period/offset amounts share the unit."""
    properties = (
        PropertyStore()
        .with_property("every", _duration_property(every, unit))
        .with_property("period", _duration_property(period, unit))
        .with_property("offset", _time_property(offset, unit))
        .with_property("column", _escaped_property(column))
        .with_property("startCol", _escaped_property(start_col))
        .with_property("stopCol", _escaped_property(stop_col))
    )
    return ClauseNode("window", properties)


@operator_factory("yield")
def make_yield(name: Optional[str] = None) -> ClauseNode:
    properties = PropertyStore().with_property("name", _escaped_property(name))
    return ClauseNode("yield", properties)


######
# Public API
######


def build_operator(tag: str, **values: Any) -> BaseClause:
    """Construct a clause for the registered operator with the given arguments.

    Operators registered with a constructor function receive the arguments as keyword
    arguments. For operators registered without one, every argument is bound as an immediate
    value under its own name, in the given order.
    """
    definition = get_operator_definition(tag)
    if definition.factory is not None:
        return definition.factory(**values)

    properties = PropertyStore()
    for parameter_name, value in values.items():
        properties = properties.with_value(parameter_name, value)
    return ClauseNode(tag, properties)
