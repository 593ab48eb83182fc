# Copyright 2017-present Kensho Technologies, LLC.
"""Common representations of scalar values as Flux literals."""
import datetime
import decimal
from enum import Enum
import math
from typing import Any, Union

from ciso8601 import parse_datetime  # pylint: disable=no-name-in-module

from ..exceptions import FluxInvalidArgumentError


class TimeUnit(Enum):
    """The units of a Flux duration literal, valued by their literal suffix."""

    NANOSECONDS = "ns"
    MICROSECONDS = "us"
    MILLISECONDS = "ms"
    SECONDS = "s"
    MINUTES = "m"
    HOURS = "h"
    DAYS = "d"
    WEEKS = "w"
    MONTHS = "mo"
    YEARS = "y"


TimeUnitLike = Union[TimeUnit, str]

# Units used for timedelta decomposition, largest first. Weeks are left out on purpose,
# so that e.g. timedelta(days=14) is rendered as "14d", matching how users write it.
_TIMEDELTA_UNITS = (
    (TimeUnit.DAYS, datetime.timedelta(days=1)),
    (TimeUnit.HOURS, datetime.timedelta(hours=1)),
    (TimeUnit.MINUTES, datetime.timedelta(minutes=1)),
    (TimeUnit.SECONDS, datetime.timedelta(seconds=1)),
    (TimeUnit.MILLISECONDS, datetime.timedelta(milliseconds=1)),
    (TimeUnit.MICROSECONDS, datetime.timedelta(microseconds=1)),
)


def escape_flux_string(value: str) -> str:
    """Escape a string for embedding inside a double-quoted Flux string literal.

    Backslashes and double quotes each get a single escaping backslash. The "${" sequence
    starts string interpolation in Flux, so it is escaped as well.
    """
    if not isinstance(value, str):
        raise FluxInvalidArgumentError(
            "Attempting to convert a non-string into a string: {}".format(value)
        )

    return value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")


def quote_flux_string(value: str) -> str:
    """Return the escaped string wrapped in double quotes."""
    return '"' + escape_flux_string(value) + '"'


def represent_float_as_str(value: Union[float, decimal.Decimal]) -> str:
    """Represent a float as a Flux float literal without losing precision.

    Flux float literals must contain a decimal point and may not use exponent notation,
    so "1e+20" and "100" are both unacceptable representations of a float.
    """
    if isinstance(value, bool) or not isinstance(value, (float, decimal.Decimal)):
        raise FluxInvalidArgumentError(
            "Attempting to represent a non-float as a float: {}".format(value)
        )

    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise FluxInvalidArgumentError(
                "Flux has no literal representation for the float value: {}".format(value)
            )
        # repr() produces the shortest string that round-trips to the same float.
        decimal_value = decimal.Decimal(repr(value))
    else:
        if not value.is_finite():
            raise FluxInvalidArgumentError(
                "Flux has no literal representation for the decimal value: {}".format(value)
            )
        decimal_value = value

    result = "{:f}".format(decimal_value)
    if "." not in result:
        result += ".0"
    return result


def type_check_and_str(python_type: type, value: Any) -> str:
    """Type-check the value, and then just return str(value)."""
    if not isinstance(value, python_type):
        raise FluxInvalidArgumentError(
            "Attempting to represent a non-{type} as a {type}: "
            "{value}".format(type=python_type, value=value)
        )

    return str(value)


def represent_int_as_str(value: int) -> str:
    """Represent an int as a Flux integer literal."""
    # Special case: in Python, isinstance(True, int) returns True.
    # Safeguard against this with an explicit check against bool type.
    if isinstance(value, bool):
        raise FluxInvalidArgumentError(
            "Attempting to represent a non-int as an int: {}".format(value)
        )
    return type_check_and_str(int, value)


def represent_bool_as_str(value: bool) -> str:
    """Represent a bool as a Flux boolean literal."""
    if not isinstance(value, bool):
        raise FluxInvalidArgumentError(
            "Attempting to represent a non-bool as a bool: {}".format(value)
        )
    return "true" if value else "false"


def coerce_to_time_unit(unit: TimeUnitLike) -> TimeUnit:
    """Return the TimeUnit for the given enum member or literal suffix, or raise an error."""
    if isinstance(unit, TimeUnit):
        return unit
    try:
        return TimeUnit(unit)
    except ValueError:
        raise FluxInvalidArgumentError(
            "Unrecognized duration unit {}. Expected a TimeUnit or one of {}.".format(
                unit, [member.value for member in TimeUnit]
            )
        )


def represent_duration(amount: int, unit: TimeUnitLike) -> str:
    """Represent an integer amount of the given unit as a Flux duration literal, e.g. "-1h"."""
    return represent_int_as_str(amount) + coerce_to_time_unit(unit).value


def represent_timedelta(value: datetime.timedelta) -> str:
    """Represent a timedelta as a compound Flux duration literal, e.g. "1h30m"."""
    if not isinstance(value, datetime.timedelta):
        raise FluxInvalidArgumentError(
            "Attempting to represent a non-timedelta as a duration: {}".format(value)
        )

    if not value:
        return "0" + TimeUnit.SECONDS.value

    sign = "-" if value < datetime.timedelta(0) else ""
    remaining = abs(value)
    components = []
    for unit, unit_size in _TIMEDELTA_UNITS:
        amount, remaining = divmod(remaining, unit_size)
        if amount:
            components.append(str(amount) + unit.value)

    return sign + "".join(components)


def coerce_to_datetime(value: Union[datetime.datetime, str]) -> datetime.datetime:
    """Return the value as a datetime, parsing ISO-8601 strings with ciso8601."""
    if isinstance(value, datetime.datetime):
        return value
    elif isinstance(value, str):
        try:
            return parse_datetime(value)
        except ValueError as e:
            raise FluxInvalidArgumentError(e)
    else:
        raise FluxInvalidArgumentError(
            "Expected a datetime or its ISO-8601 string representation. "
            "Got {} of type {} instead.".format(value, type(value).__name__)
        )


def represent_datetime(value: Union[datetime.datetime, str]) -> str:
    """Represent a datetime as an RFC3339 Flux time literal in UTC, e.g. 2018-11-09T12:00:00Z.

    Timezone-naive datetimes are assumed to already be in UTC. Fractional seconds are emitted
    with millisecond or microsecond precision, whichever is the shortest exact representation.
    """
    dt = coerce_to_datetime(value)
    if dt.tzinfo is not None:
        dt = dt.astimezone(datetime.timezone.utc)

    result = "{:04d}-{:02d}-{:02d}T{:02d}:{:02d}:{:02d}".format(
        dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second
    )
    if dt.microsecond % 1000 == 0:
        if dt.microsecond:
            result += ".{:03d}".format(dt.microsecond // 1000)
    else:
        result += ".{:06d}".format(dt.microsecond)
    return result + "Z"
