# Copyright 2018-present Kensho Technologies, LLC.
"""Safely represent Python values as Flux literals."""
import datetime
import decimal
from typing import Any, Iterable, Mapping

from ..entities import FluxExpression
from ..exceptions import FluxInvalidArgumentError
from ..helpers import IDENTIFIER_ALLOWED_CHARS
from .representations import (
    quote_flux_string,
    represent_bool_as_str,
    represent_datetime,
    represent_float_as_str,
    represent_int_as_str,
    represent_timedelta,
)


def _represent_flux_record_key(key: Any) -> str:
    """Represent a record key, which Flux writes as a bare identifier."""
    if not isinstance(key, str) or not key or key[0].isdigit():
        raise FluxInvalidArgumentError(
            "Flux record keys must be non-empty identifiers, got: {}".format(key)
        )
    disallowed_chars = set(key) - IDENTIFIER_ALLOWED_CHARS
    if disallowed_chars:
        raise FluxInvalidArgumentError(
            "Encountered illegal characters {} in record key: {}".format(disallowed_chars, key)
        )
    return key


def _represent_flux_array(elements: Iterable[Any]) -> str:
    """Represent the elements as a Flux array literal, quoting any string elements."""
    components = (represent_flux_value(element, quote_strings=True) for element in elements)
    return "[" + ", ".join(components) + "]"


def _represent_flux_record(mapping: Mapping[Any, Any]) -> str:
    """Represent the mapping as a Flux record literal, quoting any string values."""
    components = (
        "{}: {}".format(
            _represent_flux_record_key(key), represent_flux_value(value, quote_strings=True)
        )
        for key, value in mapping.items()
    )
    return "{" + ", ".join(components) + "}"


######
# Public API
######


def represent_flux_value(value: Any, quote_strings: bool = False) -> str:
    """Return a Flux string representing the given value.

    Args:
        value: the value to represent. Supported types are bool, int, float, Decimal, str,
               datetime, timedelta, lists/tuples/sets of supported values, mappings with
               identifier keys, and FluxExpression objects such as filter restrictions.
        quote_strings: bool, whether a top-level string value should be escaped and quoted.
                       Strings nested in arrays and records are always quoted.

    Returns:
        string, the Flux representation of the value
    """
    if isinstance(value, FluxExpression):
        return value.to_flux()
    elif isinstance(value, bool):
        return represent_bool_as_str(value)
    elif isinstance(value, int):
        return represent_int_as_str(value)
    elif isinstance(value, (float, decimal.Decimal)):
        return represent_float_as_str(value)
    elif isinstance(value, str):
        return quote_flux_string(value) if quote_strings else value
    elif isinstance(value, datetime.datetime):
        return represent_datetime(value)
    elif isinstance(value, datetime.timedelta):
        return represent_timedelta(value)
    elif isinstance(value, Mapping):
        return _represent_flux_record(value)
    elif isinstance(value, (list, tuple)):
        return _represent_flux_array(value)
    elif isinstance(value, (set, frozenset)):
        # Sort the elements by their representation for deterministic output order.
        components = sorted(represent_flux_value(element, quote_strings=True) for element in value)
        return "[" + ", ".join(components) + "]"
    else:
        raise FluxInvalidArgumentError(
            "Could not safely represent the value {} of type {} in Flux.".format(
                value, type(value).__name__
            )
        )
