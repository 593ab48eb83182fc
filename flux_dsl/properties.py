# Copyright 2018-present Kensho Technologies, LLC.
"""Values and references bound to the parameters of a Flux operator."""
from abc import ABCMeta, abstractmethod
import datetime
import decimal
import logging
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

import funcy

from .entities import FluxEntity
from .exceptions import FluxInvalidArgumentError
from .helpers import validate_identifier
from .query_formatting.flux_formatting import represent_flux_value
from .query_formatting.representations import (
    TimeUnitLike,
    coerce_to_time_unit,
    quote_flux_string,
    represent_datetime,
    represent_duration,
    represent_float_as_str,
    represent_int_as_str,
)


logger = logging.getLogger(__name__)

ParameterTable = Mapping[str, Any]


class FluxProperty(FluxEntity, metaclass=ABCMeta):
    """A value bound to a single parameter of a Flux operator."""

    __slots__ = ()

    @abstractmethod
    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return the Flux representation of the property, or None if it should be omitted.

        Args:
            parameters: the parameter table supplied at render time, used to resolve
                        named references. Immediate values ignore it.

        Returns:
            string with the rendered value, or None if the parameter must be left out entirely
        """
        raise NotImplementedError()


class Absent(FluxProperty):
    """A property that was explicitly unset. It is never rendered."""

    def __init__(self) -> None:
        """Construct a new Absent property."""
        super(Absent, self).__init__()
        self.validate()

    def validate(self) -> None:
        """Absent properties are always valid."""

    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return None, since absent properties are omitted from the output."""
        return None


class StringLiteral(FluxProperty):
    """A string that is escaped and quoted when rendered, e.g. bucket: "telegraf"."""

    def __init__(self, value: str) -> None:
        """Construct a new StringLiteral wrapping the given raw string."""
        super(StringLiteral, self).__init__(value)
        self.value = value
        self.validate()

    def validate(self) -> None:
        """Ensure that the StringLiteral wraps a string."""
        if not isinstance(self.value, str):
            raise FluxInvalidArgumentError(
                "Expected a string for an escaped string literal, got: {} {}".format(
                    type(self.value).__name__, self.value
                )
            )

    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return the escaped and quoted string."""
        return quote_flux_string(self.value)


class RawText(FluxProperty):
    """Text that is emitted verbatim, such as a function body. The caller ensures it is valid."""

    def __init__(self, text: str) -> None:
        """Construct a new RawText property."""
        super(RawText, self).__init__(text)
        self.text = text
        self.validate()

    def validate(self) -> None:
        """Ensure that the RawText wraps a string with some non-whitespace text."""
        if not isinstance(self.text, str):
            raise FluxInvalidArgumentError(
                "Expected a string for raw Flux text, got: {} {}".format(
                    type(self.text).__name__, self.text
                )
            )
        if not self.text.strip():
            raise FluxInvalidArgumentError(
                "Raw Flux text cannot be empty or consist only of whitespace: {}".format(
                    repr(self.text)
                )
            )

    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return the text unchanged."""
        return self.text


class NumericLiteral(FluxProperty):
    """An int, float or Decimal value."""

    def __init__(self, value: Union[int, float, decimal.Decimal]) -> None:
        """Construct a new NumericLiteral, failing immediately if it cannot be represented."""
        super(NumericLiteral, self).__init__(value)
        self.value = value
        self.validate()

    def validate(self) -> None:
        """Ensure that the value is a number with a Flux representation."""
        self._represent()

    def _represent(self) -> str:
        if isinstance(self.value, int) and not isinstance(self.value, bool):
            return represent_int_as_str(self.value)
        elif isinstance(self.value, (float, decimal.Decimal)):
            return represent_float_as_str(self.value)
        else:
            raise FluxInvalidArgumentError(
                "Expected a numeric value, got: {} {}".format(type(self.value).__name__, self.value)
            )

    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return the numeric literal."""
        return self._represent()


class DurationLiteral(FluxProperty):
    """An integer amount of a time unit, e.g. -1h or 5m."""

    def __init__(self, amount: int, unit: TimeUnitLike) -> None:
        """Construct a new DurationLiteral, failing immediately on a bad amount or unit."""
        unit = coerce_to_time_unit(unit)
        super(DurationLiteral, self).__init__(amount, unit)
        self.amount = amount
        self.unit = unit
        self.validate()

    def validate(self) -> None:
        """Ensure that the amount is an integer."""
        represent_duration(self.amount, self.unit)

    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return the duration literal."""
        return represent_duration(self.amount, self.unit)


class TimeLiteral(FluxProperty):
    """An absolute point in time, rendered as an RFC3339 UTC time literal."""

    def __init__(self, value: Union[datetime.datetime, str]) -> None:
        """Construct a new TimeLiteral from a datetime or an ISO-8601 string."""
        super(TimeLiteral, self).__init__(value)
        self.value = value
        self.validate()

    def validate(self) -> None:
        """Ensure that the value can be parsed as a point in time."""
        represent_datetime(self.value)

    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return the time literal."""
        return represent_datetime(self.value)


class ImmediateValue(FluxProperty):
    """Any other value known at construction time, such as a bool, list, record or restriction.

    The value is rendered when the property is constructed, both to fail fast on values
    without a Flux representation, and so that later mutations of a list or dict the caller
    still holds cannot change the query.
    """

    def __init__(self, value: Any) -> None:
        """Construct a new ImmediateValue."""
        super(ImmediateValue, self).__init__(value)
        self.value = value
        self._rendered = represent_flux_value(value)
        self.validate()

    def validate(self) -> None:
        """Ensure that the value had a Flux representation."""
        if not isinstance(self._rendered, str):
            raise AssertionError(
                "Unreachable state reached: {} {}".format(self.value, self._rendered)
            )

    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return the value's representation, as computed at construction time."""
        return self._rendered


class NamedReference(FluxProperty):
    """A reference to an entry of the parameter table, resolved at render time.

    If the parameter table has no value for the referenced name, or only a blank string, the
    property is omitted, just like an unset optional keyword argument.
    """

    def __init__(self, external_name: str) -> None:
        """Construct a new NamedReference to the given parameter table entry."""
        super(NamedReference, self).__init__(external_name)
        self.external_name = external_name
        self.validate()

    def validate(self) -> None:
        """Ensure that the referenced name is a non-empty string."""
        if not isinstance(self.external_name, str) or not self.external_name:
            raise FluxInvalidArgumentError(
                "Expected a non-empty parameter name, got: {}".format(self.external_name)
            )

    def to_flux(self, parameters: ParameterTable) -> Optional[str]:
        """Return the representation of the referenced value, or None if it is not supplied."""
        value = parameters.get(self.external_name)
        if value is None or (isinstance(value, str) and not value.strip()):
            logger.debug(
                "Parameter %s was not supplied, omitting the property bound to it.",
                self.external_name,
            )
            return None
        return make_property(value).to_flux(parameters)


def make_property(value: Any) -> FluxProperty:
    """Wrap an immediate value in the appropriate FluxProperty.

    Strings are treated as raw text. Use StringLiteral for strings that need escaping.
    """
    if value is None:
        return Absent()
    elif isinstance(value, FluxProperty):
        return value
    elif isinstance(value, (int, float, decimal.Decimal)) and not isinstance(value, bool):
        return NumericLiteral(value)
    elif isinstance(value, str):
        return RawText(value)
    elif isinstance(value, datetime.datetime):
        return TimeLiteral(value)
    else:
        return ImmediateValue(value)


class PropertyStore(object):
    """An immutable, ordered mapping of operator parameter names to their properties.

    Every "with_*" method returns a new PropertyStore and leaves the original untouched.
    Setting a name that is already present replaces its property in place, keeping the
    parameter's original position in the rendered output.
    """

    __slots__ = ("_properties",)

    def __init__(self, properties: Optional[Mapping[str, FluxProperty]] = None) -> None:
        """Construct a new PropertyStore from an optional mapping of name -> FluxProperty."""
        self._properties: Dict[str, FluxProperty] = dict(properties or {})
        self.validate()

    def validate(self) -> None:
        """Ensure that all names are identifiers and all values are properties."""
        for name, prop in self._properties.items():
            validate_identifier(name, value_description="parameter name")
            if not isinstance(prop, FluxProperty):
                raise TypeError(
                    "Expected FluxProperty values in the properties dict, got: "
                    "{} -> {}".format(name, prop)
                )

    def with_property(self, name: str, prop: FluxProperty) -> "PropertyStore":
        """Return a new PropertyStore with the given property bound to the given name."""
        new_properties = dict(self._properties)
        new_properties[name] = prop
        return PropertyStore(new_properties)

    def with_named(self, name: str, external_name: Optional[str] = None) -> "PropertyStore":
        """Bind the parameter to an entry of the parameter table, by default of the same name."""
        if external_name is None:
            external_name = name
        return self.with_property(name, NamedReference(external_name))

    def with_value(self, name: str, value: Any) -> "PropertyStore":
        """Bind the parameter to an immediate value. Strings are emitted without escaping."""
        return self.with_property(name, make_property(value))

    def with_value_escaped(self, name: str, value: Optional[str]) -> "PropertyStore":
        """Bind the parameter to a string that is escaped and quoted when rendered."""
        prop = Absent() if value is None else StringLiteral(value)
        return self.with_property(name, prop)

    def with_duration(
        self, name: str, amount: Optional[int], unit: Optional[TimeUnitLike]
    ) -> "PropertyStore":
        """Bind the parameter to a duration literal, or unset it if the amount is None."""
        if amount is None:
            return self.with_property(name, Absent())
        if unit is None:
            raise FluxInvalidArgumentError(
                "A unit is required for the duration amount {} of parameter {}.".format(
                    amount, name
                )
            )
        return self.with_property(name, DurationLiteral(amount, unit))

    def get(self, name: str) -> Optional[FluxProperty]:
        """Return the property bound to the name, or None if there is none."""
        return self._properties.get(name)

    @property
    def names(self) -> Tuple[str, ...]:
        """Return the parameter names, in declaration order."""
        return tuple(self._properties)

    def items(self) -> Iterator[Tuple[str, FluxProperty]]:
        """Iterate over (name, property) pairs, in declaration order."""
        return iter(self._properties.items())

    def render(self, parameters: ParameterTable) -> str:
        """Return the "name: value" pairs of all properties that are not omitted, in order."""

        def render_pair(item: Tuple[str, FluxProperty]) -> Optional[str]:
            name, prop = item
            rendered = prop.to_flux(parameters)
            return None if rendered is None else "{}: {}".format(name, rendered)

        return ", ".join(funcy.lkeep(render_pair, self._properties.items()))

    def __contains__(self, name: object) -> bool:
        """Return True if a property is bound to the given name."""
        return name in self._properties

    def __iter__(self) -> Iterator[str]:
        """Iterate over the parameter names, in declaration order."""
        return iter(self._properties)

    def __len__(self) -> int:
        """Return the number of bound parameters, including absent ones."""
        return len(self._properties)

    def __eq__(self, other: Any) -> bool:
        """Return True if both stores bind equal properties to the same names in the same order."""
        if not isinstance(other, PropertyStore):
            return False
        return list(self._properties.items()) == list(other._properties.items())

    def __ne__(self, other: Any) -> bool:
        """Check another object for non-equality against this one."""
        return not self.__eq__(other)

    def __hash__(self) -> int:
        """Return a hash consistent with equality."""
        return hash(tuple(self._properties.items()))

    def __repr__(self) -> str:
        """Return a human-readable representation of the store."""
        return "PropertyStore({})".format(self._properties)
