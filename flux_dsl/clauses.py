# Copyright 2017-present Kensho Technologies, LLC.
"""Definitions of the clauses that make up a Flux pipeline."""
from abc import ABCMeta, abstractmethod
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Tuple

from .entities import FluxEntity
from .exceptions import FluxValidationError
from .helpers import ensure_string, validate_identifier
from .properties import FluxProperty, ParameterTable, PropertyStore, RawText
from .query_formatting.representations import TimeUnitLike
from .registry import get_validators, is_source_operator


if TYPE_CHECKING:
    from .pipeline import Pipeline  # noqa


def _no_parameters_error(clause: "BaseClause") -> FluxValidationError:
    return FluxValidationError(
        "Clauses of type {} do not accept parameters: {}".format(type(clause).__name__, clause)
    )


class BaseClause(FluxEntity, metaclass=ABCMeta):
    """A single stage of a Flux pipeline."""

    __slots__ = ()

    @property
    @abstractmethod
    def is_source(self) -> bool:
        """Return True if this clause starts a pipeline, instead of consuming another's output."""
        raise NotImplementedError()

    def render_assignments(self, parameters: ParameterTable, builder: List[str]) -> None:
        """Append the variable assignments this clause depends on, one per line. None by default."""

    @abstractmethod
    def render_expression(self, parameters: ParameterTable, builder: List[str]) -> None:
        """Append the Flux expression of this clause to the builder, without any assignments.

        Args:
            parameters: the parameter table used to resolve named references
            builder: list of string fragments, joined together once the whole pipeline is
                     rendered
        """
        raise NotImplementedError()

    def render(self, parameters: ParameterTable, builder: List[str]) -> None:
        """Append the assignments of this clause, followed by its expression, to the builder."""
        self.render_assignments(parameters, builder)
        self.render_expression(parameters, builder)

    def to_flux(self, parameters: Optional[ParameterTable] = None) -> str:
        """Return the Flux text of this clause alone."""
        builder: List[str] = []
        self.render({} if parameters is None else parameters, builder)
        return "".join(builder)

    def with_property(self, name: str, prop: FluxProperty) -> "BaseClause":
        """Return a copy of this clause with the given property. Unsupported by default."""
        raise _no_parameters_error(self)

    def with_property_named(self, name: str, external_name: Optional[str] = None) -> "BaseClause":
        """Return a copy of this clause with the parameter bound to a parameter table entry."""
        raise _no_parameters_error(self)

    def with_property_value(self, name: str, value: Any) -> "BaseClause":
        """Return a copy of this clause with the parameter bound to an immediate value."""
        raise _no_parameters_error(self)

    def with_property_value_escaped(self, name: str, value: Optional[str]) -> "BaseClause":
        """Return a copy of this clause with the parameter bound to an escaped string."""
        raise _no_parameters_error(self)

    def with_property_duration(
        self, name: str, amount: Optional[int], unit: Optional[TimeUnitLike]
    ) -> "BaseClause":
        """Return a copy of this clause with the parameter bound to a duration."""
        raise _no_parameters_error(self)


class ClauseNode(BaseClause):
    """A Flux operator call with named parameters, e.g. range(start: -1h, stop: now())."""

    def __init__(self, operator: str, properties: Optional[PropertyStore] = None) -> None:
        """Construct a ClauseNode, running all validators registered for the operator.

        Args:
            operator: string, the name of the Flux operator
            properties: PropertyStore with the operator's parameters, empty by default

        Returns:
            new ClauseNode object
        """
        if properties is None:
            properties = PropertyStore()
        super(ClauseNode, self).__init__(operator, properties)
        self.operator = operator
        self.properties = properties
        self.validate()

    def validate(self) -> None:
        """Ensure that the ClauseNode is valid, including any operator-specific constraints."""
        validate_identifier(self.operator, value_description="operator name")
        if not isinstance(self.properties, PropertyStore):
            raise TypeError(
                "Expected PropertyStore properties, got: {} {}".format(
                    type(self.properties).__name__, self.properties
                )
            )
        for validator in get_validators(self.operator):
            validator(self.properties)

    @property
    def is_source(self) -> bool:
        """Return True if the operator is registered as a pipeline source."""
        return is_source_operator(self.operator)

    def with_properties(self, properties: PropertyStore) -> "ClauseNode":
        """Return a copy of this clause with the given properties, validated anew."""
        return ClauseNode(self.operator, properties)

    def with_property(self, name: str, prop: FluxProperty) -> "ClauseNode":
        """Return a copy of this clause with the given property bound to the name."""
        return self.with_properties(self.properties.with_property(name, prop))

    def with_property_named(self, name: str, external_name: Optional[str] = None) -> "ClauseNode":
        """Return a copy of this clause with the parameter bound to a parameter table entry."""
        return self.with_properties(self.properties.with_named(name, external_name))

    def with_property_value(self, name: str, value: Any) -> "ClauseNode":
        """Return a copy of this clause with the parameter bound to an immediate value."""
        return self.with_properties(self.properties.with_value(name, value))

    def with_property_value_escaped(self, name: str, value: Optional[str]) -> "ClauseNode":
        """Return a copy of this clause with the parameter bound to an escaped string."""
        return self.with_properties(self.properties.with_value_escaped(name, value))

    def with_property_duration(
        self, name: str, amount: Optional[int], unit: Optional[TimeUnitLike]
    ) -> "ClauseNode":
        """Return a copy of this clause with the parameter bound to a duration."""
        return self.with_properties(self.properties.with_duration(name, amount, unit))

    def render_expression(self, parameters: ParameterTable, builder: List[str]) -> None:
        """Append operator(name: value, ...) to the builder."""
        builder.append("{}({})".format(self.operator, self.properties.render(parameters)))


class ExpressionClause(BaseClause):
    """A clause made of user-supplied Flux text, emitted verbatim."""

    def __init__(self, expression: str, is_source: bool = False) -> None:
        """Construct an ExpressionClause from the given non-empty Flux text."""
        super(ExpressionClause, self).__init__(expression, is_source=is_source)
        self.expression = expression
        self._is_source = is_source
        self.validate()

    def validate(self) -> None:
        """Ensure that the expression is a non-empty string."""
        ensure_string(self.expression, value_description="expression")
        if not self.expression.strip():
            raise FluxValidationError("Expressions cannot consist only of whitespace.")

    @property
    def is_source(self) -> bool:
        """Return True if the expression was declared to start a pipeline."""
        return self._is_source

    def render_expression(self, parameters: ParameterTable, builder: List[str]) -> None:
        """Append the expression text to the builder, unchanged."""
        builder.append(self.expression)


class JoinClause(ClauseNode):
    """The join() source, preceded by one variable assignment per joined table.

    For example:
        cpu = from(bucket: "telegraf") |> range(start: -30m)
        mem = from(bucket: "telegraf") |> range(start: -30m)
        join(tables: {cpu: cpu, mem: mem}, on: ["host"], method: "inner")

    A joined table may itself start with a join. Its own assignments are then emitted on the
    lines before the assignment of the table that uses them.
    """

    def __init__(
        self, tables: Mapping[str, "Pipeline"], properties: Optional[PropertyStore] = None
    ) -> None:
        """Construct a JoinClause over the given table name -> Pipeline mapping."""
        if not isinstance(tables, Mapping):
            raise FluxValidationError(
                "Expected a mapping of table names to pipelines for join(), got: {} {}".format(
                    type(tables).__name__, tables
                )
            )
        self.tables = dict(tables)
        if properties is None:
            properties = PropertyStore()
        if "tables" not in properties:
            table_names = ", ".join("{name}: {name}".format(name=name) for name in self.tables)
            properties = PropertyStore(
                {"tables": RawText("{" + table_names + "}"), **dict(properties.items())}
            )
        super(JoinClause, self).__init__("join", properties)
        self._print_args = (self.tables, self.properties)

    def validate(self) -> None:
        """Ensure that the JoinClause has at least one validly-named table to join."""
        # Imported here to avoid a circular import, since pipelines are made of clauses.
        from .pipeline import Pipeline

        if not self.tables:
            raise FluxValidationError("At least one table is required for join().")
        for name, table in self.tables.items():
            validate_identifier(name, value_description="join table name")
            if not isinstance(table, Pipeline):
                raise FluxValidationError(
                    "Expected a Pipeline for join table {}, got: {} {}".format(
                        name, type(table).__name__, table
                    )
                )
            if table.is_empty:
                raise FluxValidationError("Join table {} is an empty pipeline.".format(name))

        variable_names = self.variable_names
        duplicate_names = sorted(
            {name for name in variable_names if variable_names.count(name) > 1}
        )
        if duplicate_names:
            raise FluxValidationError(
                "Join table names must be unique across nested joins, but {} are assigned "
                "more than once.".format(duplicate_names)
            )
        super(JoinClause, self).validate()

    @property
    def variable_names(self) -> Tuple[str, ...]:
        """Return every variable this join assigns, including those of nested joins."""
        names: List[str] = []
        for name, table in self.tables.items():
            for node in table.nodes:
                if isinstance(node, JoinClause):
                    names.extend(node.variable_names)
            names.append(name)
        return tuple(names)

    def with_properties(self, properties: PropertyStore) -> "JoinClause":
        """Return a copy of this join with the given properties and the same tables."""
        return JoinClause(self.tables, properties)

    def render_assignments(self, parameters: ParameterTable, builder: List[str]) -> None:
        """Append one "name = pipeline" line per table, after any assignments it depends on."""
        for name, table in self.tables.items():
            table.render_assignments(parameters, builder)
            builder.append("{} = ".format(name))
            table.render_expression(parameters, builder)
            builder.append("\n")
