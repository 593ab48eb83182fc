# Copyright 2020-present Kensho Technologies, LLC.
"""Persistent, fluent builder of Flux pipelines."""
from dataclasses import dataclass
from typing import Any, Collection, Dict, List, Mapping, Optional, Tuple, Union

from .clauses import BaseClause, ExpressionClause
from .exceptions import FluxValidationError
from .operators import JOIN_METHOD_INNER, DurationArgument, TimeArgument, build_operator
from .properties import FluxProperty, ParameterTable
from .query_formatting.representations import TimeUnitLike
from .restrictions import Restriction


PIPE_SEPARATOR = " |> "


@dataclass(frozen=True, init=False)
class Pipeline:
    """An immutable chain of Flux clauses, starting with a source clause like from().

    Pipelines are persistent values: every method that adds or changes a clause returns a new
    Pipeline and leaves the original untouched. Pipelines share their common prefix, so
    branching several queries off the same base pipeline is cheap and safe:

        base = from_("telegraf").range(start=-1, unit="h")
        first_query = base.first()
        last_query = base.last()
    """

    __slots__ = ("depth", "node", "tail")

    # Field order matters: the generated "==" compares fields in declaration order, and comparing
    # the integer depth first rejects most unequal pipelines without walking their tails.
    depth: int  # The number of clauses in the pipeline.
    node: Optional[BaseClause]  # The last clause of the pipeline, or None if it is empty.
    tail: Optional["Pipeline"]  # The pipeline without its last clause, if it is not empty.

    def __init__(self, node: Optional[BaseClause], tail: Optional["Pipeline"]) -> None:
        """Initialize the Pipeline. Use make_empty_pipeline() and append() instead."""
        # Frozen dataclasses must be written through object.__setattr__(), and depth is derived.
        object.__setattr__(self, "node", node)
        object.__setattr__(self, "tail", tail)

        depth = 0 if tail is None else tail.depth + 1
        object.__setattr__(self, "depth", depth)

    def __copy__(self) -> "Pipeline":
        """Return self, since pipelines are immutable."""
        return self

    def __deepcopy__(self, memo: Optional[Dict[int, Any]]) -> "Pipeline":
        """Return self, since pipelines and their clauses are immutable."""
        return self

    @property
    def is_empty(self) -> bool:
        """Return True if the pipeline has no clauses."""
        return self.tail is None

    @property
    def nodes(self) -> Tuple[BaseClause, ...]:
        """Return the clauses of the pipeline, in the order in which they were appended."""
        nodes: List[BaseClause] = []
        current = self
        while current.tail is not None:
            nodes.append(current.node)  # type: ignore[arg-type]
            current = current.tail
        return tuple(reversed(nodes))

    def append(self, node: BaseClause) -> "Pipeline":
        """Return a new Pipeline with the given clause added at its end.

        The first clause of a pipeline must be a source, and sources may only appear first.
        """
        if not isinstance(node, BaseClause):
            raise FluxValidationError(
                "Expected a clause to append, got: {} {}".format(type(node).__name__, node)
            )
        if self.is_empty and not node.is_source:
            raise FluxValidationError(
                "A pipeline must start with a source clause like from() or join(), "
                "got: {}".format(node)
            )
        if not self.is_empty and node.is_source:
            raise FluxValidationError(
                "Source clauses can only start a pipeline, but {} was appended to "
                "{}".format(node, self)
            )
        return Pipeline(node, self)

    def render(self, parameters: Optional[ParameterTable] = None) -> str:
        """Return the Flux query text of the pipeline.

        Args:
            parameters: optional mapping of names to values, used to resolve the properties
                        bound with with_property_named(). Properties bound to names missing from
                        the mapping are omitted.

        Returns:
            string, the clauses' Flux text joined by the pipe-forward operator
        """
        if self.is_empty:
            raise FluxValidationError("Cannot render an empty pipeline.")
        if parameters is None:
            parameters = {}

        builder: List[str] = []
        self.render_assignments(parameters, builder)
        self.render_expression(parameters, builder)
        return "".join(builder)

    def render_assignments(self, parameters: ParameterTable, builder: List[str]) -> None:
        """Append the variable assignments the clauses depend on, such as join() tables."""
        for node in self.nodes:
            node.render_assignments(parameters, builder)

    def render_expression(self, parameters: ParameterTable, builder: List[str]) -> None:
        """Append the clauses joined by the pipe-forward operator, without any assignments."""
        for index, node in enumerate(self.nodes):
            if index > 0:
                builder.append(PIPE_SEPARATOR)
            node.render_expression(parameters, builder)

    def __str__(self) -> str:
        """Return the Flux query text of the pipeline, without any parameters."""
        return self.render()

    ######
    # Operator properties, applied to the last clause of the pipeline
    ######

    def _replace_last_node(self, node: BaseClause) -> "Pipeline":
        if self.tail is None:
            raise FluxValidationError("Cannot set properties on an empty pipeline.")
        return self.tail.append(node)

    def _last_node(self) -> BaseClause:
        if self.node is None:
            raise FluxValidationError("Cannot set properties on an empty pipeline.")
        return self.node

    def with_property(self, name: str, prop: FluxProperty) -> "Pipeline":
        """Bind the parameter of the last clause to the given property."""
        return self._replace_last_node(self._last_node().with_property(name, prop))

    def with_property_named(self, name: str, external_name: Optional[str] = None) -> "Pipeline":
        """Bind the parameter of the last clause to an entry of the render-time parameters.

        Args:
            name: the name of the operator's parameter
            external_name: the name of the entry in the parameters passed to render().
                           Defaults to the parameter's own name.

        Returns:
            new Pipeline with the updated last clause
        """
        return self._replace_last_node(
            self._last_node().with_property_named(name, external_name)
        )

    def with_property_value(self, name: str, value: Any) -> "Pipeline":
        """Bind the parameter of the last clause to an immediate value. Strings are not escaped."""
        return self._replace_last_node(self._last_node().with_property_value(name, value))

    def with_property_value_escaped(self, name: str, value: Optional[str]) -> "Pipeline":
        """Bind the parameter of the last clause to a string that is escaped and quoted."""
        return self._replace_last_node(self._last_node().with_property_value_escaped(name, value))

    def with_property_duration(
        self, name: str, amount: Optional[int], unit: Optional[TimeUnitLike]
    ) -> "Pipeline":
        """Bind the parameter of the last clause to a duration, e.g. 5m."""
        return self._replace_last_node(
            self._last_node().with_property_duration(name, amount, unit)
        )

    ######
    # Operators
    ######

    def operator(self, tag: str, **values: Any) -> "Pipeline":
        """Append the registered operator, constructed from the given arguments."""
        return self.append(build_operator(tag, **values))

    def expression(self, expression: str) -> "Pipeline":
        """Append a clause made of the given Flux text, emitted verbatim."""
        return self.append(ExpressionClause(expression))

    def count(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("count", use_start_time=use_start_time)

    def covariance(
        self,
        columns: Optional[Collection[str]] = None,
        pearsonr: Optional[bool] = None,
        value_dst: Optional[str] = None,
    ) -> "Pipeline":
        return self.operator("covariance", columns=columns, pearsonr=pearsonr, value_dst=value_dst)

    def derivative(
        self,
        amount: DurationArgument = None,
        unit: Optional[TimeUnitLike] = None,
        non_negative: Optional[bool] = None,
        columns: Optional[Collection[str]] = None,
        time_src: Optional[str] = None,
    ) -> "Pipeline":
        """Compute the rate of change per the given unit of time."""
        return self.operator(
            "derivative",
            amount=amount,
            unit=unit,
            non_negative=non_negative,
            columns=columns,
            time_src=time_src,
        )

    def difference(
        self, columns: Optional[Collection[str]] = None, non_negative: Optional[bool] = None
    ) -> "Pipeline":
        return self.operator("difference", columns=columns, non_negative=non_negative)

    def distinct(self, column: Optional[str] = None) -> "Pipeline":
        return self.operator("distinct", column=column)

    def drop(
        self, columns: Optional[Collection[str]] = None, fn: Optional[str] = None
    ) -> "Pipeline":
        """Drop the given columns, or those whose name satisfies fn, written over "column"."""
        return self.operator("drop", columns=columns, fn=fn)

    def keep(
        self, columns: Optional[Collection[str]] = None, fn: Optional[str] = None
    ) -> "Pipeline":
        """Keep the given columns, or those whose name satisfies fn, written over "column"."""
        return self.operator("keep", columns=columns, fn=fn)

    def filter(self, restrictions: Optional[Union[Restriction, str]] = None) -> "Pipeline":
        """Keep the rows satisfying the restrictions, or the raw predicate written over "r"."""
        return self.operator("filter", restrictions=restrictions)

    def first(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("first", use_start_time=use_start_time)

    def group(
        self,
        by: Optional[Collection[str]] = None,
        except_: Optional[Collection[str]] = None,
        keep: Optional[Collection[str]] = None,
    ) -> "Pipeline":
        """Regroup the tables by the given columns, or by all columns except the given ones."""
        return self.operator("group", by=by, except_=except_, keep=keep)

    def integral(
        self, amount: DurationArgument = None, unit: Optional[TimeUnitLike] = None
    ) -> "Pipeline":
        return self.operator("integral", amount=amount, unit=unit)

    def last(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("last", use_start_time=use_start_time)

    def limit(self, n: Optional[int] = None, offset: Optional[int] = None) -> "Pipeline":
        return self.operator("limit", n=n, offset=offset)

    def map(self, fn: Optional[str] = None) -> "Pipeline":
        """Apply the function body fn, written over the row variable "r", to every row."""
        return self.operator("map", fn=fn)

    def max(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("max", use_start_time=use_start_time)

    def mean(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("mean", use_start_time=use_start_time)

    def min(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("min", use_start_time=use_start_time)

    def range(
        self,
        start: TimeArgument = None,
        stop: TimeArgument = None,
        unit: Optional[TimeUnitLike] = None,
    ) -> "Pipeline":
        """Restrict the data to a time range.

        Each bound may be an absolute time (a datetime or ISO-8601 string), a timedelta, or an
        integer amount of the given unit relative to now. For example, range(start=-1, unit="h")
        renders as range(start: -1h).
        """
        return self.operator("range", start=start, stop=stop, unit=unit)

    def rename(
        self, columns: Optional[Mapping[str, str]] = None, fn: Optional[str] = None
    ) -> "Pipeline":
        return self.operator("rename", columns=columns, fn=fn)

    def sample(self, n: Optional[int] = None, pos: Optional[int] = None) -> "Pipeline":
        """Select a subset of the rows, every n-th starting at pos. Requires pos < n."""
        return self.operator("sample", n=n, pos=pos)

    def set(self, key: Optional[str] = None, value: Optional[str] = None) -> "Pipeline":
        return self.operator("set", key=key, value=value)

    def shift(
        self,
        amount: DurationArgument = None,
        unit: Optional[TimeUnitLike] = None,
        columns: Optional[Collection[str]] = None,
    ) -> "Pipeline":
        return self.operator("shift", amount=amount, unit=unit, columns=columns)

    def skew(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("skew", use_start_time=use_start_time)

    def sort(
        self, columns: Optional[Collection[str]] = None, desc: Optional[bool] = None
    ) -> "Pipeline":
        return self.operator("sort", columns=columns, desc=desc)

    def spread(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("spread", use_start_time=use_start_time)

    def stddev(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("stddev", use_start_time=use_start_time)

    def sum(self, use_start_time: Optional[bool] = None) -> "Pipeline":
        return self.operator("sum", use_start_time=use_start_time)

    def to_bool(self) -> "Pipeline":
        return self.operator("toBool")

    def to_duration(self) -> "Pipeline":
        return self.operator("toDuration")

    def to_float(self) -> "Pipeline":
        return self.operator("toFloat")

    def to_int(self) -> "Pipeline":
        return self.operator("toInt")

    def to_string(self) -> "Pipeline":
        return self.operator("toString")

    def to_time(self) -> "Pipeline":
        return self.operator("toTime")

    def to_uint(self) -> "Pipeline":
        return self.operator("toUInt")

    def window(
        self,
        every: DurationArgument = None,
        period: DurationArgument = None,
        offset: TimeArgument = None,
        unit: Optional[TimeUnitLike] = None,
        column: Optional[str] = None,
        start_col: Optional[str] = None,
        stop_col: Optional[str] = None,
    ) -> "Pipeline":
        """Group the rows into windows of time. Integer amounts all use the given unit."""
        return self.operator(
            "window",
            every=every,
            period=period,
            offset=offset,
            unit=unit,
            column=column,
            start_col=start_col,
            stop_col=stop_col,
        )

    def yield_(self, name: Optional[str] = None) -> "Pipeline":
        """Output the result of the pipeline under the given name."""
        return self.operator("yield", name=name)


def make_empty_pipeline() -> Pipeline:
    """Create a new empty pipeline, to which a source clause must be appended first."""
    return Pipeline(None, None)


######
# Public API
######


def from_(bucket: str, hosts: Optional[Collection[str]] = None) -> Pipeline:
    """Start a pipeline reading from the named bucket, e.g. from(bucket: "telegraf")."""
    return make_empty_pipeline().operator("from", bucket=bucket, hosts=hosts)


def join(
    tables: Mapping[str, Pipeline],
    on: Union[str, Collection[str]],
    method: Optional[str] = JOIN_METHOD_INNER,
) -> Pipeline:
    """Start a pipeline joining the named tables on the given column(s).

    Args:
        tables: mapping of Flux variable name -> Pipeline producing that table
        on: column name, or collection of column names, to join on
        method: the join method, "inner" by default

    Returns:
        new Pipeline whose source is the join
    """
    return make_empty_pipeline().operator("join", tables=tables, on=on, method=method)


def expression_source(expression: str) -> Pipeline:
    """Start a pipeline with the given Flux text, e.g. buckets() or a custom source function."""
    return make_empty_pipeline().append(ExpressionClause(expression, is_source=True))
