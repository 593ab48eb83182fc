# Copyright 2020-present Kensho Technologies, LLC.
from copy import copy, deepcopy
import datetime
import unittest

from ..clauses import ClauseNode, ExpressionClause
from ..exceptions import FluxInvalidArgumentError, FluxValidationError
from ..pipeline import (
    PIPE_SEPARATOR,
    Pipeline,
    expression_source,
    from_,
    join,
    make_empty_pipeline,
)
from ..properties import RawText
from ..registry import register_operator, unregister_operator
from ..restrictions import Restrictions


class PipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        """Disable max diff limits for all tests."""
        self.maxDiff = None

    def test_basic_query(self) -> None:
        pipeline = from_("telegraf").range(start=-1, unit="h").last()
        self.assertEqual(
            'from(bucket: "telegraf") |> range(start: -1h) |> last()', pipeline.render()
        )
        self.assertEqual(pipeline.render(), str(pipeline))

    def test_filter_query(self) -> None:
        pipeline = (
            from_("telegraf")
            .range(start=-1, unit="h")
            .filter(
                Restrictions.and_(
                    Restrictions.measurement().equal("cpu"),
                    Restrictions.field().equal("usage_system"),
                )
            )
            .sum()
        )
        expected_flux = (
            'from(bucket: "telegraf") |> range(start: -1h) |> '
            'filter(fn: (r) => (r["_measurement"] == "cpu" and r["_field"] == "usage_system")) '
            "|> sum()"
        )
        self.assertEqual(expected_flux, pipeline.render())

    def test_raw_filter_predicate(self) -> None:
        pipeline = from_("telegraf").filter("r._value > 0")
        self.assertEqual(
            'from(bucket: "telegraf") |> filter(fn: (r) => r._value > 0)', pipeline.render()
        )

    def test_empty_pipeline(self) -> None:
        pipeline = make_empty_pipeline()
        self.assertTrue(pipeline.is_empty)
        self.assertEqual(0, pipeline.depth)
        self.assertIsNone(pipeline.node)
        self.assertIsNone(pipeline.tail)
        self.assertEqual((), pipeline.nodes)
        with self.assertRaises(FluxValidationError):
            pipeline.render()
        with self.assertRaises(FluxValidationError):
            str(pipeline)

    def test_pipeline_must_start_with_source(self) -> None:
        with self.assertRaises(FluxValidationError):
            make_empty_pipeline().last()
        with self.assertRaises(FluxValidationError):
            make_empty_pipeline().append(ClauseNode("range"))
        with self.assertRaises(FluxValidationError):
            make_empty_pipeline().expression("last()")

        pipeline = make_empty_pipeline().append(ExpressionClause("buckets()", is_source=True))
        self.assertEqual("buckets() |> limit(n: 1)", pipeline.limit(n=1).render())

    def test_sources_only_come_first(self) -> None:
        with self.assertRaises(FluxValidationError):
            from_("telegraf").operator("from", bucket="other")
        with self.assertRaises(FluxValidationError):
            from_("telegraf").append(ExpressionClause("buckets()", is_source=True))

    def test_append_requires_clause(self) -> None:
        with self.assertRaises(FluxValidationError):
            from_("telegraf").append("last()")  # type: ignore[arg-type]

    def test_pipelines_are_persistent(self) -> None:
        base = from_("telegraf").range(start=-1, unit="h")
        first_pipeline = base.first()
        last_pipeline = base.last()

        self.assertEqual('from(bucket: "telegraf") |> range(start: -1h)', base.render())
        self.assertEqual(
            'from(bucket: "telegraf") |> range(start: -1h) |> first()', first_pipeline.render()
        )
        self.assertEqual(
            'from(bucket: "telegraf") |> range(start: -1h) |> last()', last_pipeline.render()
        )
        self.assertIs(base, first_pipeline.tail)
        self.assertIs(base, last_pipeline.tail)
        self.assertEqual(2, base.depth)
        self.assertEqual(3, last_pipeline.depth)

    def test_nodes(self) -> None:
        pipeline = from_("telegraf").range(start=-1, unit="h").last()
        self.assertEqual(
            ['from(bucket: "telegraf")', "range(start: -1h)", "last()"],
            [node.to_flux() for node in pipeline.nodes],
        )
        self.assertIs(pipeline.node, pipeline.nodes[-1])

    def test_rendering_is_associative(self) -> None:
        pipeline = from_("telegraf").range(start=-5, unit="m").mean().yield_(name="mean")
        expected_flux = PIPE_SEPARATOR.join(node.to_flux() for node in pipeline.nodes)
        self.assertEqual(expected_flux, pipeline.render())

        # Rendering a pipeline, then each clause appended to it, gives the same text.
        prefix = from_("telegraf").range(start=-5, unit="m")
        suffix_flux = PIPE_SEPARATOR.join(node.to_flux() for node in pipeline.nodes[2:])
        self.assertEqual(expected_flux, prefix.render() + PIPE_SEPARATOR + suffix_flux)

    def test_equality(self) -> None:
        self.assertEqual(from_("telegraf").last(), from_("telegraf").last())
        self.assertNotEqual(from_("telegraf").last(), from_("telegraf").first())
        self.assertNotEqual(from_("telegraf").last(), from_("other").last())
        self.assertNotEqual(make_empty_pipeline(), from_("telegraf"))

    def test_copies_are_the_same_object(self) -> None:
        pipeline = from_("telegraf").last()
        self.assertIs(pipeline, copy(pipeline))
        self.assertIs(pipeline, deepcopy(pipeline))
        self.assertIsInstance(deepcopy({"query": pipeline})["query"], Pipeline)

    def test_rendering_is_repeatable(self) -> None:
        pipeline = from_("telegraf").range().with_property_named("start")
        parameters = {"start": datetime.timedelta(hours=-1)}
        self.assertEqual(pipeline.render(parameters), pipeline.render(parameters))


class PipelinePropertyTests(unittest.TestCase):
    def test_named_properties(self) -> None:
        pipeline = from_("telegraf").range().with_property_named("start")
        self.assertEqual(
            'from(bucket: "telegraf") |> range(start: -1h)',
            pipeline.render({"start": datetime.timedelta(hours=-1)}),
        )
        self.assertEqual(
            'from(bucket: "telegraf") |> range(start: 2018-11-09T12:00:00Z)',
            pipeline.render({"start": datetime.datetime(2018, 11, 9, 12, 0)}),
        )
        # Unresolved references are omitted, and never an error.
        self.assertEqual('from(bucket: "telegraf") |> range()', pipeline.render())
        self.assertEqual('from(bucket: "telegraf") |> range()', pipeline.render({"start": None}))

    def test_blank_named_values_are_omitted(self) -> None:
        pipeline = from_("telegraf").limit().with_property_named("n")
        self.assertEqual('from(bucket: "telegraf") |> limit()', pipeline.render({"n": ""}))
        self.assertEqual('from(bucket: "telegraf") |> limit()', pipeline.render({"n": "  "}))
        self.assertEqual('from(bucket: "telegraf") |> limit(n: 5)', pipeline.render({"n": 5}))

    def test_blank_raw_values_are_rejected(self) -> None:
        with self.assertRaises(FluxInvalidArgumentError):
            from_("telegraf").with_property_value("bucket", "")
        with self.assertRaises(FluxInvalidArgumentError):
            from_("telegraf").range().with_property_value("start", " ")

    def test_named_property_with_external_name(self) -> None:
        pipeline = from_("telegraf").range().with_property_named("start", "begin")
        self.assertEqual(
            'from(bucket: "telegraf") |> range(start: -1h)', pipeline.render({"begin": "-1h"})
        )
        self.assertEqual('from(bucket: "telegraf") |> range()', pipeline.render({"start": "-1h"}))

    def test_property_setters(self) -> None:
        base = from_("telegraf")
        self.assertEqual(
            'from(bucket: "telegraf") |> limit(n: 5)',
            base.limit().with_property_value("n", 5).render(),
        )
        self.assertEqual(
            'from(bucket: "telegraf") |> yield(name: "mean")',
            base.yield_().with_property_value_escaped("name", "mean").render(),
        )
        self.assertEqual(
            'from(bucket: "telegraf") |> window(every: 5m)',
            base.window().with_property_duration("every", 5, "m").render(),
        )
        self.assertEqual(
            'from(bucket: "telegraf") |> map(fn: (r) => r)',
            base.map().with_property("fn", RawText("(r) => r")).render(),
        )

    def test_property_setters_replace_last_clause(self) -> None:
        pipeline = from_("telegraf").limit(n=1)
        updated_pipeline = pipeline.with_property_value("n", 2)
        self.assertEqual(pipeline.depth, updated_pipeline.depth)
        self.assertIs(pipeline.tail, updated_pipeline.tail)
        self.assertEqual('from(bucket: "telegraf") |> limit(n: 1)', pipeline.render())
        self.assertEqual('from(bucket: "telegraf") |> limit(n: 2)', updated_pipeline.render())

    def test_property_setters_validate(self) -> None:
        pipeline = from_("telegraf").sample(n=5)
        with self.assertRaises(FluxValidationError):
            pipeline.with_property_value("pos", 6)
        with self.assertRaises(FluxInvalidArgumentError):
            pipeline.with_property_duration("every", 5, None)
        with self.assertRaises(FluxValidationError):
            from_("telegraf").expression("last()").with_property_value("n", 1)

    def test_property_setters_on_empty_pipeline(self) -> None:
        with self.assertRaises(FluxValidationError):
            make_empty_pipeline().with_property_value("n", 1)
        with self.assertRaises(FluxValidationError):
            make_empty_pipeline().with_property_named("n")


class PipelineSourceTests(unittest.TestCase):
    def setUp(self) -> None:
        """Disable max diff limits for all tests."""
        self.maxDiff = None

    def test_from_with_hosts(self) -> None:
        self.assertEqual(
            'from(bucket: "telegraf", hosts: ["https://example.com:8086"])',
            from_("telegraf", hosts=["https://example.com:8086"]).render(),
        )

    def test_from_escapes_bucket(self) -> None:
        self.assertEqual('from(bucket: "my \\"bucket\\"")', from_('my "bucket"').render())

    def test_join(self) -> None:
        cpu = from_("telegraf").range(start=-30, unit="m").filter(
            Restrictions.measurement().equal("cpu")
        )
        mem = from_("telegraf").range(start=-30, unit="m").filter(
            Restrictions.measurement().equal("mem")
        )
        pipeline = join({"cpu": cpu, "mem": mem}, on=["_time", "host"]).yield_(name="joined")

        expected_flux = (
            'cpu = from(bucket: "telegraf") |> range(start: -30m) '
            '|> filter(fn: (r) => r["_measurement"] == "cpu")\n'
            'mem = from(bucket: "telegraf") |> range(start: -30m) '
            '|> filter(fn: (r) => r["_measurement"] == "mem")\n'
            'join(tables: {cpu: cpu, mem: mem}, on: ["_time", "host"], method: "inner") '
            '|> yield(name: "joined")'
        )
        self.assertEqual(expected_flux, pipeline.render())

    def test_join_tables_share_parameters(self) -> None:
        cpu = from_("telegraf").range().with_property_named("start")
        pipeline = join({"cpu": cpu}, on="host")
        self.assertEqual(
            'cpu = from(bucket: "telegraf") |> range(start: -1h)\n'
            'join(tables: {cpu: cpu}, on: ["host"], method: "inner")',
            pipeline.render({"start": "-1h"}),
        )

    def test_join_of_empty_pipeline(self) -> None:
        with self.assertRaises(FluxValidationError):
            join({"cpu": make_empty_pipeline()}, on=["host"])

    def test_join_of_joins(self) -> None:
        cpu_and_mem = join(
            {"cpu": from_("cpu").last(), "mem": from_("mem").last()}, on=["host"]
        )
        pipeline = join({"usage": cpu_and_mem, "disk": from_("disk")}, on=["host"])

        expected_flux = (
            'cpu = from(bucket: "cpu") |> last()\n'
            'mem = from(bucket: "mem") |> last()\n'
            'usage = join(tables: {cpu: cpu, mem: mem}, on: ["host"], method: "inner")\n'
            'disk = from(bucket: "disk")\n'
            'join(tables: {usage: usage, disk: disk}, on: ["host"], method: "inner")'
        )
        self.assertEqual(expected_flux, pipeline.render())

    def test_join_of_joins_reusing_a_name(self) -> None:
        cpu_and_mem = join({"cpu": from_("cpu"), "mem": from_("mem")}, on=["host"])
        with self.assertRaises(FluxValidationError):
            join({"cpu": cpu_and_mem, "disk": from_("disk")}, on=["host"])

    def test_join_requires_a_mapping(self) -> None:
        with self.assertRaises(FluxValidationError):
            join("ab", on=["host"])  # type: ignore[arg-type]

    def test_expression_source(self) -> None:
        pipeline = expression_source("buckets()").filter(
            Restrictions.column("name").equal("telegraf")
        )
        self.assertEqual(
            'buckets() |> filter(fn: (r) => r["name"] == "telegraf")', pipeline.render()
        )
        self.assertTrue(pipeline.nodes[0].is_source)
        with self.assertRaises(FluxValidationError):
            expression_source("   ")
        with self.assertRaises(FluxValidationError):
            from_("telegraf").append(ExpressionClause("buckets()", is_source=True))


class PipelineCustomOperatorTests(unittest.TestCase):
    def tearDown(self) -> None:
        unregister_operator("movingAverage")

    def test_custom_operator(self) -> None:
        register_operator("movingAverage")
        pipeline = from_("telegraf").operator("movingAverage", n=5)
        self.assertEqual(
            'from(bucket: "telegraf") |> movingAverage(n: 5)', pipeline.render()
        )
