# Copyright 2020-present Kensho Technologies, LLC.
import json
from typing import Any, List
import unittest

import httpx

from ..client import ClientConfig, Dialect, QueryApi
from ..exceptions import FluxQueryError, FluxValidationError
from ..pipeline import from_


RESPONSE_CSV = """\
#datatype,string,long,string,double
#group,false,false,true,false
#default,_result,,,
,result,table,_field,_value
,,0,usage_user,1.5
,,0,usage_user,2.5
,,1,usage_system,0.5
"""


class QueryApiTests(unittest.TestCase):
    def setUp(self) -> None:
        """Disable max diff limits for all tests."""
        self.maxDiff = None
        self.config = ClientConfig(url="http://localhost:8086/", token="my-token", org="my-org")
        self.requests: List[httpx.Request] = []

    def _make_query_api(self, status_code: int = 200, **response_kwargs: Any) -> QueryApi:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code, **response_kwargs)

        return QueryApi(self.config, client=httpx.Client(transport=httpx.MockTransport(handler)))

    def test_query_raw_request(self) -> None:
        query_api = self._make_query_api(200, text=RESPONSE_CSV)
        result = query_api.query_raw('from(bucket: "telegraf") |> range(start: -1h)')
        self.assertEqual(RESPONSE_CSV, result)

        self.assertEqual(1, len(self.requests))
        request = self.requests[0]
        self.assertEqual("POST", request.method)
        self.assertEqual("http://localhost:8086/api/v2/query?org=my-org", str(request.url))
        self.assertEqual("Token my-token", request.headers["Authorization"])
        self.assertEqual("application/csv", request.headers["Accept"])
        self.assertEqual("application/json", request.headers["Content-Type"])
        self.assertEqual(
            {
                "query": 'from(bucket: "telegraf") |> range(start: -1h)',
                "type": "flux",
                "dialect": {
                    "header": True,
                    "delimiter": ",",
                    "annotations": ["datatype", "group", "default"],
                    "commentPrefix": "#",
                    "dateTimeFormat": "RFC3339",
                },
            },
            json.loads(request.content),
        )

    def test_query_raw_overrides(self) -> None:
        query_api = self._make_query_api(200, text="result,table\n")
        query_api.query_raw(
            "buckets()", org="other-org", dialect=Dialect(annotations=(), header=False)
        )
        query_api.query_raw("buckets()", dialect=None)

        first_request, second_request = self.requests
        self.assertEqual("other-org", first_request.url.params["org"])
        self.assertEqual([], json.loads(first_request.content)["dialect"]["annotations"])
        self.assertFalse(json.loads(first_request.content)["dialect"]["header"])
        self.assertNotIn("dialect", json.loads(second_request.content))

    def test_query_without_token_or_org(self) -> None:
        self.config = ClientConfig(url="http://localhost:8086")
        query_api = self._make_query_api(200, text="")
        query_api.query_raw("buckets()")

        request = self.requests[0]
        self.assertNotIn("Authorization", request.headers)
        self.assertNotIn("org", request.url.params)

    def test_query_pipeline_with_parameters(self) -> None:
        query_api = self._make_query_api(200, text="")
        pipeline = from_("telegraf").range().with_property_named("start").last()
        query_api.query_raw(pipeline, parameters={"start": "-5m"})

        self.assertEqual(
            'from(bucket: "telegraf") |> range(start: -5m) |> last()',
            json.loads(self.requests[0].content)["query"],
        )

    def test_parameters_require_pipeline(self) -> None:
        query_api = self._make_query_api(200, text="")
        with self.assertRaises(FluxValidationError):
            query_api.query_raw("buckets()", parameters={"start": "-5m"})
        with self.assertRaises(FluxValidationError):
            query_api.query_raw("")
        self.assertEqual([], self.requests)

    def test_query_tables(self) -> None:
        query_api = self._make_query_api(200, text=RESPONSE_CSV)
        tables = query_api.query(from_("telegraf").range(start=-1, unit="h"))

        self.assertEqual(2, len(tables))
        self.assertEqual([1.5, 2.5], [record.get_value() for record in tables[0].records])
        self.assertEqual("usage_system", tables[1].records[0].get_field())

    def test_query_records(self) -> None:
        query_api = self._make_query_api(200, text=RESPONSE_CSV)
        records = list(query_api.query_records("buckets()"))

        self.assertEqual([1.5, 2.5, 0.5], [record.get_value() for record in records])
        self.assertEqual([0, 0, 1], [record.table for record in records])

    def test_error_message_from_json(self) -> None:
        query_api = self._make_query_api(
            400, json={"code": "invalid", "message": "compilation failed"}
        )
        with self.assertRaises(FluxQueryError) as context:
            query_api.query_raw("bad query")
        self.assertEqual("compilation failed", context.exception.message)
        self.assertEqual(400, context.exception.status_code)

    def test_error_message_from_header(self) -> None:
        query_api = self._make_query_api(500, headers={"Influx-Error": "internal failure"})
        with self.assertRaises(FluxQueryError) as context:
            query_api.query_raw("buckets()")
        self.assertEqual("internal failure", context.exception.message)
        self.assertEqual(500, context.exception.status_code)

    def test_error_message_from_body(self) -> None:
        query_api = self._make_query_api(503, text="service unavailable")
        with self.assertRaises(FluxQueryError) as context:
            query_api.query("buckets()")
        self.assertEqual("service unavailable", context.exception.message)
        self.assertEqual(503, context.exception.status_code)

    def test_error_while_streaming_records(self) -> None:
        query_api = self._make_query_api(
            401, json={"code": "unauthorized", "message": "unauthorized access"}
        )
        with self.assertRaises(FluxQueryError) as context:
            list(query_api.query_records("buckets()"))
        self.assertEqual("unauthorized access", context.exception.message)
        self.assertEqual(401, context.exception.status_code)

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        query_api = QueryApi(
            self.config, client=httpx.Client(transport=httpx.MockTransport(handler))
        )
        with self.assertRaises(FluxQueryError):
            query_api.query_raw("buckets()")
        with self.assertRaises(FluxQueryError):
            list(query_api.query_records("buckets()"))

    def test_close(self) -> None:
        client = httpx.Client(transport=httpx.MockTransport(lambda _: httpx.Response(200)))
        with QueryApi(self.config, client=client):
            pass
        # Clients passed in by the caller are left open.
        self.assertFalse(client.is_closed)
        client.close()

        query_api = QueryApi(self.config)
        with query_api:
            pass
        self.assertTrue(query_api._client.is_closed)  # pylint: disable=protected-access
