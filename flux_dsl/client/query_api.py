# Copyright 2020-present Kensho Technologies, LLC.
"""Client of the database's Flux query endpoint."""
import logging
from types import TracebackType
from typing import Any, Dict, Iterator, List, Optional, Type, Union

import funcy
import httpx

from ..exceptions import FluxQueryError, FluxValidationError
from ..helpers import ensure_string
from ..pipeline import Pipeline
from ..properties import ParameterTable
from .config import ClientConfig
from .domain import DEFAULT_DIALECT, Dialect, Query
from .flux_csv_parser import FluxCsvParser, FluxRecord, FluxTable


logger = logging.getLogger(__name__)

QUERY_PATH = "/api/v2/query"
HTTP_ERROR_STATUS = 400
INFLUX_ERROR_HEADER = "Influx-Error"

QueryLike = Union[str, Pipeline]


def _extract_error_message(response: httpx.Response) -> str:
    """Return the most specific error message available in a failed response."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    if response.headers.get(INFLUX_ERROR_HEADER):
        return response.headers[INFLUX_ERROR_HEADER]
    if response.text:
        return response.text
    return response.reason_phrase


class QueryApi(object):
    """Synchronous client that runs Flux queries and parses their annotated CSV results.

    Usable as a context manager, which closes the underlying HTTP client on exit:

        with QueryApi(ClientConfig.from_env()) as query_api:
            tables = query_api.query(from_("telegraf").range(start=-1, unit="h").last())
    """

    def __init__(self, config: ClientConfig, client: Optional[httpx.Client] = None) -> None:
        """Construct a QueryApi.

        Args:
            config: the server's connection settings
            client: optional httpx.Client to send the requests with. If not provided, a new
                    client is created from the config, and closed by close().
        """
        self._config = config
        if client is None:
            self._client = httpx.Client(timeout=config.timeout, verify=config.verify_ssl)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    def _render_query(self, query: QueryLike, parameters: Optional[ParameterTable]) -> str:
        if isinstance(query, Pipeline):
            return query.render(parameters)
        if parameters:
            raise FluxValidationError(
                "Parameters can only be bound to Pipeline queries, not to query text: "
                "{}".format(query)
            )
        return ensure_string(query, value_description="query")

    def _build_request(
        self,
        query: QueryLike,
        org: Optional[str],
        dialect: Optional[Dialect],
        parameters: Optional[ParameterTable],
    ) -> Dict[str, Any]:
        query_text = self._render_query(query, parameters)
        url = self._config.base_url + QUERY_PATH
        logger.debug("Sending Flux query to %s: %s", url, query_text)

        headers = {
            "Accept": "application/csv",
            "Content-Type": "application/json",
        }
        if self._config.token:
            headers["Authorization"] = "Token {}".format(self._config.token)

        return {
            "url": url,
            "params": funcy.select_values(
                lambda value: value is not None, {"org": org or self._config.org}
            ),
            "headers": headers,
            "json": Query(query=query_text, dialect=dialect).to_dict(),
        }

    @staticmethod
    def _raise_query_error(response: httpx.Response) -> None:
        message = _extract_error_message(response)
        logger.error("Flux query failed with HTTP status %s: %s", response.status_code, message)
        raise FluxQueryError(message, status_code=response.status_code)

    def query_raw(
        self,
        query: QueryLike,
        org: Optional[str] = None,
        dialect: Optional[Dialect] = DEFAULT_DIALECT,
        parameters: Optional[ParameterTable] = None,
    ) -> str:
        """Run the query, and return the raw CSV text of its results.

        Args:
            query: Flux query text, or a Pipeline to render
            org: organization to run the query in, defaulting to the configured one
            dialect: CSV dialect of the response, or None for the server's default
            parameters: parameter table used to render a Pipeline query

        Returns:
            string, the response body

        Raises:
            FluxQueryError: if the request fails, or the server responds with an error status
        """
        request = self._build_request(query, org, dialect, parameters)
        try:
            response = self._client.post(**request)
        except httpx.TransportError as e:
            logger.error("Could not send the Flux query to %s: %s", request["url"], e)
            raise FluxQueryError("Could not send the query: {}".format(e)) from e

        if response.status_code >= HTTP_ERROR_STATUS:
            self._raise_query_error(response)
        return response.text

    def query(
        self,
        query: QueryLike,
        org: Optional[str] = None,
        parameters: Optional[ParameterTable] = None,
    ) -> List[FluxTable]:
        """Run the query, and return its result tables with all of their records."""
        text = self.query_raw(query, org=org, dialect=DEFAULT_DIALECT, parameters=parameters)
        return FluxCsvParser.from_text(text).parse_tables()

    def query_records(
        self,
        query: QueryLike,
        org: Optional[str] = None,
        parameters: Optional[ParameterTable] = None,
    ) -> Iterator[FluxRecord]:
        """Run the query, and yield its records as the response is streamed in."""
        request = self._build_request(query, org, DEFAULT_DIALECT, parameters)
        try:
            with self._client.stream("POST", **request) as response:
                if response.status_code >= HTTP_ERROR_STATUS:
                    response.read()
                    self._raise_query_error(response)
                parser = FluxCsvParser(response.iter_lines(), keep_records=False)
                yield from parser.generate_records()
        except httpx.TransportError as e:
            logger.error("Could not stream the Flux query results from %s: %s", request["url"], e)
            raise FluxQueryError("Could not stream the query results: {}".format(e)) from e

    def close(self) -> None:
        """Close the underlying HTTP client, if it was created by this QueryApi."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "QueryApi":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()
