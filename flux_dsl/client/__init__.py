# Copyright 2020-present Kensho Technologies, LLC.
"""HTTP client that runs Flux queries and parses their annotated CSV results."""
from .config import ClientConfig  # noqa
from .domain import DEFAULT_DIALECT, Dialect, Query  # noqa
from .flux_csv_parser import FluxColumn, FluxCsvParser, FluxRecord, FluxTable  # noqa
from .query_api import QueryApi  # noqa
