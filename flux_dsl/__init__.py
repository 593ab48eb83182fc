# Copyright 2017-present Kensho Technologies, LLC.
"""Commonly-used functions and data types from this package."""
from .clauses import BaseClause, ClauseNode, ExpressionClause, JoinClause  # noqa
from .exceptions import (  # noqa
    FluxCsvParserError,
    FluxError,
    FluxInvalidArgumentError,
    FluxQueryError,
    FluxValidationError,
)
from .operators import build_operator  # noqa
from .pipeline import Pipeline, expression_source, from_, join, make_empty_pipeline  # noqa
from .properties import FluxProperty, PropertyStore  # noqa
from .query_formatting import TimeUnit  # noqa
from .registry import register_operator, register_validator, unregister_operator  # noqa
from .restrictions import Restriction, Restrictions  # noqa


__package_name__ = "flux-dsl"
__version__ = "1.0.0"
