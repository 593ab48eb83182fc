# Copyright 2017-present Kensho Technologies, LLC.
"""Safely represent Python values as Flux literals."""
from .flux_formatting import represent_flux_value  # noqa
from .representations import (  # noqa
    TimeUnit,
    escape_flux_string,
    quote_flux_string,
    represent_datetime,
    represent_duration,
    represent_timedelta,
)
