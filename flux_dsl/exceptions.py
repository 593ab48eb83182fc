# Copyright 2018-present Kensho Technologies, LLC.
from typing import Optional


class FluxError(Exception):
    """Generic error when building or running Flux queries."""


class FluxValidationError(FluxError):
    """Exception raised when a Flux clause or pipeline is structurally invalid.

    This is raised as soon as the offending argument is supplied, for example:
    - a sample() clause whose pos is not less than n;
    - a join() without any column to join on, or with an unknown join method;
    - appending a clause to an empty pipeline without first providing a source.
    """


class FluxInvalidArgumentError(FluxError):
    """Exception raised when a value cannot be represented as a Flux literal.

    For example:
    - a non-string value supplied for an escaped string literal;
    - a float that has no Flux representation, like NaN or infinity;
    - a value of a Python type that has no corresponding Flux type.
    """


class FluxQueryError(FluxError):
    """Exception raised when the server rejects or fails to execute a Flux query."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reference: Optional[str] = None,
    ) -> None:
        """Construct a FluxQueryError carrying the server's error details, if any."""
        super(FluxQueryError, self).__init__(message)
        self.message = message
        self.status_code = status_code
        self.reference = reference


class FluxCsvParserError(FluxError):
    """Exception raised when an annotated CSV query response cannot be parsed."""
