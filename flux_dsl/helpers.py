# Copyright 2017-present Kensho Technologies, LLC.
"""Common helper objects and methods."""
import string

from .exceptions import FluxValidationError


IDENTIFIER_ALLOWED_CHARS = frozenset(string.ascii_letters + string.digits + "_")


def ensure_string(value: str, value_description: str = "string") -> str:
    """Ensure the value is a non-empty string, and return it."""
    if not isinstance(value, str):
        raise FluxValidationError(
            "Expected {} to be a string, got: {} {}".format(
                value_description, type(value).__name__, value
            )
        )
    if not value:
        raise FluxValidationError("Empty {}s are not allowed!".format(value_description))
    return value


def validate_identifier(value: str, value_description: str = "identifier") -> None:
    """Ensure that the provided string is usable as a bare Flux identifier."""
    ensure_string(value, value_description=value_description)

    if value[0] in string.digits:
        raise FluxValidationError(
            "Encountered invalid {}: {}. It cannot start with a "
            "digit.".format(value_description, value)
        )

    # set(value) is used instead of frozenset(value) to avoid printing 'frozenset' in error message.
    disallowed_chars = set(value) - IDENTIFIER_ALLOWED_CHARS
    if disallowed_chars:
        raise FluxValidationError(
            "Encountered illegal characters {} in {}: {}. It is only "
            "allowed to have upper and lower case letters, "
            "digits and underscores.".format(disallowed_chars, value_description, value)
        )
