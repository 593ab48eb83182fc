# Copyright 2017-present Kensho Technologies, LLC.
"""Base classes for Flux builder entities like properties, restrictions and clauses."""

from abc import ABCMeta, abstractmethod
from typing import Any


class FluxEntity(metaclass=ABCMeta):
    """An abstract, immutable Flux builder entity."""

    __slots__ = ("_print_args", "_print_kwargs")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Construct a new FluxEntity."""
        self._print_args = args
        self._print_kwargs = kwargs

    @abstractmethod
    def validate(self) -> None:
        """Ensure that the FluxEntity is valid."""
        raise NotImplementedError()

    def __str__(self) -> str:
        """Return a human-readable representation of this FluxEntity."""
        printed_args = []
        if self._print_args:
            printed_args.append("{args}")
        if self._print_kwargs:
            printed_args.append("{kwargs}")

        template = "{cls_name}(" + ", ".join(printed_args) + ")"
        return template.format(
            cls_name=type(self).__name__, args=self._print_args, kwargs=self._print_kwargs
        )

    def __repr__(self) -> str:
        """Return a human-readable str representation of the FluxEntity object."""
        return self.__str__()

    # pylint: disable=protected-access
    def __eq__(self, other: Any) -> bool:
        """Return True if the FluxEntity objects are equal, and False otherwise."""
        if type(self) != type(other):
            return False

        return (
            self._print_args == other._print_args and self._print_kwargs == other._print_kwargs
        )

    # pylint: enable=protected-access

    def __ne__(self, other: Any) -> bool:
        """Check another object for non-equality against this one."""
        return not self.__eq__(other)

    def __hash__(self) -> int:
        """Return the hash of the FluxEntity, consistent with its equality."""
        return hash((type(self), repr(self)))


class FluxExpression(FluxEntity, metaclass=ABCMeta):
    """A self-contained piece of Flux code, like a filter predicate, that needs no parameters."""

    __slots__ = ()

    @abstractmethod
    def to_flux(self) -> str:
        """Return the Flux representation of this expression."""
        raise NotImplementedError()
