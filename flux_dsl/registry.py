# Copyright 2019-present Kensho Technologies, LLC.
"""Registry of Flux operators: operator tag -> constructor function and validators."""
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from .exceptions import FluxValidationError
from .helpers import validate_identifier


if TYPE_CHECKING:
    from .clauses import BaseClause  # noqa
    from .properties import PropertyStore  # noqa


OperatorFactory = Callable[..., "BaseClause"]
ClauseValidator = Callable[["PropertyStore"], None]


@dataclass(frozen=True)
class OperatorDefinition:
    """Everything the builder knows about one Flux operator."""

    name: str  # The operator name, as it appears in the Flux text.
    factory: Optional[OperatorFactory]  # None means parameters are bound as given, unchecked.
    is_source: bool  # Source operators start a pipeline, and cannot appear anywhere else.


_OPERATORS: Dict[str, OperatorDefinition] = {}
_VALIDATORS: Dict[str, List[ClauseValidator]] = {}


def register_operator(
    name: str,
    factory: Optional[OperatorFactory] = None,
    is_source: bool = False,
    replace: bool = False,
) -> OperatorDefinition:
    """Register a Flux operator under the given tag.

    Args:
        name: the operator name, which must be a valid Flux identifier
        factory: optional function taking the operator's arguments as keyword arguments and
                 returning the constructed clause. Operators without a factory bind each given
                 keyword argument as an immediate value.
        is_source: whether the operator starts a pipeline, like from() or join()
        replace: whether to allow overwriting an existing registration

    Returns:
        the new OperatorDefinition
    """
    validate_identifier(name, value_description="operator name")
    if name in _OPERATORS and not replace:
        raise FluxValidationError(
            "An operator named {} is already registered: {}".format(name, _OPERATORS[name])
        )

    definition = OperatorDefinition(name=name, factory=factory, is_source=is_source)
    _OPERATORS[name] = definition
    return definition


def operator_factory(
    name: str, is_source: bool = False
) -> Callable[[OperatorFactory], OperatorFactory]:
    """Decorator that registers the decorated function as the factory of the named operator."""

    def decorator(factory: OperatorFactory) -> OperatorFactory:
        register_operator(name, factory=factory, is_source=is_source)
        return factory

    return decorator


def register_validator(name: str, validator: ClauseValidator) -> None:
    """Register a check that runs whenever a clause with the given operator name is constructed.

    The validator receives the clause's PropertyStore, and must raise FluxValidationError
    naming the violated constraint if the properties are invalid.
    """
    validate_identifier(name, value_description="operator name")
    _VALIDATORS.setdefault(name, []).append(validator)


def get_operator_definition(name: str) -> OperatorDefinition:
    """Return the definition of the registered operator, or raise FluxValidationError."""
    definition = _OPERATORS.get(name)
    if definition is None:
        raise FluxValidationError(
            "Unknown operator {}. Register it with register_operator() before using it.".format(
                name
            )
        )
    return definition


def get_validators(name: str) -> Tuple[ClauseValidator, ...]:
    """Return the validators registered for the given operator name, in registration order."""
    return tuple(_VALIDATORS.get(name, ()))


def is_source_operator(name: str) -> bool:
    """Return True if the operator is registered as a pipeline source."""
    definition = _OPERATORS.get(name)
    return definition is not None and definition.is_source


def unregister_operator(name: str) -> None:
    """Remove the operator and all of its validators from the registry, if present."""
    _OPERATORS.pop(name, None)
    _VALIDATORS.pop(name, None)
