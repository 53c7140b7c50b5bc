import abc
import typing
import uuid

import structlog

from .exceptions import ConfigurationError
from .interfaces import CounterStore, EntityStore
from .models import EntityDescriptor

logger = structlog.get_logger(__name__)


class Generator(metaclass=abc.ABCMeta):
    """
    Produces a value for a generated field of an entity that is about to be inserted.
    """

    @abc.abstractmethod
    def generate_value(self, descr: EntityDescriptor, store: EntityStore) -> typing.Any:
        ...  # pragma: nocover


class IntegerGenerator(Generator):
    """
    Draws sequential integers from a per-type counter kept by the store.
    """

    counter_prefix: str

    def counter_name(self, descr: EntityDescriptor) -> str:
        return f"{self.counter_prefix}{descr.entity_type.__name__}"

    def generate_value(self, descr: EntityDescriptor, store: EntityStore) -> int:
        if not isinstance(store, CounterStore):
            raise ConfigurationError(
                f"{type(self).__name__} needs a store that keeps counters, "
                f"got {type(store).__name__}"
            )
        return store.next_value(self.counter_name(descr))

    def __init__(self, counter_prefix: str = "values_") -> None:
        self.counter_prefix = counter_prefix


class UUIDGenerator(Generator):
    def generate_value(self, descr: EntityDescriptor, store: EntityStore) -> str:
        return uuid.uuid4().hex


def assign_generated_values(
    descr: EntityDescriptor, entity: typing.Any, store: EntityStore
) -> None:
    """
    Fills every generated field of ``entity`` that does not hold a value yet.
    """
    for field in descr.generated_fields:
        if field.fetch_value(entity) is not None:
            continue
        generator = field.generator
        assert generator is not None
        value = generator.generate_value(descr, store)
        field.store_value(entity, value)
        logger.debug(
            "generated value assigned",
            entity_type=descr.entity_type.__qualname__,
            field=field.name,
            value=value,
        )
