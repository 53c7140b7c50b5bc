import abc
import typing

T = typing.TypeVar("T")


class EntityStore(metaclass=abc.ABCMeta):
    """
    The persistence backend the reference resolver and the reference handler
    talk to.  Lookups return entities whose references are left as placeholders.
    """

    @abc.abstractmethod
    def find_by_id(self, entity_type: typing.Type[T], identity: str) -> typing.Optional[T]:
        """
        Looks up an entity by its identity.

        :param type entity_type: the type of the entity.
        :param str identity: the identity of the entity.
        :return: the entity, or ``None`` if there is no such entity.
        :raises StoreError: if the lookup itself fails.
        """
        ...  # pragma: nocover

    @abc.abstractmethod
    def save(self, entity: typing.Any) -> str:
        """
        Inserts or replaces ``entity``.  An identity is assigned to the entity
        when it has none yet.

        :return: the identity the entity is stored under.
        :raises StoreError: if the write fails.
        """
        ...  # pragma: nocover


class CounterStore(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    def next_value(self, name: str) -> int:
        """
        Atomically increments the counter ``name`` and returns the new value.
        A counter that does not exist yet starts at 1.
        """
        ...  # pragma: nocover
