import abc
import typing

from .context import DeserializationContext, SerializationContext


class FieldSerializer(metaclass=abc.ABCMeta):
    """
    A strategy that writes one kind of field into a document.  Within a chain,
    strategies are consulted in ascending order of :py:attr:`priority` and the first
    one whose :py:meth:`can_handle` returns ``True`` wins.
    """

    priority: int = 100

    @abc.abstractmethod
    def can_handle(self, ctx: SerializationContext) -> bool:
        ...  # pragma: nocover

    @abc.abstractmethod
    def serialize(self, ctx: SerializationContext) -> None:
        ...  # pragma: nocover

    def __repr__(self) -> str:
        return f"{type(self).__name__}(priority={self.priority})"


class FieldDeserializer(metaclass=abc.ABCMeta):
    """
    A strategy that populates one kind of field from a document.
    """

    priority: int = 100

    @abc.abstractmethod
    def can_handle(self, ctx: DeserializationContext) -> bool:
        ...  # pragma: nocover

    @abc.abstractmethod
    def deserialize(self, ctx: DeserializationContext) -> None:
        ...  # pragma: nocover

    def __repr__(self) -> str:
        return f"{type(self).__name__}(priority={self.priority})"


Strategy = typing.Union[FieldSerializer, FieldDeserializer]
