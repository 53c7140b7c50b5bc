import operator
import typing

import structlog

from ..exceptions import ConfigurationError, MappingError
from ..utils.typing import type_name
from .context import DeserializationContext, SerializationContext
from .interfaces import FieldDeserializer, FieldSerializer, Strategy

logger = structlog.get_logger(__name__)

S = typing.TypeVar("S", bound=Strategy)
C = typing.TypeVar("C")


def _sort_by_priority(strategies: typing.Iterable[S], kind: str) -> typing.Tuple[S, ...]:
    result = tuple(sorted(strategies, key=operator.attrgetter("priority")))
    if not result:
        raise ConfigurationError(f"a {kind} chain needs at least one {kind}")
    return result


class ChainBuilder(typing.Generic[S, C]):
    _factory: typing.Callable[[typing.Sequence[S]], C]
    _items: typing.List[S]

    def add(self, strategy: S) -> "ChainBuilder[S, C]":
        if strategy is None:
            raise TypeError("strategy must not be None")
        self._items.append(strategy)
        return self

    def add_all(self, strategies: typing.Iterable[S]) -> "ChainBuilder[S, C]":
        for strategy in strategies:
            self.add(strategy)
        return self

    def build(self) -> C:
        return self._factory(self._items)

    def __init__(self, factory: typing.Callable[[typing.Sequence[S]], C]) -> None:
        self._factory = factory
        self._items = []


class FieldSerializerChain:
    """
    An immutable, priority-ordered sequence of :py:class:`FieldSerializer` objects.
    """

    _serializers: typing.Tuple[FieldSerializer, ...]

    @property
    def serializers(self) -> typing.Sequence[FieldSerializer]:
        return self._serializers

    @property
    def size(self) -> int:
        return len(self._serializers)

    def find_serializer(self, ctx: SerializationContext) -> typing.Optional[FieldSerializer]:
        for serializer in self._serializers:
            if serializer.can_handle(ctx):
                return serializer
        return None

    def serialize(self, ctx: SerializationContext) -> None:
        serializer = self.find_serializer(ctx)
        if serializer is None:
            raise ConfigurationError(
                f"no serializer can handle field {ctx.field_name} "
                f"of type {type_name(ctx.field_type)}"
            )
        try:
            serializer.serialize(ctx)
        except (MappingError, ConfigurationError):
            raise
        except Exception as e:
            raise MappingError(
                ctx.field_name,
                ctx.field_type,
                type(ctx.value) if ctx.value is not None else None,
            ) from e

    @classmethod
    def builder(cls) -> ChainBuilder[FieldSerializer, "FieldSerializerChain"]:
        return ChainBuilder(cls)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(repr(s) for s in self._serializers)})"

    def __init__(self, serializers: typing.Iterable[FieldSerializer]) -> None:
        self._serializers = _sort_by_priority(serializers, "serializer")
        logger.debug("serializer chain built", size=len(self._serializers))


class FieldDeserializerChain:
    """
    An immutable, priority-ordered sequence of :py:class:`FieldDeserializer` objects.
    """

    _deserializers: typing.Tuple[FieldDeserializer, ...]

    @property
    def deserializers(self) -> typing.Sequence[FieldDeserializer]:
        return self._deserializers

    @property
    def size(self) -> int:
        return len(self._deserializers)

    def find_deserializer(
        self, ctx: DeserializationContext
    ) -> typing.Optional[FieldDeserializer]:
        for deserializer in self._deserializers:
            if deserializer.can_handle(ctx):
                return deserializer
        return None

    def deserialize(self, ctx: DeserializationContext) -> None:
        deserializer = self.find_deserializer(ctx)
        if deserializer is None:
            raise ConfigurationError(
                f"no deserializer can handle field {ctx.field_name} "
                f"of type {type_name(ctx.field_type)}"
            )
        try:
            deserializer.deserialize(ctx)
        except (MappingError, ConfigurationError):
            raise
        except Exception as e:
            raise MappingError(
                ctx.field_name,
                ctx.field_type,
                type(ctx.value) if ctx.value is not None else None,
            ) from e

    @classmethod
    def builder(cls) -> ChainBuilder[FieldDeserializer, "FieldDeserializerChain"]:
        return ChainBuilder(cls)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(repr(d) for d in self._deserializers)})"

    def __init__(self, deserializers: typing.Iterable[FieldDeserializer]) -> None:
        self._deserializers = _sort_by_priority(deserializers, "deserializer")
        logger.debug("deserializer chain built", size=len(self._deserializers))
