import collections.abc
import enum
import sys
import typing

import structlog

from ..exceptions import ConversionError
from ..types import ID_KEY, DocumentValue
from ..utils.typing import (
    is_builtin_type,
    is_enum_type,
    is_primitive_type,
    is_scalar_value,
    is_sequence_type,
    type_name,
)
from .context import SerializationContext
from .interfaces import FieldSerializer

if typing.TYPE_CHECKING:
    from ..mapper import DocumentMapper  # noqa: F401

logger = structlog.get_logger(__name__)


def serialize_element(mapper: "DocumentMapper", value: typing.Any) -> DocumentValue:
    """
    Converts a single value found inside a sequence or an embedded field into its
    document form: scalars are kept as is, enum members become their names, nested
    sequences and mappings are converted element-wise and instances of mapped types
    become sub-documents.

    :raises ValueError: if ``value`` is of a built-in type with no document form.
    """
    if value is None or is_scalar_value(value):
        return value
    if isinstance(value, enum.Enum):
        return value.name
    if isinstance(value, (list, tuple)):
        return [serialize_element(mapper, v) for v in value]
    if isinstance(value, collections.abc.Mapping):
        result = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise ValueError(f"document keys must be strings, got {k!r}")
            result[k] = serialize_element(mapper, v)
        return result
    if is_builtin_type(type(value)):
        raise ValueError(f"{type_name(type(value))} has no document form")
    return mapper.serialize(value)


class NullValueSerializer(FieldSerializer):
    """
    Leaves null-valued fields out of the document altogether.
    """

    priority = 0

    def can_handle(self, ctx: SerializationContext) -> bool:
        return ctx.is_value_null

    def serialize(self, ctx: SerializationContext) -> None:
        pass


class EmbeddedSerializer(FieldSerializer):
    priority = 5

    def can_handle(self, ctx: SerializationContext) -> bool:
        return ctx.field.is_embedded

    def serialize(self, ctx: SerializationContext) -> None:
        try:
            value = serialize_element(ctx.mapper, ctx.value)
        except ValueError as e:
            raise ConversionError(
                ctx.field_name, ctx.field_type, type(ctx.value), detail=str(e)
            ) from e
        ctx.put(value)


class IdentitySerializer(FieldSerializer):
    """
    Writes the identity field under the reserved identity key instead of its own name.
    """

    priority = 10

    def can_handle(self, ctx: SerializationContext) -> bool:
        return ctx.field.is_identity

    def serialize(self, ctx: SerializationContext) -> None:
        ctx.put_key(ID_KEY, ctx.value)


class ReferenceSerializer(FieldSerializer):
    """
    Writes the identity of the referenced entity in place of the entity itself.
    A placeholder identity left by an unresolved reference is written back unchanged.
    """

    priority = 15

    def can_handle(self, ctx: SerializationContext) -> bool:
        return ctx.field.is_reference

    def serialize(self, ctx: SerializationContext) -> None:
        value = ctx.value
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            ctx.put(value)
            return
        identity = ctx.mapper.get_metadata(type(value)).get_identity(value)
        if identity is None:
            logger.warning(
                "referenced entity has no identity",
                field=ctx.field_name,
                entity_type=type_name(type(ctx.entity)),
                referenced_type=type_name(type(value)),
            )
        ctx.put(identity)


class SequenceSerializer(FieldSerializer):
    priority = 20

    def can_handle(self, ctx: SerializationContext) -> bool:
        return is_sequence_type(ctx.field_type)

    def serialize(self, ctx: SerializationContext) -> None:
        if not isinstance(ctx.value, (list, tuple)):
            raise ConversionError(
                ctx.field_name,
                ctx.field_type,
                type(ctx.value),
                detail="expected a list or a tuple",
            )
        try:
            value = [serialize_element(ctx.mapper, v) for v in ctx.value]
        except ValueError as e:
            raise ConversionError(
                ctx.field_name, ctx.field_type, type(ctx.value), detail=str(e)
            ) from e
        ctx.put(value)


class NestedObjectSerializer(FieldSerializer):
    """
    Writes a value of a user-defined composite type as a sub-document.
    """

    priority = 25

    def can_handle(self, ctx: SerializationContext) -> bool:
        type_ = ctx.field_type
        return not (
            is_primitive_type(type_)
            or is_enum_type(type_)
            or is_sequence_type(type_)
            or is_builtin_type(type_)
        )

    def serialize(self, ctx: SerializationContext) -> None:
        ctx.put(ctx.mapper.serialize(ctx.value))


class EnumSerializer(FieldSerializer):
    priority = 30

    def can_handle(self, ctx: SerializationContext) -> bool:
        return is_enum_type(ctx.field_type)

    def serialize(self, ctx: SerializationContext) -> None:
        if not isinstance(ctx.value, enum.Enum):
            raise ConversionError(
                ctx.field_name,
                ctx.field_type,
                type(ctx.value),
                detail=f"expected a member of {type_name(ctx.field_type)}",
            )
        ctx.put(ctx.value.name)


class PrimitiveSerializer(FieldSerializer):
    priority = 35

    def can_handle(self, ctx: SerializationContext) -> bool:
        return is_primitive_type(ctx.field_type)

    def serialize(self, ctx: SerializationContext) -> None:
        ctx.put(ctx.value)


class DefaultSerializer(FieldSerializer):
    """
    The fallback strategy.  Writes the value as is.
    """

    priority = sys.maxsize

    def can_handle(self, ctx: SerializationContext) -> bool:
        return True

    def serialize(self, ctx: SerializationContext) -> None:
        if ctx.value is not None:
            ctx.put(ctx.value)
