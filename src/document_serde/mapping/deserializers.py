import collections.abc
import inspect
import numbers
import typing

from ..exceptions import ConversionError
from ..types import ID_KEY, Char
from ..utils.typing import (
    NoneType,
    is_builtin_type,
    is_enum_type,
    is_primitive_type,
    is_sequence_type,
    is_union_type,
    sequence_element_type,
    sequence_factory,
    type_name,
    unwrap_optional,
)
from .context import DeserializationContext
from .interfaces import FieldDeserializer

if typing.TYPE_CHECKING:
    from ..mapper import DocumentMapper  # noqa: F401
    from ..references import ReferenceResolver  # noqa: F401


def coerce_primitive(value: typing.Any, type_: typing.Any) -> typing.Any:
    """
    Coerces a stored scalar to one of the primitive types.

    :raises ValueError: if the value has no sensible representation in ``type_``.
    """
    if type_ is Char:
        if isinstance(value, str) and len(value) == 1:
            return value
        raise ValueError(f"{value!r} is not a single character")
    if type_ is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "true":
                return True
            if lowered == "false":
                return False
        raise ValueError(f"{value!r} is not a boolean")
    if type_ is int:
        if isinstance(value, bool):
            raise ValueError(f"{value!r} is not an integer")
        if isinstance(value, numbers.Number):
            return int(value)  # type: ignore
        if isinstance(value, str):
            return int(value.strip())
        raise ValueError(f"{value!r} is not an integer")
    if type_ is float:
        if isinstance(value, bool):
            raise ValueError(f"{value!r} is not a number")
        if isinstance(value, (numbers.Number, str)):
            return float(value)  # type: ignore
        raise ValueError(f"{value!r} is not a number")
    if type_ is str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, numbers.Number):
            return str(value)
        raise ValueError(f"{value!r} has no textual form")
    raise ValueError(f"{type_name(type_)} is not a primitive type")


def matches_type(value: typing.Any, type_: typing.Any) -> bool:
    if type_ is typing.Any:
        return True
    if type_ is NoneType:
        return value is None
    if is_union_type(type_):
        return any(matches_type(value, a) for a in typing.get_args(type_))
    origin = typing.get_origin(type_)
    if origin is not None:
        type_ = origin
    if not inspect.isclass(type_):
        return True
    return isinstance(value, type_)


def _is_composite_type(type_: typing.Any) -> bool:
    return inspect.isclass(type_) and not is_builtin_type(type_) and not is_enum_type(type_)


def deserialize_element(
    mapper: "DocumentMapper", value: typing.Any, type_: typing.Any
) -> typing.Any:
    """
    Converts a single value found inside a sequence or an embedded field back to
    ``type_``.  This is the inverse of ``serialize_element``.
    """
    if value is None:
        return None
    type_, _ = unwrap_optional(type_)
    if isinstance(value, collections.abc.Mapping):
        if _is_composite_type(type_):
            return mapper.deserialize_nested(value, type_)
        return value
    if isinstance(value, (list, tuple)):
        if is_sequence_type(type_):
            element_type = sequence_element_type(type_)
            return sequence_factory(type_)(
                deserialize_element(mapper, v, element_type) for v in value
            )
        if _is_composite_type(type_):
            raise ValueError(f"an array cannot be read as {type_name(type_)}")
        return list(value)
    if is_enum_type(type_):
        if not isinstance(value, str):
            raise ValueError(f"{value!r} is not a member name of {type_name(type_)}")
        try:
            return type_[value]
        except KeyError:
            raise ValueError(f"{value!r} is not a member of {type_name(type_)}")
    if is_primitive_type(type_):
        return coerce_primitive(value, type_)
    if _is_composite_type(type_):
        raise ValueError(f"{value!r} cannot be read as {type_name(type_)}")
    return value


class NullValueDeserializer(FieldDeserializer):
    """
    Handles a field whose key is absent from the document or holds ``None``.
    An absent key falls back to the declared default of the field.
    """

    priority = 0

    def can_handle(self, ctx: DeserializationContext) -> bool:
        return ctx.is_value_null

    def deserialize(self, ctx: DeserializationContext) -> None:
        if not ctx.is_present and ctx.field.has_default:
            ctx.assign(ctx.field.default_value())
            return
        if is_primitive_type(ctx.field_type) and not ctx.field.allow_null:
            raise ConversionError(
                ctx.field_name,
                ctx.field_type,
                detail="null cannot be assigned to a non-nullable field",
            )
        ctx.assign(None)


class EmbeddedDeserializer(FieldDeserializer):
    priority = 5

    def can_handle(self, ctx: DeserializationContext) -> bool:
        return ctx.field.is_embedded

    def deserialize(self, ctx: DeserializationContext) -> None:
        try:
            value = deserialize_element(ctx.mapper, ctx.value, ctx.field_type)
        except ValueError as e:
            raise ConversionError(
                ctx.field_name, ctx.field_type, type(ctx.value), detail=str(e)
            ) from e
        ctx.assign(value)


class IdentityDeserializer(FieldDeserializer):
    """
    Reads the reserved identity key into the identity field.
    """

    priority = 10

    def can_handle(self, ctx: DeserializationContext) -> bool:
        return ctx.field.is_identity

    def deserialize(self, ctx: DeserializationContext) -> None:
        value = ctx.get(ID_KEY)
        if isinstance(value, (collections.abc.Mapping, list, tuple)):
            raise ConversionError(
                ctx.field_name,
                ctx.field_type,
                type(value),
                detail="an identity has no textual form",
            )
        ctx.assign(value if isinstance(value, str) else str(value))


class ReferenceDeserializer(FieldDeserializer):
    """
    Populates a reference field.  Without a resolver, or with a resolver whose
    policy is lazy, the stored identity is kept as a placeholder.
    """

    priority = 15
    resolver: typing.Optional["ReferenceResolver"]

    def can_handle(self, ctx: DeserializationContext) -> bool:
        return ctx.field.is_reference

    def deserialize(self, ctx: DeserializationContext) -> None:
        if self.resolver is None or not self.resolver.auto_resolve:
            ctx.assign(ctx.value)
            return
        ctx.assign(self.resolver.resolve_field_value(ctx.field, ctx.value))

    def __init__(self, resolver: typing.Optional["ReferenceResolver"] = None) -> None:
        self.resolver = resolver


class SequenceDeserializer(FieldDeserializer):
    priority = 20

    def can_handle(self, ctx: DeserializationContext) -> bool:
        return is_sequence_type(ctx.field_type)

    def deserialize(self, ctx: DeserializationContext) -> None:
        if not isinstance(ctx.value, (list, tuple)):
            raise ConversionError(
                ctx.field_name,
                ctx.field_type,
                type(ctx.value),
                detail="expected an array",
            )
        try:
            value = deserialize_element(ctx.mapper, ctx.value, ctx.field_type)
        except ValueError as e:
            raise ConversionError(
                ctx.field_name, ctx.field_type, type(ctx.value), detail=str(e)
            ) from e
        ctx.assign(value)


class NestedObjectDeserializer(FieldDeserializer):
    """
    Rebuilds a value of a user-defined composite type from a sub-document.
    """

    priority = 25

    def can_handle(self, ctx: DeserializationContext) -> bool:
        type_ = ctx.field_type
        return isinstance(ctx.value, collections.abc.Mapping) and not (
            is_primitive_type(type_)
            or is_enum_type(type_)
            or is_sequence_type(type_)
            or is_builtin_type(type_)
        )

    def deserialize(self, ctx: DeserializationContext) -> None:
        ctx.assign(ctx.mapper.deserialize_nested(ctx.value, ctx.field_type))


class EnumDeserializer(FieldDeserializer):
    priority = 30

    def can_handle(self, ctx: DeserializationContext) -> bool:
        return is_enum_type(ctx.field_type)

    def deserialize(self, ctx: DeserializationContext) -> None:
        value = ctx.value
        if not isinstance(value, str):
            raise ConversionError(
                ctx.field_name,
                ctx.field_type,
                type(value),
                detail="an enum member must be stored by its name",
            )
        try:
            member = ctx.field_type[value]
        except KeyError as e:
            raise ConversionError(
                ctx.field_name,
                ctx.field_type,
                type(value),
                detail=f"{value!r} is not a member of {type_name(ctx.field_type)}",
            ) from e
        ctx.assign(member)


class PrimitiveDeserializer(FieldDeserializer):
    priority = 35

    def can_handle(self, ctx: DeserializationContext) -> bool:
        return is_primitive_type(ctx.field_type)

    def deserialize(self, ctx: DeserializationContext) -> None:
        try:
            value = coerce_primitive(ctx.value, ctx.field_type)
        except ValueError as e:
            raise ConversionError(
                ctx.field_name, ctx.field_type, type(ctx.value), detail=str(e)
            ) from e
        ctx.assign(value)


class DefaultDeserializer(FieldDeserializer):
    """
    The fallback strategy.  Assigns the stored value if it already has the declared
    type, its textual form if the field is textual, and fails otherwise.
    """

    priority = 40

    def can_handle(self, ctx: DeserializationContext) -> bool:
        return True

    def deserialize(self, ctx: DeserializationContext) -> None:
        value = ctx.value
        if matches_type(value, ctx.field_type):
            ctx.assign(value)
        elif ctx.field_type is str:
            ctx.assign(str(value))
        else:
            raise ConversionError(
                ctx.field_name,
                ctx.field_type,
                type(value),
                detail=f"cannot convert {value!r} to {type_name(ctx.field_type)}",
            )
