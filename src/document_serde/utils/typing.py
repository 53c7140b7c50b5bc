import collections.abc
import enum
import inspect
import numbers
import types
import typing

from ..types import Char

NoneType = type(None)

_UNION_ORIGINS: typing.Tuple[typing.Any, ...] = tuple(
    t for t in (typing.Union, getattr(types, "UnionType", None)) if t is not None
)

PRIMITIVE_TYPES: typing.Tuple[type, ...] = (bool, int, float, str)

# types declared in these modules are never walked field by field
BUILTIN_MODULES = frozenset(
    [
        "builtins",
        "collections",
        "datetime",
        "decimal",
        "fractions",
        "ipaddress",
        "pathlib",
        "typing",
        "uuid",
    ]
)


def unwrap_optional(typ: typing.Any) -> typing.Tuple[typing.Any, bool]:
    """
    Strips ``None`` off a declared type.

    :param Any typ: a type as returned by :py:func:`typing.get_type_hints`.
    :return: a tuple of the remaining type and a flag telling whether ``None`` was allowed.
    """
    if is_union_type(typ):
        args = typing.get_args(typ)
        rest = tuple(a for a in args if a is not NoneType)
        nullable = len(rest) != len(args)
        if len(rest) == 1:
            return rest[0], nullable
        return typing.Union[rest], nullable  # type: ignore
    return typ, typ is typing.Any or typ is NoneType


def is_union_type(typ: typing.Any) -> bool:
    return typing.get_origin(typ) in _UNION_ORIGINS


def is_primitive_type(typ: typing.Any) -> bool:
    return typ is Char or typ in PRIMITIVE_TYPES


def is_enum_type(typ: typing.Any) -> bool:
    return inspect.isclass(typ) and issubclass(typ, enum.Enum)


def is_sequence_type(typ: typing.Any) -> bool:
    origin = typing.get_origin(typ) or typ
    return (
        inspect.isclass(origin)
        and issubclass(origin, collections.abc.Sequence)
        and not issubclass(origin, (str, bytes, bytearray))
    )


def sequence_element_type(typ: typing.Any) -> typing.Any:
    args = typing.get_args(typ)
    if not args:
        return typing.Any
    return args[0]


def sequence_factory(typ: typing.Any) -> typing.Callable[[typing.Iterable[typing.Any]], typing.Any]:
    origin = typing.get_origin(typ) or typ
    if inspect.isclass(origin) and issubclass(origin, tuple):
        return tuple
    return list


def is_builtin_type(typ: typing.Any) -> bool:
    if not inspect.isclass(typ):
        return True
    return typ.__module__ in BUILTIN_MODULES


def is_scalar_value(value: typing.Any) -> bool:
    return isinstance(value, (str, bool, numbers.Number))


def type_name(typ: typing.Any) -> str:
    if typ is Char:
        return "Char"
    if inspect.isclass(typ):
        return typ.__qualname__
    return repr(typ)
