import dataclasses
import enum
import typing
from collections import OrderedDict

from .exceptions import FieldAccessError, InvalidDeclarationError, MappingError
from .types import ID_KEY
from .utils import UNSPECIFIED, english_enumerate

if typing.TYPE_CHECKING:
    from .generators import Generator  # noqa: F401


class FieldFlags(enum.IntFlag):
    NONE = 0
    IDENTITY = 1
    SURROGATE_ID = 2
    REFERENCE = 4
    EMBEDDED = 8
    INDEXED = 16
    GENERATED = 32


class IndexOrder(enum.IntEnum):
    ASCENDING = 1
    DESCENDING = -1


@dataclasses.dataclass(frozen=True)
class IndexSpec:
    """
    Describes how an indexed field is to be indexed by the store.
    """

    name: typing.Optional[str] = None
    unique: bool = False
    sparse: bool = False
    order: IndexOrder = IndexOrder.ASCENDING


class FieldDescriptor:
    """
    A :py:class:`FieldDescriptor` describes a single field of a mapped type: its name,
    its declared type, the roles it plays, and how it is read from and written to an instance.

    :param str name: The name of the field.
    :param Any type: The declared type of the field, with ``Optional[...]`` stripped off.
    :param bool allow_null: Whether the declared type admits ``None``.
    :param FieldFlags flags: The role markers of the field.
    :param Optional[IndexSpec] index: The index specification if the field is indexed.
    :param Optional[Generator] generator: The value generator if the field is generated.
    :param Any default: The default value, or :py:data:`UNSPECIFIED`.
    :param Any default_factory: A callable producing the default value, or :py:data:`UNSPECIFIED`.
    :param bool frozen: Whether the owning type forbids ordinary attribute assignment.
    """

    parent: typing.Optional["EntityDescriptor"] = None
    name: str
    type: typing.Any
    allow_null: bool
    flags: FieldFlags
    index: typing.Optional[IndexSpec]
    generator: typing.Optional["Generator"]
    frozen: bool
    _default: typing.Any
    _default_factory: typing.Any

    def bind(self, parent: "EntityDescriptor") -> "FieldDescriptor":
        assert self.parent is None
        self.parent = parent
        return self

    @property
    def is_identity(self) -> bool:
        return bool(self.flags & FieldFlags.IDENTITY)

    @property
    def is_surrogate_id(self) -> bool:
        return bool(self.flags & FieldFlags.SURROGATE_ID)

    @property
    def is_reference(self) -> bool:
        return bool(self.flags & FieldFlags.REFERENCE)

    @property
    def is_embedded(self) -> bool:
        return bool(self.flags & FieldFlags.EMBEDDED)

    @property
    def is_indexed(self) -> bool:
        return bool(self.flags & FieldFlags.INDEXED)

    @property
    def is_generated(self) -> bool:
        return bool(self.flags & FieldFlags.GENERATED)

    @property
    def document_key(self) -> str:
        """
        The key under which the value of the field is stored in a document.
        """
        return ID_KEY if self.is_identity else self.name

    @property
    def has_default(self) -> bool:
        return self._default is not UNSPECIFIED or self._default_factory is not UNSPECIFIED

    def default_value(self) -> typing.Any:
        if self._default_factory is not UNSPECIFIED:
            return self._default_factory()
        if self._default is not UNSPECIFIED:
            return self._default
        raise LookupError(f"field {self.name} has no default")

    def fetch_value(self, target: typing.Any) -> typing.Any:
        """
        Fetches the value of the field from ``target``.

        :param Any target: An instance of the type owning the field.
        :return: The fetched value.
        """
        try:
            return getattr(target, self.name)
        except AttributeError as e:
            raise FieldAccessError(
                self.name,
                self.type,
                detail=f"cannot read the field from {type(target).__qualname__}",
            ) from e

    def store_value(self, target: typing.Any, value: typing.Any) -> None:
        """
        Stores ``value`` into the field of ``target``.

        :param Any target: An instance of the type owning the field.
        :param Any value: The value to store.
        """
        try:
            if self.frozen:
                object.__setattr__(target, self.name, value)
            else:
                setattr(target, self.name, value)
        except (AttributeError, TypeError) as e:
            raise FieldAccessError(
                self.name,
                self.type,
                type(value),
                detail=f"cannot write the field on {type(target).__qualname__} ({e!s})",
            ) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, flags={self.flags!r})"

    def __init__(
        self,
        name: str,
        type: typing.Any,
        allow_null: bool = False,
        flags: FieldFlags = FieldFlags.NONE,
        index: typing.Optional[IndexSpec] = None,
        generator: typing.Optional["Generator"] = None,
        default: typing.Any = UNSPECIFIED,
        default_factory: typing.Any = UNSPECIFIED,
        frozen: bool = False,
    ):
        self.name = name
        self.type = type
        self.allow_null = allow_null
        self.flags = flags
        self.index = index
        self.generator = generator
        self.frozen = frozen
        self._default = default
        self._default_factory = default_factory


class EntityDescriptor:
    """
    An :py:class:`EntityDescriptor` holds the structural facts about a mapped type.
    Instances are immutable once built and are meant to be cached for the lifetime
    of the process.

    :param type entity_type: The described type.
    :param str collection_name: The name of the collection the type is stored in.
    :param Iterable[FieldDescriptor] fields: The descriptors of every field, inherited ones included.
    """

    _entity_type: type
    _collection_name: str
    _fields: "OrderedDict[str, FieldDescriptor]"
    _identity_field: typing.Optional[FieldDescriptor]
    _surrogate_id_field: typing.Optional[FieldDescriptor]
    _indexed_fields: typing.Tuple[FieldDescriptor, ...]
    _reference_fields: typing.Tuple[FieldDescriptor, ...]
    _embedded_fields: typing.Tuple[FieldDescriptor, ...]
    _generated_fields: typing.Tuple[FieldDescriptor, ...]

    @property
    def entity_type(self) -> type:
        return self._entity_type

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def fields(self) -> typing.Sequence[FieldDescriptor]:
        return tuple(self._fields.values())

    @property
    def identity_field(self) -> typing.Optional[FieldDescriptor]:
        return self._identity_field

    @property
    def surrogate_id_field(self) -> typing.Optional[FieldDescriptor]:
        return self._surrogate_id_field

    @property
    def indexed_fields(self) -> typing.Sequence[FieldDescriptor]:
        return self._indexed_fields

    @property
    def reference_fields(self) -> typing.Sequence[FieldDescriptor]:
        return self._reference_fields

    @property
    def embedded_fields(self) -> typing.Sequence[FieldDescriptor]:
        return self._embedded_fields

    @property
    def generated_fields(self) -> typing.Sequence[FieldDescriptor]:
        return self._generated_fields

    @property
    def has_identity_field(self) -> bool:
        return self._identity_field is not None

    @property
    def has_surrogate_id_field(self) -> bool:
        return self._surrogate_id_field is not None

    @property
    def has_indexes(self) -> bool:
        return len(self._indexed_fields) > 0

    @property
    def has_references(self) -> bool:
        return len(self._reference_fields) > 0

    @property
    def has_embedded_fields(self) -> bool:
        return len(self._embedded_fields) > 0

    @property
    def has_generated_fields(self) -> bool:
        return len(self._generated_fields) > 0

    def get_field_by_name(self, name: str) -> FieldDescriptor:
        try:
            return self._fields[name]
        except KeyError:
            raise LookupError(f"no such field in {self._entity_type.__qualname__}: {name}")

    def get_identity(self, instance: typing.Any) -> typing.Any:
        """
        Returns the value of the identity field of ``instance``, or ``None`` when the
        type declares no identity field or the field is not set.  A surrogate id never
        stands in for the identity: documents are keyed by the identity alone.
        """
        if self._identity_field is None:
            return None
        return self._identity_field.fetch_value(instance)

    def new_instance(self) -> typing.Any:
        """
        Allocates a blank instance of the described type without running its initializer.
        """
        try:
            return self._entity_type.__new__(self._entity_type)
        except TypeError as e:
            raise MappingError(
                None,
                self._entity_type,
                detail=f"cannot create an instance of {self._entity_type.__qualname__} ({e!s})",
            ) from e

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(entity_type={self._entity_type.__qualname__}, "
            f"collection_name={self._collection_name!r}, "
            f"identity_field={self._identity_field.name if self._identity_field else None!r}, "
            f"indexed_fields={len(self._indexed_fields)}, "
            f"reference_fields={len(self._reference_fields)}, "
            f"embedded_fields={len(self._embedded_fields)}, "
            f"generated_fields={len(self._generated_fields)})"
        )

    def __init__(
        self,
        entity_type: type,
        collection_name: str,
        fields: typing.Iterable[FieldDescriptor] = (),
    ) -> None:
        if not collection_name:
            raise InvalidDeclarationError(
                f"collection name of {entity_type.__qualname__} must not be empty"
            )
        self._entity_type = entity_type
        self._collection_name = collection_name
        self._fields = OrderedDict((f.name, f.bind(self)) for f in fields)

        identity_fields = [f for f in self._fields.values() if f.is_identity]
        surrogate_id_fields = [f for f in self._fields.values() if f.is_surrogate_id]
        for role, candidates in (("identity", identity_fields), ("surrogate id", surrogate_id_fields)):
            if len(candidates) > 1:
                raise InvalidDeclarationError(
                    f"{entity_type.__qualname__} marks more than one field as {role}: "
                    f"{english_enumerate((f.name for f in candidates), quote='`')}"
                )
        self._identity_field = identity_fields[0] if identity_fields else None
        self._surrogate_id_field = surrogate_id_fields[0] if surrogate_id_fields else None
        self._indexed_fields = tuple(f for f in self._fields.values() if f.is_indexed)
        self._reference_fields = tuple(f for f in self._fields.values() if f.is_reference)
        self._embedded_fields = tuple(f for f in self._fields.values() if f.is_embedded)
        self._generated_fields = tuple(f for f in self._fields.values() if f.is_generated)
