import abc
import dataclasses
import inspect
import typing

from .exceptions import InvalidDeclarationError
from .models import FieldFlags, IndexOrder, IndexSpec
from .utils import UNSPECIFIED, UnspecifiedType

if typing.TYPE_CHECKING:
    from .generators import Generator  # noqa: F401

ROLE_METADATA_KEY = "document_serde.role"


@dataclasses.dataclass(frozen=True)
class Role:
    flags: FieldFlags = FieldFlags.NONE
    index: typing.Optional[IndexSpec] = None
    generator: typing.Optional["Generator"] = None


NO_ROLE = Role()


@dataclasses.dataclass(frozen=True)
class FieldDeclaration:
    """
    A field as declared on a mapped type, before any validation takes place.
    """

    name: str
    type: typing.Any
    role: Role = NO_ROLE
    default: typing.Any = UNSPECIFIED
    default_factory: typing.Any = UNSPECIFIED
    frozen: bool = False


def mark(
    flags: FieldFlags,
    *,
    index: typing.Optional[IndexSpec] = None,
    generator: typing.Optional["Generator"] = None,
    default: typing.Any = UNSPECIFIED,
    default_factory: typing.Union[UnspecifiedType, typing.Callable[[], typing.Any]] = UNSPECIFIED,
    **kwargs,
) -> typing.Any:
    """
    Declares a dataclass field carrying the given role markers.  The field defaults
    to ``None`` unless either ``default`` or ``default_factory`` is given.

    Any other keyword argument is passed through to :py:func:`dataclasses.field`.
    """
    if flags & FieldFlags.INDEXED and index is None:
        index = IndexSpec()
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[ROLE_METADATA_KEY] = Role(flags=flags, index=index, generator=generator)
    if default_factory is not UNSPECIFIED:
        kwargs["default_factory"] = default_factory
    elif default is not UNSPECIFIED:
        kwargs["default"] = default
    else:
        kwargs["default"] = None
    return dataclasses.field(metadata=metadata, **kwargs)


def identity(**kwargs) -> typing.Any:
    return mark(FieldFlags.IDENTITY, **kwargs)


def surrogate_id(generator: typing.Optional["Generator"] = None, **kwargs) -> typing.Any:
    flags = FieldFlags.SURROGATE_ID
    if generator is not None:
        flags |= FieldFlags.GENERATED
    return mark(flags, generator=generator, **kwargs)


def reference(**kwargs) -> typing.Any:
    return mark(FieldFlags.REFERENCE, **kwargs)


def embedded(**kwargs) -> typing.Any:
    return mark(FieldFlags.EMBEDDED, **kwargs)


def indexed(
    unique: bool = False,
    sparse: bool = False,
    order: IndexOrder = IndexOrder.ASCENDING,
    name: typing.Optional[str] = None,
    **kwargs,
) -> typing.Any:
    return mark(
        FieldFlags.INDEXED,
        index=IndexSpec(name=name, unique=unique, sparse=sparse, order=order),
        **kwargs,
    )


def generated(generator: "Generator", **kwargs) -> typing.Any:
    return mark(FieldFlags.GENERATED, generator=generator, **kwargs)


@dataclasses.dataclass
class Meta:
    collection: typing.Optional[str] = None


def handle_meta(meta: typing.Type) -> Meta:
    attrs = {k: v for k, v in vars(meta).items() if not k.startswith("__")}
    unknown = set(attrs) - {f.name for f in dataclasses.fields(Meta)}
    if unknown:
        raise InvalidDeclarationError(
            f"unknown attribute(s) in Meta: {', '.join(sorted(unknown))}"
        )
    collection = attrs.get("collection")
    if collection is not None and not isinstance(collection, str):
        raise InvalidDeclarationError(f"Meta.collection must be a str, got {collection!r}")
    return Meta(collection=collection)


class RoleExtractor(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    def extract_collection_name(self, class_: type) -> typing.Optional[str]:
        """
        Returns the collection name declared on ``class_``, or ``None`` if the type
        does not override it.
        """
        ...  # pragma: nocover

    @abc.abstractmethod
    def extract_fields(self, class_: type) -> typing.Sequence[FieldDeclaration]:
        """
        Returns the declarations of every field of ``class_``, inherited ones included.
        """
        ...  # pragma: nocover

    def declares_identity(self, class_: type) -> bool:
        return any(decl.role.flags & FieldFlags.IDENTITY for decl in self.extract_fields(class_))


class DataclassRoleExtractor(RoleExtractor):
    """
    Reads role markers off dataclass field metadata.  Plain classes with type
    annotations are accepted too: every annotated attribute then becomes a field
    without markers.
    """

    def extract_collection_name(self, class_: type) -> typing.Optional[str]:
        meta = vars(class_).get("Meta")
        if meta is None:
            return None
        return handle_meta(meta).collection

    def extract_fields(self, class_: type) -> typing.Sequence[FieldDeclaration]:
        try:
            hints = typing.get_type_hints(class_)
        except NameError as e:
            raise InvalidDeclarationError(
                f"cannot resolve the annotations of {class_.__qualname__}: {e}"
            ) from e

        if dataclasses.is_dataclass(class_):
            frozen = class_.__dataclass_params__.frozen  # type: ignore
            return [
                FieldDeclaration(
                    name=f.name,
                    type=hints.get(f.name, f.type),
                    role=f.metadata.get(ROLE_METADATA_KEY, NO_ROLE),
                    default=f.default if f.default is not dataclasses.MISSING else UNSPECIFIED,
                    default_factory=(
                        f.default_factory
                        if f.default_factory is not dataclasses.MISSING
                        else UNSPECIFIED
                    ),
                    frozen=frozen,
                )
                for f in dataclasses.fields(class_)
            ]

        decls: typing.List[FieldDeclaration] = []
        for name, type_ in hints.items():
            if typing.get_origin(type_) is typing.ClassVar or type_ is typing.ClassVar:
                continue
            default = inspect.getattr_static(class_, name, UNSPECIFIED)
            decls.append(FieldDeclaration(name=name, type=type_, default=default))
        return decls

    def declares_identity(self, class_: type) -> bool:
        if dataclasses.is_dataclass(class_):
            return any(
                f.metadata.get(ROLE_METADATA_KEY, NO_ROLE).flags & FieldFlags.IDENTITY
                for f in dataclasses.fields(class_)
            )
        return super().declares_identity(class_)
