import dataclasses
import typing

from ..models import EntityDescriptor, FieldDescriptor
from ..types import Document

if typing.TYPE_CHECKING:
    from ..mapper import DocumentMapper  # noqa: F401


@dataclasses.dataclass(frozen=True)
class SerializationContext:
    """
    Carries everything a serializer needs to write a single field into a document.
    A context is created per field and is never modified; only the target
    ``document`` is written to.
    """

    field: FieldDescriptor
    value: typing.Any
    entity: typing.Any
    document: Document
    metadata: EntityDescriptor
    mapper: "DocumentMapper"

    @property
    def field_name(self) -> str:
        return self.field.name

    @property
    def field_type(self) -> typing.Any:
        return self.field.type

    @property
    def is_value_null(self) -> bool:
        return self.value is None

    def put(self, value: typing.Any) -> None:
        self.document[self.field.name] = value

    def put_key(self, key: str, value: typing.Any) -> None:
        self.document[key] = value


@dataclasses.dataclass(frozen=True)
class DeserializationContext:
    """
    Carries everything a deserializer needs to populate a single field of a
    freshly allocated instance from a document.
    """

    field: FieldDescriptor
    value: typing.Any
    target: typing.Any
    document: Document
    metadata: EntityDescriptor
    mapper: "DocumentMapper"

    @property
    def field_name(self) -> str:
        return self.field.name

    @property
    def field_type(self) -> typing.Any:
        return self.field.type

    @property
    def is_value_null(self) -> bool:
        return self.value is None

    @property
    def is_present(self) -> bool:
        """
        Tells whether the document carries the key of the field at all,
        as opposed to carrying it with a ``None`` value.
        """
        return self.field.document_key in self.document

    def get(self, key: str, default: typing.Any = None) -> typing.Any:
        return self.document.get(key, default)

    def assign(self, value: typing.Any) -> None:
        self.field.store_value(self.target, value)
