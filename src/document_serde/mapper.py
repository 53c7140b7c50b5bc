import collections.abc
import typing

from .exceptions import MappingError
from .mapping.chains import FieldDeserializerChain, FieldSerializerChain
from .mapping.context import DeserializationContext, SerializationContext
from .metadata import MetadataExtractor
from .models import EntityDescriptor
from .types import ID_KEY, Document
from .utils.typing import type_name

if typing.TYPE_CHECKING:
    from .references import ReferenceResolver  # noqa: F401

T = typing.TypeVar("T")


class DocumentMapper:
    """
    Converts instances of mapped types to documents and back by running every field
    through a serializer or a deserializer chain.

    :param MetadataExtractor extractor: the extractor that describes mapped types.
    :param FieldSerializerChain serializer_chain: the chain used to write fields.
    :param FieldDeserializerChain deserializer_chain: the chain used to read fields.
    :param Optional[ReferenceResolver] resolver: the resolver the reference deserializer
        of ``deserializer_chain`` is bound to, if any.
    """

    extractor: MetadataExtractor
    serializer_chain: FieldSerializerChain
    deserializer_chain: FieldDeserializerChain
    resolver: typing.Optional["ReferenceResolver"]

    def get_metadata(self, class_: type) -> EntityDescriptor:
        return self.extractor.get_metadata(class_)

    def serialize(self, instance: typing.Any) -> Document:
        """
        Serializes ``instance`` into a new document.  Fields are written in
        declaration order and null-valued fields are left out.
        """
        if instance is None:
            raise TypeError("cannot serialize None")
        metadata = self.get_metadata(type(instance))
        document: Document = {}
        for field in metadata.fields:
            self.serializer_chain.serialize(
                SerializationContext(
                    field=field,
                    value=field.fetch_value(instance),
                    entity=instance,
                    document=document,
                    metadata=metadata,
                    mapper=self,
                )
            )
        return document

    def deserialize(self, document: typing.Mapping[str, typing.Any], class_: typing.Type[T]) -> T:
        """
        Builds a new instance of ``class_`` from ``document``.

        When the mapper has a resolver, the identity of the document is marked as
        being resolved for the duration of the call, so that references pointing
        back to it are detected as cycles.
        """
        if self.resolver is not None and isinstance(document, collections.abc.Mapping):
            identity = document.get(ID_KEY)
            if isinstance(identity, str):
                with self.resolver.tracking(class_, identity):
                    return self.deserialize_nested(document, class_)
        return self.deserialize_nested(document, class_)

    def deserialize_nested(
        self, document: typing.Mapping[str, typing.Any], class_: typing.Type[T]
    ) -> T:
        if not isinstance(document, collections.abc.Mapping):
            raise MappingError(
                None,
                class_,
                type(document),
                detail=f"expected a document to build {type_name(class_)} from",
            )
        metadata = self.get_metadata(class_)
        instance = metadata.new_instance()
        for field in metadata.fields:
            self.deserializer_chain.deserialize(
                DeserializationContext(
                    field=field,
                    value=document.get(field.document_key),
                    target=instance,
                    document=typing.cast(Document, document),
                    metadata=metadata,
                    mapper=self,
                )
            )
        return instance

    def __init__(
        self,
        extractor: MetadataExtractor,
        serializer_chain: FieldSerializerChain,
        deserializer_chain: FieldDeserializerChain,
        resolver: typing.Optional["ReferenceResolver"] = None,
    ) -> None:
        self.extractor = extractor
        self.serializer_chain = serializer_chain
        self.deserializer_chain = deserializer_chain
        self.resolver = resolver
