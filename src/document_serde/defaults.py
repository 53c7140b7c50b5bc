import typing

from .mapper import DocumentMapper
from .mapping.chains import FieldDeserializerChain, FieldSerializerChain
from .mapping.deserializers import (
    DefaultDeserializer,
    EmbeddedDeserializer,
    EnumDeserializer,
    IdentityDeserializer,
    NestedObjectDeserializer,
    NullValueDeserializer,
    PrimitiveDeserializer,
    ReferenceDeserializer,
    SequenceDeserializer,
)
from .mapping.interfaces import FieldDeserializer, FieldSerializer
from .mapping.serializers import (
    DefaultSerializer,
    EmbeddedSerializer,
    EnumSerializer,
    IdentitySerializer,
    NestedObjectSerializer,
    NullValueSerializer,
    PrimitiveSerializer,
    ReferenceSerializer,
    SequenceSerializer,
)
from .metadata import MetadataExtractor
from .references import ReferenceResolver


def default_serializers() -> typing.List[FieldSerializer]:
    return [
        NullValueSerializer(),
        EmbeddedSerializer(),
        IdentitySerializer(),
        ReferenceSerializer(),
        SequenceSerializer(),
        NestedObjectSerializer(),
        EnumSerializer(),
        PrimitiveSerializer(),
        DefaultSerializer(),
    ]


def default_deserializers(
    resolver: typing.Optional[ReferenceResolver] = None,
) -> typing.List[FieldDeserializer]:
    return [
        NullValueDeserializer(),
        EmbeddedDeserializer(),
        IdentityDeserializer(),
        ReferenceDeserializer(resolver),
        SequenceDeserializer(),
        NestedObjectDeserializer(),
        EnumDeserializer(),
        PrimitiveDeserializer(),
        DefaultDeserializer(),
    ]


def mapper_with_defaults(
    extractor: typing.Optional[MetadataExtractor] = None,
    resolver: typing.Optional[ReferenceResolver] = None,
) -> DocumentMapper:
    """
    Builds a :py:class:`DocumentMapper` with the default strategies.  When
    ``resolver`` is given, references are resolved during deserialization;
    otherwise their identities are kept as placeholders.
    """
    if extractor is None:
        extractor = resolver.extractor if resolver is not None else MetadataExtractor()
    return DocumentMapper(
        extractor=extractor,
        serializer_chain=FieldSerializerChain(default_serializers()),
        deserializer_chain=FieldDeserializerChain(default_deserializers(resolver)),
        resolver=resolver,
    )
