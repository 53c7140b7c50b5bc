import abc
import typing

from .utils.typing import type_name


class DocumentSerdeException(Exception, metaclass=abc.ABCMeta):
    pass


class InvalidDeclarationError(DocumentSerdeException):
    """
    Raised while extracting metadata from a type whose role markers contradict each other.
    """

    message: str

    def __str__(self):
        return self.message

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(DocumentSerdeException):
    """
    Raised when a strategy chain cannot be built or cannot handle a field.
    This always indicates a defect in the way the mapper was put together,
    never a problem with the data being mapped.
    """

    message: str

    def __str__(self):
        return self.message

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MappingError(DocumentSerdeException):
    """
    The single error type a caller sees when a field cannot be mapped.

    :param str field_name: the name of the field being mapped.
    :param Any field_type: the declared type of the field.
    :param Optional[type] value_type: the type of the value that was being mapped, if any.
    :param Optional[str] detail: an additional description of the failure.
    """

    field_name: typing.Optional[str]
    field_type: typing.Any
    value_type: typing.Optional[type]
    detail: typing.Optional[str]

    @property
    def message(self) -> str:
        buf = [f"failed to map field ({self.field_name})"]
        if self.field_type is not None:
            buf.append(f" of type {type_name(self.field_type)}")
        if self.value_type is not None:
            buf.append(f" from a value of type {type_name(self.value_type)}")
        if self.detail is not None:
            buf.append(f": {self.detail}")
        elif self.__cause__ is not None:
            buf.append(f" ({self.__cause__!s})")
        return "".join(buf)

    def __str__(self):
        return self.message

    def __init__(
        self,
        field_name: typing.Optional[str],
        field_type: typing.Any = None,
        value_type: typing.Optional[type] = None,
        detail: typing.Optional[str] = None,
    ):
        super().__init__(field_name, field_type, value_type, detail)
        self.field_name = field_name
        self.field_type = field_type
        self.value_type = value_type
        self.detail = detail


class ConversionError(MappingError):
    """
    Raised when a stored value cannot be coerced to the declared type of a field.
    """


class FieldAccessError(MappingError):
    """
    Raised when a field cannot be read from or written to an instance.
    """


class StoreError(DocumentSerdeException):
    """
    Raised by an entity store when a lookup or a write fails for reasons
    unrelated to the mapping itself (a lost connection, a locked table...).
    """

    message: str

    def __str__(self):
        return self.message

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EntityNotFoundError(StoreError):
    entity_type: type
    identity: typing.Any

    def __init__(self, entity_type: type, identity: typing.Any):
        super().__init__(f"no entity {type_name(entity_type)} found for {identity!r}")
        self.entity_type = entity_type
        self.identity = identity


class InvalidIdentifierError(DocumentSerdeException):
    message: str

    def __str__(self):
        return self.message

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
