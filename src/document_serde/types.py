import typing

DocumentScalar = typing.Union[bool, int, float, str]
DocumentArray = typing.Sequence[typing.Any]
Document = typing.Dict[str, typing.Any]
DocumentValue = typing.Union[DocumentScalar, DocumentArray, Document, None]

ID_KEY = "_id"
"""
The reserved key under which the identity of a document is stored.
"""

Char = typing.NewType("Char", str)
"""
A one-character string.  Declare a field as :py:data:`Char` to have the mapper
reject stored strings of any other length.
"""
