import typing


class UnspecifiedType:
    _singleton: typing.ClassVar[typing.Optional["UnspecifiedType"]] = None

    def __bool__(self):
        return False

    def __repr__(self) -> str:
        return "UNSPECIFIED"

    def __new__(cls) -> "UnspecifiedType":
        if cls._singleton is None:
            cls._singleton = object.__new__(cls)
        return cls._singleton


UNSPECIFIED = UnspecifiedType()


class UnresolvedType:
    """
    The type of :py:data:`UNRESOLVED`, the marker a resolver hands back when a
    reference was deliberately left alone (a cycle was detected).
    """

    _singleton: typing.ClassVar[typing.Optional["UnresolvedType"]] = None

    def __bool__(self):
        return False

    def __repr__(self) -> str:
        return "UNRESOLVED"

    def __new__(cls) -> "UnresolvedType":
        if cls._singleton is None:
            cls._singleton = object.__new__(cls)
        return cls._singleton


UNRESOLVED = UnresolvedType()
