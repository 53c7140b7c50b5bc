from .formatting import english_enumerate  # noqa: F401
from .types import UNRESOLVED, UNSPECIFIED, UnresolvedType, UnspecifiedType  # noqa: F401
