import inspect
import threading
import typing

import structlog

from .declarative import DataclassRoleExtractor, FieldDeclaration, RoleExtractor
from .exceptions import InvalidDeclarationError
from .models import EntityDescriptor, FieldDescriptor, FieldFlags
from .utils.typing import type_name, unwrap_optional

logger = structlog.get_logger(__name__)


class MetadataExtractor:
    """
    Builds an :py:class:`EntityDescriptor` for a mapped type on first use and caches
    it for the lifetime of the extractor.

    Extraction for a given type happens at most once even under concurrent
    callers, while extraction for distinct types is never serialized.  A failed
    extraction leaves nothing in the cache.
    """

    role_extractor: RoleExtractor
    _cache: typing.Dict[type, EntityDescriptor]
    _locks: typing.Dict[type, threading.Lock]

    def get_metadata(self, class_: type) -> EntityDescriptor:
        if not inspect.isclass(class_):
            raise TypeError(f"expected a class, got {class_!r}")

        descr = self._cache.get(class_)
        if descr is not None:
            return descr

        lock = self._locks.setdefault(class_, threading.Lock())
        try:
            with lock:
                descr = self._cache.get(class_)
                if descr is None:
                    descr = self._extract(class_)
                    self._cache[class_] = descr
        finally:
            self._locks.pop(class_, None)
        return descr

    def is_cached(self, class_: type) -> bool:
        return class_ in self._cache

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("metadata cache cleared")

    def preload(self, *classes: type) -> None:
        for class_ in classes:
            self.get_metadata(class_)
        logger.info(
            "metadata preloaded",
            entity_types=[c.__qualname__ for c in classes],
            cache_size=len(self._cache),
        )

    def _build_field(self, class_: type, decl: FieldDeclaration) -> FieldDescriptor:
        type_, allow_null = unwrap_optional(decl.type)
        flags = decl.role.flags

        if flags & FieldFlags.IDENTITY and flags & FieldFlags.SURROGATE_ID:
            raise InvalidDeclarationError(
                f"{class_.__qualname__}.{decl.name} cannot be both an identity and a surrogate id"
            )
        if flags & FieldFlags.IDENTITY and type_ is not str:
            raise InvalidDeclarationError(
                f"identity field {class_.__qualname__}.{decl.name} must be declared as str, "
                f"not {type_name(type_)}"
            )
        if flags & FieldFlags.REFERENCE:
            if flags & FieldFlags.EMBEDDED:
                raise InvalidDeclarationError(
                    f"{class_.__qualname__}.{decl.name} cannot be both a reference and embedded"
                )
            if not inspect.isclass(type_):
                raise InvalidDeclarationError(
                    f"{class_.__qualname__}.{decl.name} is a reference but its type "
                    f"{type_name(type_)} is not a class"
                )
            if not self.role_extractor.declares_identity(type_):
                raise InvalidDeclarationError(
                    f"{class_.__qualname__}.{decl.name} refers to {type_name(type_)} "
                    "which declares no identity field"
                )
        if flags & FieldFlags.GENERATED and decl.role.generator is None:
            raise InvalidDeclarationError(
                f"{class_.__qualname__}.{decl.name} is generated but no generator is given"
            )

        return FieldDescriptor(
            name=decl.name,
            type=type_,
            allow_null=allow_null,
            flags=flags,
            index=decl.role.index,
            generator=decl.role.generator,
            default=decl.default,
            default_factory=decl.default_factory,
            frozen=decl.frozen,
        )

    def _extract(self, class_: type) -> EntityDescriptor:
        logger.debug("extracting metadata", entity_type=class_.__qualname__)
        fields = [
            self._build_field(class_, decl) for decl in self.role_extractor.extract_fields(class_)
        ]
        collection_name = self.role_extractor.extract_collection_name(class_)
        if collection_name is None:
            collection_name = class_.__name__
        descr = EntityDescriptor(class_, collection_name, fields)
        logger.debug("metadata extracted", descriptor=repr(descr))
        return descr

    def __init__(self, role_extractor: typing.Optional[RoleExtractor] = None) -> None:
        self.role_extractor = (
            role_extractor if role_extractor is not None else DataclassRoleExtractor()
        )
        self._cache = {}
        self._locks = {}
