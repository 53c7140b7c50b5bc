import contextlib
import enum
import typing

import structlog

from .exceptions import (
    ConfigurationError,
    InvalidIdentifierError,
    MappingError,
    StoreError,
)
from .generators import assign_generated_values
from .interfaces import EntityStore
from .metadata import MetadataExtractor
from .models import FieldDescriptor
from .utils import UNRESOLVED
from .utils.typing import type_name

logger = structlog.get_logger(__name__)

T = typing.TypeVar("T")


class LoadPolicy(enum.Enum):
    EAGER = "eager"
    """
    Every reference is resolved as soon as the entity holding it is loaded,
    to any depth.
    """

    EAGER_DIRECT = "eager_direct"
    """
    Only the references held directly by the loaded entity are resolved.
    """

    LAZY = "lazy"
    """
    References are left as placeholders until :py:meth:`ReferenceResolver.resolve_references`
    is called, which then resolves a single level.
    """


class SavePolicy(enum.Enum):
    CASCADE_ALL = "cascade_all"
    CASCADE_DIRECT = "cascade_direct"
    NO_CASCADE = "no_cascade"


def normalize_identity(identity: typing.Any) -> str:
    if isinstance(identity, bool):
        raise InvalidIdentifierError(f"malformed identity: {identity!r}")
    if isinstance(identity, str):
        if not identity.strip():
            raise InvalidIdentifierError("identity must not be blank")
        return identity
    if isinstance(identity, int):
        return str(identity)
    raise InvalidIdentifierError(f"malformed identity: {identity!r}")


class ReferenceResolver:
    """
    Replaces the placeholders left in reference fields by the entities they identify.

    A resolver is meant to serve a single load operation: the entities it loads are
    cached for the duration of that operation so that each one is fetched once, and
    the entities currently being resolved are tracked so that circular references
    end the recursion instead of looping.  Use a fresh resolver, or call
    :py:meth:`clear`, for every top-level load.

    :param EntityStore store: the store referenced entities are loaded from.
    :param Optional[MetadataExtractor] extractor: the extractor that describes mapped types.
    :param LoadPolicy policy: how far references are followed.
    """

    store: EntityStore
    extractor: MetadataExtractor
    policy: LoadPolicy
    _cache: typing.Dict[typing.Tuple[type, str], typing.Any]
    _in_flight: typing.Set[typing.Tuple[type, str]]

    @property
    def auto_resolve(self) -> bool:
        """
        Whether references are to be resolved while an entity is being deserialized.
        """
        return self.policy is not LoadPolicy.LAZY

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def is_in_flight(self, entity_type: type, identity: str) -> bool:
        return (entity_type, identity) in self._in_flight

    def clear(self) -> None:
        self._cache.clear()
        self._in_flight.clear()

    @contextlib.contextmanager
    def tracking(self, entity_type: type, identity: str) -> typing.Iterator[None]:
        """
        Marks ``(entity_type, identity)`` as being resolved for the duration of the
        ``with`` block.  The mark is removed however the block exits.
        """
        key = (entity_type, identity)
        if key in self._in_flight:
            yield
            return
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    def _descends_at(self, depth: int) -> bool:
        if self.policy is LoadPolicy.EAGER:
            return True
        return depth == 0

    def resolve_reference(
        self, entity_type: typing.Type[T], identity: typing.Any, depth: int = 0
    ) -> typing.Any:
        """
        Loads the entity of ``entity_type`` identified by ``identity``.

        :return: the entity, ``None`` if there is no such entity, or
            :py:data:`UNRESOLVED` if the entity is already being resolved.
        :raises InvalidIdentifierError: if ``identity`` is malformed.
        :raises StoreError: if the store fails.
        """
        normalized = normalize_identity(identity)
        key = (entity_type, normalized)
        if key in self._in_flight:
            logger.warning(
                "circular reference detected",
                entity_type=type_name(entity_type),
                identity=normalized,
            )
            return UNRESOLVED

        try:
            return self._cache[key]
        except KeyError:
            pass

        with self.tracking(entity_type, normalized):
            entity = self.store.find_by_id(entity_type, normalized)
            if entity is None:
                logger.warning(
                    "referenced entity not found",
                    entity_type=type_name(entity_type),
                    identity=normalized,
                )
                return None
            self._cache[key] = entity
            if self._descends_at(depth + 1):
                self._resolve_fields(entity, depth + 1)
        return entity

    def resolve_field_value(
        self, field: FieldDescriptor, value: typing.Any, depth: int = 0
    ) -> typing.Any:
        """
        Returns what reference ``field`` should hold given its current ``value``.
        Lookup failures are not raised: they are logged and yield ``None``.  A
        circular reference yields ``value`` itself, so the placeholder is kept.
        """
        if value is None or isinstance(value, field.type):
            return value
        try:
            resolved = self.resolve_reference(field.type, value, depth)
        except (InvalidIdentifierError, StoreError, MappingError) as e:
            logger.warning(
                "failed to resolve reference",
                field=field.name,
                referenced_type=type_name(field.type),
                identity=repr(value),
                error=str(e),
            )
            return None
        if resolved is UNRESOLVED:
            return value
        return resolved

    def _resolve_fields(self, entity: typing.Any, depth: int) -> None:
        metadata = self.extractor.get_metadata(type(entity))
        for field in metadata.reference_fields:
            value = field.fetch_value(entity)
            resolved = self.resolve_field_value(field, value, depth)
            if resolved is not value:
                field.store_value(entity, resolved)

    def resolve_references(self, entity: typing.Any) -> typing.Any:
        """
        Resolves the placeholders held by ``entity``.  How deep the resolution goes
        depends on the policy, but the references held directly by ``entity`` are
        always resolved.

        :return: ``entity`` itself.
        """
        if entity is None:
            return None
        metadata = self.extractor.get_metadata(type(entity))
        identity = metadata.get_identity(entity)
        if isinstance(identity, str):
            with self.tracking(type(entity), identity):
                self._resolve_fields(entity, 0)
        else:
            self._resolve_fields(entity, 0)
        return entity

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(policy={self.policy.name}, "
            f"cache_size={len(self._cache)}, in_flight={len(self._in_flight)})"
        )

    def __init__(
        self,
        store: EntityStore,
        extractor: typing.Optional[MetadataExtractor] = None,
        policy: LoadPolicy = LoadPolicy.EAGER,
    ) -> None:
        self.store = store
        self.extractor = extractor if extractor is not None else MetadataExtractor()
        self.policy = policy
        self._cache = {}
        self._in_flight = set()


class ReferenceHandler:
    """
    Walks the reference fields of an entity that is about to be saved: collects
    the identities they point to and, depending on the policy, saves the referenced
    entities first.

    :param Optional[EntityStore] store: the store referenced entities are saved to.
    :param Optional[MetadataExtractor] extractor: the extractor that describes mapped types.
    :param SavePolicy policy: how far saves cascade along references.
    """

    store: typing.Optional[EntityStore]
    extractor: MetadataExtractor
    policy: SavePolicy
    _in_flight: typing.Set[int]

    def clear(self) -> None:
        self._in_flight.clear()

    @contextlib.contextmanager
    def _tracking(self, entity: typing.Any) -> typing.Iterator[None]:
        key = id(entity)
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    def should_save_reference(self, depth: int) -> bool:
        """
        Tells whether an entity referenced at ``depth`` (1 for the entities the saved
        entity refers to directly) is to be saved along with it.
        """
        if self.policy is SavePolicy.CASCADE_ALL:
            return True
        if self.policy is SavePolicy.CASCADE_DIRECT:
            return depth <= 1
        return False

    def extract_identity(self, field: FieldDescriptor, value: typing.Any) -> typing.Any:
        """
        Returns the identity ``field`` refers to through ``value``, or ``None`` with a
        warning when ``value`` is an entity that has not been given an identity yet.
        """
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return value
        metadata = self.extractor.get_metadata(type(value))
        identity = metadata.get_identity(value)
        if identity is None:
            logger.warning(
                "referenced entity has no identity",
                field=field.name,
                referenced_type=type_name(type(value)),
            )
        return identity

    def process_references(self, entity: typing.Any) -> typing.Set[typing.Any]:
        """
        Returns the identities of the entities ``entity`` refers to.  Reference fields
        holding ``None`` and referenced entities without an identity are skipped.
        """
        if id(entity) in self._in_flight:
            logger.debug("circular reference detected", entity_type=type_name(type(entity)))
            return set()
        result: typing.Set[typing.Any] = set()
        with self._tracking(entity):
            metadata = self.extractor.get_metadata(type(entity))
            for field in metadata.reference_fields:
                value = field.fetch_value(entity)
                if value is None:
                    continue
                identity = self.extract_identity(field, value)
                if identity is not None:
                    result.add(identity)
        return result

    def save_references(self, entity: typing.Any, depth: int = 0) -> None:
        """
        Saves the entities ``entity`` refers to, recursively, as far as the policy
        allows.  Referenced entities are saved before the entities referring to them
        so that their identities are known when the latter are written, and their
        generated fields are filled before they are saved.
        """
        if self.policy is SavePolicy.NO_CASCADE:
            return
        if self.store is None:
            raise ConfigurationError("cascading saves needs a store")
        if id(entity) in self._in_flight:
            return
        with self._tracking(entity):
            metadata = self.extractor.get_metadata(type(entity))
            for field in metadata.reference_fields:
                value = field.fetch_value(entity)
                if value is None or isinstance(value, (str, int)):
                    continue
                if not self.should_save_reference(depth + 1):
                    continue
                if id(value) in self._in_flight:
                    logger.info(
                        "circular reference detected, not cascading",
                        field=field.name,
                        entity_type=type_name(type(entity)),
                        referenced_type=type_name(type(value)),
                    )
                    continue
                self.save_references(value, depth + 1)
                assign_generated_values(
                    self.extractor.get_metadata(type(value)), value, self.store
                )
                self.store.save(value)

    def __init__(
        self,
        store: typing.Optional[EntityStore] = None,
        extractor: typing.Optional[MetadataExtractor] = None,
        policy: SavePolicy = SavePolicy.CASCADE_ALL,
    ) -> None:
        self.store = store
        self.extractor = extractor if extractor is not None else MetadataExtractor()
        self.policy = policy
        self._in_flight = set()
