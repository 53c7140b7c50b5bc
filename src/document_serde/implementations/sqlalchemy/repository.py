import typing

import structlog

from ...exceptions import EntityNotFoundError, InvalidDeclarationError
from ...generators import assign_generated_values
from ...models import EntityDescriptor
from ...references import LoadPolicy, ReferenceHandler, ReferenceResolver, SavePolicy
from .store import SQLADocumentStore

logger = structlog.get_logger(__name__)

T = typing.TypeVar("T")


class EntityRepository(typing.Generic[T]):
    """
    Persists and loads entities of a single type through a :py:class:`SQLADocumentStore`,
    following references as the load and save policies direct.

    :param SQLADocumentStore store: the underlying store.
    :param type entity_type: the type of the entities handled by the repository.
    :param LoadPolicy load_policy: how far references are followed on load.
    :param SavePolicy save_policy: how far saves cascade along references.
    """

    store: SQLADocumentStore
    entity_type: typing.Type[T]
    load_policy: LoadPolicy
    save_policy: SavePolicy

    @property
    def metadata(self) -> EntityDescriptor:
        return self.store.mapper.get_metadata(self.entity_type)

    @property
    def collection_name(self) -> str:
        return self.metadata.collection_name

    def _new_resolver(self) -> ReferenceResolver:
        return ReferenceResolver(self.store, self.store.mapper.extractor, self.load_policy)

    def resolve_references(self, entity: T) -> T:
        """
        Resolves the references held directly by ``entity``.  This is how entities
        loaded under the lazy policy get their references filled in.
        """
        return self._new_resolver().resolve_references(entity)

    def find_by_id(self, identity: typing.Any) -> typing.Optional[T]:
        entity = self.store.find_by_id(self.entity_type, identity)
        if entity is not None and self.load_policy is not LoadPolicy.LAZY:
            self._new_resolver().resolve_references(entity)
        return entity

    def get_by_id(self, identity: typing.Any) -> T:
        entity = self.find_by_id(identity)
        if entity is None:
            raise EntityNotFoundError(self.entity_type, identity)
        return entity

    def find_all(self) -> typing.List[T]:
        entities = self.store.find_all(self.entity_type)
        if self.load_policy is not LoadPolicy.LAZY and self.metadata.has_references:
            resolver = self._new_resolver()
            for entity in entities:
                resolver.resolve_references(entity)
        return entities

    def exists_by_id(self, identity: typing.Any) -> bool:
        return self.store.exists_by_id(self.entity_type, identity)

    def count(self) -> int:
        return self.store.count(self.entity_type)

    def _cascade(self, entity: T) -> None:
        if self.save_policy is SavePolicy.NO_CASCADE or not self.metadata.has_references:
            return
        ReferenceHandler(self.store, self.store.mapper.extractor, self.save_policy).save_references(
            entity
        )

    def insert(self, entity: T) -> str:
        """
        Stores ``entity`` as a new document, filling its generated fields and its
        identity first.  The identity is written back to the entity.
        """
        assign_generated_values(self.metadata, entity, self.store)
        self._cascade(entity)
        identity = self.store.insert(entity)
        logger.debug("entity inserted", collection=self.collection_name, identity=identity)
        return identity

    def save(self, entity: T) -> str:
        """
        Inserts or replaces ``entity``, saving the entities it refers to first as the
        save policy directs.
        """
        assign_generated_values(self.metadata, entity, self.store)
        self._cascade(entity)
        identity = self.store.save(entity)
        logger.debug("entity saved", collection=self.collection_name, identity=identity)
        return identity

    def delete(self, entity: T) -> bool:
        field = self.metadata.identity_field
        if field is None:
            raise InvalidDeclarationError(
                f"{self.entity_type.__qualname__} declares no identity field to delete by"
            )
        identity = field.fetch_value(entity)
        if identity is None:
            return False
        return self.delete_by_id(identity)

    def delete_by_id(self, identity: typing.Any) -> bool:
        deleted = self.store.delete_by_id(self.entity_type, identity)
        logger.debug(
            "entity deleted", collection=self.collection_name, identity=identity, deleted=deleted
        )
        return deleted

    def delete_all(self) -> int:
        return self.store.delete_all(self.entity_type)

    def __init__(
        self,
        store: SQLADocumentStore,
        entity_type: typing.Type[T],
        load_policy: LoadPolicy = LoadPolicy.EAGER,
        save_policy: SavePolicy = SavePolicy.CASCADE_ALL,
    ) -> None:
        self.store = store
        self.entity_type = entity_type
        self.load_policy = load_policy
        self.save_policy = save_policy
