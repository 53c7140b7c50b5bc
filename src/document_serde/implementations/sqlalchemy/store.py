"""
A document store that keeps every document as a JSON row of a single SQL table.

.. code-block:: python

   engine = sa.create_engine("sqlite:///")
   metadata.create_all(bind=engine)
   session = orm.Session(bind=engine)

   store = SQLADocumentStore(session)
   identity = store.save(Contact(name="alice"))
   session.commit()

Documents are keyed by the collection name of their type and their identity.
The store never commits; the transaction belongs to the caller.
"""

import contextlib
import typing
import uuid

import sqlalchemy as sa  # type: ignore
import structlog
from sqlalchemy import orm  # type: ignore

from ...defaults import mapper_with_defaults
from ...exceptions import ConfigurationError, InvalidIdentifierError, StoreError
from ...interfaces import CounterStore, EntityStore
from ...mapper import DocumentMapper
from ...models import EntityDescriptor
from ...types import ID_KEY, Document
from ...utils.typing import type_name

logger = structlog.get_logger(__name__)

T = typing.TypeVar("T")

metadata = sa.MetaData()

documents = sa.Table(
    "documents",
    metadata,
    sa.Column("collection", sa.String(255), primary_key=True, nullable=False),
    sa.Column("identity", sa.String(255), primary_key=True, nullable=False),
    sa.Column("body", sa.JSON(), nullable=False),
)

counters = sa.Table(
    "counters",
    metadata,
    sa.Column("name", sa.String(255), primary_key=True, nullable=False),
    sa.Column("value", sa.Integer(), nullable=False),
)


def _check_identity(identity: typing.Any) -> str:
    if not isinstance(identity, str) or not identity.strip():
        raise InvalidIdentifierError(f"malformed identity: {identity!r}")
    return identity


class SQLADocumentStore(EntityStore, CounterStore):
    """
    :param sqlalchemy.orm.session.Session session: the session statements are executed in.
    :param Optional[DocumentMapper] mapper: the mapper documents are converted with.
        It must not carry a reference resolver: entities returned by the store keep
        their references as placeholders.
    """

    session: orm.Session
    mapper: DocumentMapper

    @contextlib.contextmanager
    def _translating_errors(self, operation: str) -> typing.Iterator[None]:
        try:
            yield
        except sa.exc.SQLAlchemyError as e:
            logger.error("store operation failed", operation=operation, error=str(e))
            raise StoreError(f"{operation} failed: {e}") from e

    def _fetch(self, collection: str, identity: str) -> typing.Optional[Document]:
        with self._translating_errors("lookup"):
            return self.session.execute(
                sa.select(documents.c.body).where(
                    sa.and_(
                        documents.c.collection == collection,
                        documents.c.identity == identity,
                    )
                )
            ).scalar()

    def find_document(
        self, entity_type: type, identity: typing.Any
    ) -> typing.Optional[Document]:
        descr = self.mapper.get_metadata(entity_type)
        return self._fetch(descr.collection_name, _check_identity(identity))

    def find_by_id(self, entity_type: typing.Type[T], identity: typing.Any) -> typing.Optional[T]:
        document = self.find_document(entity_type, identity)
        if document is None:
            logger.debug(
                "document not found", entity_type=type_name(entity_type), identity=identity
            )
            return None
        return self.mapper.deserialize(document, entity_type)

    def find_all(self, entity_type: typing.Type[T]) -> typing.List[T]:
        descr = self.mapper.get_metadata(entity_type)
        with self._translating_errors("lookup"):
            bodies = (
                self.session.execute(
                    sa.select(documents.c.body)
                    .where(documents.c.collection == descr.collection_name)
                    .order_by(documents.c.identity)
                )
                .scalars()
                .all()
            )
        return [self.mapper.deserialize(body, entity_type) for body in bodies]

    def exists_by_id(self, entity_type: type, identity: typing.Any) -> bool:
        return self.find_document(entity_type, identity) is not None

    def count(self, entity_type: type) -> int:
        descr = self.mapper.get_metadata(entity_type)
        with self._translating_errors("count"):
            return self.session.execute(
                sa.select(sa.func.count())
                .select_from(documents)
                .where(documents.c.collection == descr.collection_name)
            ).scalar()

    def _identity_for(self, descr: EntityDescriptor, entity: typing.Any) -> str:
        """
        Returns the key the document of ``entity`` is filed under: its identity,
        minted and written back when unset, or the surrogate id of a type that
        declares no identity field.
        """
        field = descr.identity_field
        if field is None and descr.surrogate_id_field is not None:
            surrogate = descr.surrogate_id_field.fetch_value(entity)
            if surrogate is None:
                raise InvalidIdentifierError(
                    f"{type_name(descr.entity_type)} has no identity field and its "
                    f"surrogate id {descr.surrogate_id_field.name} is not set"
                )
            return _check_identity(str(surrogate))
        identity = field.fetch_value(entity) if field is not None else None
        if identity is None:
            identity = uuid.uuid4().hex
            if field is not None:
                field.store_value(entity, identity)
        return _check_identity(identity)

    def _write(self, entity: typing.Any, replace: bool) -> str:
        descr = self.mapper.get_metadata(type(entity))
        identity = self._identity_for(descr, entity)
        document = self.mapper.serialize(entity)
        body = {ID_KEY: identity}
        body.update((k, v) for k, v in document.items() if k != ID_KEY)
        key = sa.and_(
            documents.c.collection == descr.collection_name,
            documents.c.identity == identity,
        )
        with self._translating_errors("write"):
            exists = self._fetch(descr.collection_name, identity) is not None
            if exists:
                if not replace:
                    raise StoreError(
                        f"{type_name(descr.entity_type)} {identity!r} already exists "
                        f"in {descr.collection_name}"
                    )
                self.session.execute(documents.update().where(key).values(body=body))
            else:
                self.session.execute(
                    documents.insert().values(
                        collection=descr.collection_name, identity=identity, body=body
                    )
                )
        logger.debug(
            "document written",
            collection=descr.collection_name,
            identity=identity,
            replaced=exists,
        )
        return identity

    def insert(self, entity: typing.Any) -> str:
        """
        Stores ``entity`` as a new document.

        :raises StoreError: if a document with the same identity exists already.
        """
        return self._write(entity, replace=False)

    def save(self, entity: typing.Any) -> str:
        return self._write(entity, replace=True)

    def delete_by_id(self, entity_type: type, identity: typing.Any) -> bool:
        descr = self.mapper.get_metadata(entity_type)
        identity = _check_identity(identity)
        with self._translating_errors("delete"):
            result = self.session.execute(
                documents.delete().where(
                    sa.and_(
                        documents.c.collection == descr.collection_name,
                        documents.c.identity == identity,
                    )
                )
            )
        return result.rowcount > 0

    def delete_all(self, entity_type: type) -> int:
        descr = self.mapper.get_metadata(entity_type)
        with self._translating_errors("delete"):
            result = self.session.execute(
                documents.delete().where(documents.c.collection == descr.collection_name)
            )
        return result.rowcount

    def next_value(self, name: str) -> int:
        with self._translating_errors("counter increment"):
            result = self.session.execute(
                counters.update()
                .where(counters.c.name == name)
                .values(value=counters.c.value + 1)
            )
            if result.rowcount == 0:
                self.session.execute(counters.insert().values(name=name, value=1))
            return self.session.execute(
                sa.select(counters.c.value).where(counters.c.name == name)
            ).scalar()

    def __init__(
        self, session: orm.Session, mapper: typing.Optional[DocumentMapper] = None
    ) -> None:
        if mapper is None:
            mapper = mapper_with_defaults()
        elif mapper.resolver is not None:
            raise ConfigurationError(
                "the mapper of a store must keep references as placeholders"
            )
        self.session = session
        self.mapper = mapper
