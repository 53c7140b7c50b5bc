import dataclasses
import typing

import pytest
import sqlalchemy as sa  # type: ignore
from sqlalchemy import orm  # type: ignore

from ....declarative import identity, reference, surrogate_id
from ....exceptions import EntityNotFoundError, InvalidDeclarationError, InvalidIdentifierError
from ....generators import IntegerGenerator
from ....references import LoadPolicy, SavePolicy
from ....tests.testing import Address, Company, Contact, Node, Ticket
from ..repository import EntityRepository
from ..store import SQLADocumentStore, metadata


@dataclasses.dataclass
class Tag:
    label: str
    number: typing.Optional[int] = surrogate_id(generator=IntegerGenerator())


@dataclasses.dataclass
class Escalation:
    reason: str
    id: typing.Optional[str] = identity()
    ticket: typing.Optional[Ticket] = reference()


@pytest.fixture
def store():
    engine = sa.create_engine("sqlite:///")
    metadata.create_all(bind=engine)
    session = orm.Session(bind=engine)
    yield SQLADocumentStore(session)
    session.close()


class TestEntityRepository:
    def test_collection_name(self, store):
        assert EntityRepository(store, Contact).collection_name == "contacts"
        assert EntityRepository(store, Ticket).collection_name == "Ticket"

    def test_insert_assigns_generated_values(self, store):
        target = EntityRepository(store, Ticket)
        first = Ticket(subject="printer on fire")
        second = Ticket(subject="coffee machine empty")
        first_id = target.insert(first)
        target.insert(second)
        assert first.id == first_id
        assert (first.number, second.number) == (1, 2)
        assert first.token is not None and first.token != second.token
        assert store.next_value("values_Ticket") == 3
        assert target.find_by_id(first_id) == first

    def test_generated_values_are_kept(self, store):
        target = EntityRepository(store, Ticket)
        ticket = Ticket(subject="keep", number=42, token="fixed")
        target.save(ticket)
        assert (ticket.number, ticket.token) == (42, "fixed")

    def test_surrogate_id_keys_documents_without_identity(self, store):
        target = EntityRepository(store, Tag)
        tag = Tag(label="news")
        assert target.save(tag) == "1"
        tag.label = "breaking news"
        assert target.save(tag) == "1"
        assert target.count() == 1
        assert target.find_by_id("1") == Tag(label="breaking news", number=1)

    def test_store_rejects_unset_surrogate_id(self, store):
        with pytest.raises(InvalidIdentifierError):
            store.save(Tag(label="news"))

    def test_cascade_fills_generated_values(self, store):
        target = EntityRepository(store, Escalation)
        ticket = Ticket(subject="printer on fire")
        identity = target.save(Escalation(reason="urgent", ticket=ticket))
        assert ticket.number == 1
        assert ticket.token is not None
        assert store.find_document(Escalation, identity)["ticket"] == ticket.id
        loaded = target.find_by_id(identity)
        assert loaded.ticket == ticket

    def test_save_cascades(self, store):
        target = EntityRepository(store, Contact)
        company = Company(name="Acme")
        contact = Contact(name="ann", company=company)
        identity = target.save(contact)
        assert company.id is not None
        assert store.find_document(Contact, identity)["company"] == company.id
        assert store.count(Company) == 1

    def test_no_cascade(self, store):
        target = EntityRepository(store, Contact, save_policy=SavePolicy.NO_CASCADE)
        contact = Contact(name="ann", company=Company(name="Acme"))
        identity = target.save(contact)
        assert store.count(Company) == 0
        assert store.find_document(Contact, identity)["company"] is None

    def test_find_by_id_eager(self, store):
        store.save(Company(name="Acme", id="acme"))
        store.save(Contact(name="ann", id="c1", company="acme"))
        contact = EntityRepository(store, Contact).find_by_id("c1")
        assert contact.company == Company(name="Acme", id="acme")

    def test_find_by_id_lazy(self, store):
        store.save(Company(name="Acme", id="acme"))
        store.save(Contact(name="ann", id="c1", company="acme"))
        target = EntityRepository(store, Contact, load_policy=LoadPolicy.LAZY)
        contact = target.find_by_id("c1")
        assert contact.company == "acme"
        assert target.resolve_references(contact) is contact
        assert contact.company == Company(name="Acme", id="acme")

    def test_find_by_id_eager_direct(self, store):
        target = EntityRepository(store, Node, save_policy=SavePolicy.CASCADE_ALL)
        first = Node(label="first", next=Node(label="second", next=Node(label="third")))
        identity = target.save(first)
        loaded = EntityRepository(store, Node, load_policy=LoadPolicy.EAGER_DIRECT).find_by_id(
            identity
        )
        assert loaded.next.label == "second"
        assert loaded.next.next == first.next.next.id

    def test_find_by_id_missing(self, store):
        assert EntityRepository(store, Contact).find_by_id("nope") is None

    def test_get_by_id(self, store):
        store.save(Company(name="Acme", id="acme"))
        target = EntityRepository(store, Company)
        assert target.get_by_id("acme") == Company(name="Acme", id="acme")
        with pytest.raises(EntityNotFoundError) as exc_info:
            target.get_by_id("nope")
        assert exc_info.value.identity == "nope"

    def test_find_all(self, store):
        store.save(Company(name="Acme", id="acme"))
        store.save(Contact(name="bob", id="c2", company="acme"))
        store.save(Contact(name="ann", id="c1", company="acme"))
        contacts = EntityRepository(store, Contact).find_all()
        assert [c.name for c in contacts] == ["ann", "bob"]
        assert all(c.company == Company(name="Acme", id="acme") for c in contacts)

    def test_exists_and_count(self, store):
        target = EntityRepository(store, Contact)
        identity = target.insert(Contact(name="ann", address=Address(street="s", city="c")))
        assert target.exists_by_id(identity)
        assert not target.exists_by_id("nope")
        assert target.count() == 1

    def test_delete(self, store):
        target = EntityRepository(store, Contact)
        contact = Contact(name="ann")
        assert not target.delete(contact)
        target.save(contact)
        assert target.delete(contact)
        assert target.count() == 0

    def test_delete_by_id(self, store):
        target = EntityRepository(store, Contact)
        identity = target.save(Contact(name="ann"))
        assert target.delete_by_id(identity)
        assert not target.delete_by_id(identity)

    def test_delete_all(self, store):
        target = EntityRepository(store, Contact)
        for name in ["ann", "bob", "eve"]:
            target.save(Contact(name=name))
        assert target.delete_all() == 3
        assert target.count() == 0

    def test_delete_without_identity_field(self, store):
        target = EntityRepository(store, Address)
        with pytest.raises(InvalidDeclarationError):
            target.delete(Address(street="s", city="c"))
