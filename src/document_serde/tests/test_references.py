import dataclasses
import typing

import pytest
from structlog.testing import capture_logs

from ..declarative import identity, reference
from ..defaults import mapper_with_defaults
from ..exceptions import ConfigurationError, InvalidIdentifierError, StoreError
from ..metadata import MetadataExtractor
from ..references import LoadPolicy, ReferenceHandler, ReferenceResolver, SavePolicy
from ..utils import UNRESOLVED
from .testing import Author, Book, Company, Contact, InMemoryEntityStore, Node, Ticket


@dataclasses.dataclass
class Assignment:
    owner: str
    id: typing.Optional[str] = identity()
    ticket: typing.Optional[Ticket] = reference()


def warnings_of(cap_logs):
    return [e["event"] for e in cap_logs if e["log_level"] == "warning"]


class TestReferenceResolver:
    @pytest.fixture
    def extractor(self) -> MetadataExtractor:
        return MetadataExtractor()

    @pytest.fixture
    def store(self, extractor) -> InMemoryEntityStore:
        store = InMemoryEntityStore(extractor)
        store.put(Company, {"_id": "acme", "name": "Acme"})
        store.put(Author, {"_id": "a1", "name": "Ann", "favorite_book": "b1"})
        store.put(Book, {"_id": "b1", "title": "Dune", "author": "a1"})
        store.put(Node, {"_id": "n1", "label": "first", "next": "n2"})
        store.put(Node, {"_id": "n2", "label": "second", "next": "n3"})
        store.put(Node, {"_id": "n3", "label": "third"})
        return store

    def test_resolve_reference(self, store, extractor):
        target = ReferenceResolver(store, extractor)
        company = target.resolve_reference(Company, "acme")
        assert company == Company(name="Acme", id="acme")
        assert target.cache_size == 1

    def test_resolve_reference_uses_cache(self, store, extractor):
        target = ReferenceResolver(store, extractor)
        first = target.resolve_reference(Company, "acme")
        second = target.resolve_reference(Company, "acme")
        assert first is second
        assert store.lookups == [(Company, "acme")]

    def test_clear(self, store, extractor):
        target = ReferenceResolver(store, extractor)
        target.resolve_reference(Company, "acme")
        target.clear()
        assert target.cache_size == 0
        target.resolve_reference(Company, "acme")
        assert len(store.lookups) == 2

    def test_not_found(self, store, extractor):
        target = ReferenceResolver(store, extractor)
        with capture_logs() as cap_logs:
            assert target.resolve_reference(Company, "nope") is None
        assert warnings_of(cap_logs) == ["referenced entity not found"]
        assert not target.is_in_flight(Company, "nope")
        assert target.cache_size == 0

    def test_store_error_propagates(self, store, extractor):
        store.failing.add("acme")
        target = ReferenceResolver(store, extractor)
        with pytest.raises(StoreError):
            target.resolve_reference(Company, "acme")
        assert not target.is_in_flight(Company, "acme")

    @pytest.mark.parametrize("identity", ["", "   ", True, 1.5, {"_id": "acme"}, ["acme"]])
    def test_malformed_identity(self, store, extractor, identity):
        target = ReferenceResolver(store, extractor)
        with pytest.raises(InvalidIdentifierError):
            target.resolve_reference(Company, identity)
        assert store.lookups == []

    def test_in_flight_identity_is_a_cycle(self, store, extractor):
        target = ReferenceResolver(store, extractor)
        with target.tracking(Company, "acme"):
            assert target.is_in_flight(Company, "acme")
            with capture_logs() as cap_logs:
                assert target.resolve_reference(Company, "acme") is UNRESOLVED
        assert warnings_of(cap_logs) == ["circular reference detected"]
        assert not target.is_in_flight(Company, "acme")
        assert store.lookups == []

    def test_tracking_releases_on_error(self, store, extractor):
        target = ReferenceResolver(store, extractor)
        with pytest.raises(RuntimeError):
            with target.tracking(Company, "acme"):
                raise RuntimeError()
        assert not target.is_in_flight(Company, "acme")

    def test_nested_tracking_keeps_outer_mark(self, store, extractor):
        target = ReferenceResolver(store, extractor)
        with target.tracking(Company, "acme"):
            with target.tracking(Company, "acme"):
                pass
            assert target.is_in_flight(Company, "acme")

    def test_cycle_terminates(self, store, extractor):
        target = mapper_with_defaults(resolver=ReferenceResolver(store, extractor))
        with capture_logs() as cap_logs:
            book = target.deserialize(store.documents[("Book", "b1")], Book)
        assert isinstance(book.author, Author)
        assert book.author.name == "Ann"
        # the back-reference to the book being loaded stays a placeholder
        assert book.author.favorite_book == "b1"
        assert "circular reference detected" in warnings_of(cap_logs)

    def test_eager(self, store, extractor):
        target = ReferenceResolver(store, extractor, LoadPolicy.EAGER)
        first = store.find_by_id(Node, "n1")
        target.resolve_references(first)
        assert first.next.label == "second"
        assert first.next.next.label == "third"
        assert first.next.next.next is None

    def test_eager_direct(self, store, extractor):
        target = ReferenceResolver(store, extractor, LoadPolicy.EAGER_DIRECT)
        first = store.find_by_id(Node, "n1")
        target.resolve_references(first)
        assert first.next.label == "second"
        assert first.next.next == "n3"

    def test_eager_direct_through_mapper(self, store, extractor):
        resolver = ReferenceResolver(store, extractor, LoadPolicy.EAGER_DIRECT)
        target = mapper_with_defaults(resolver=resolver)
        first = target.deserialize(store.documents[("Node", "n1")], Node)
        assert first.next.label == "second"
        assert first.next.next == "n3"

    def test_lazy(self, store, extractor):
        resolver = ReferenceResolver(store, extractor, LoadPolicy.LAZY)
        assert not resolver.auto_resolve
        target = mapper_with_defaults(resolver=resolver)
        first = target.deserialize(store.documents[("Node", "n1")], Node)
        assert first.next == "n2"
        assert store.lookups == []
        resolver.resolve_references(first)
        assert first.next.label == "second"
        assert first.next.next == "n3"

    def test_resolve_references_skips_resolved_fields(self, store, extractor):
        target = ReferenceResolver(store, extractor)
        company = Company(name="Other", id="other")
        contact = Contact(name="ann", company=company)
        target.resolve_references(contact)
        assert contact.company is company
        assert store.lookups == []

    def test_soft_failures_become_null(self, store, extractor):
        store.failing.add("b1")
        target = mapper_with_defaults(resolver=ReferenceResolver(store, extractor))
        documents = [
            ({"_id": "c1", "name": "ann", "company": "missing"}, "referenced entity not found"),
            ({"_id": "c2", "name": "bob", "company": {"bogus": 1}}, "failed to resolve reference"),
        ]
        for document, event in documents:
            with capture_logs() as cap_logs:
                contact = target.deserialize(document, Contact)
            assert contact.company is None
            assert event in warnings_of(cap_logs)

        with capture_logs() as cap_logs:
            author = target.deserialize({"_id": "a2", "name": "Bea", "favorite_book": "b1"}, Author)
        assert author.favorite_book is None
        assert warnings_of(cap_logs) == ["failed to resolve reference"]

    def test_root_is_released_after_deserialize(self, store, extractor):
        resolver = ReferenceResolver(store, extractor)
        target = mapper_with_defaults(resolver=resolver)
        target.deserialize(store.documents[("Book", "b1")], Book)
        assert not resolver.is_in_flight(Book, "b1")
        assert not resolver.is_in_flight(Author, "a1")


class TestReferenceHandler:
    @pytest.fixture
    def extractor(self) -> MetadataExtractor:
        return MetadataExtractor()

    @pytest.fixture
    def store(self, extractor) -> InMemoryEntityStore:
        return InMemoryEntityStore(extractor)

    def test_process_references(self, extractor):
        target = ReferenceHandler(extractor=extractor)
        contact = Contact(name="ann", company=Company(name="Acme", id="acme"))
        assert target.process_references(contact) == {"acme"}
        assert target.process_references(Contact(name="bob")) == set()
        assert target.process_references(Contact(name="eve", company="placeholder")) == {
            "placeholder"
        }

    def test_process_references_without_identity(self, extractor):
        target = ReferenceHandler(extractor=extractor)
        with capture_logs() as cap_logs:
            identities = target.process_references(
                Contact(name="ann", company=Company(name="Acme"))
            )
        assert identities == set()
        assert warnings_of(cap_logs) == ["referenced entity has no identity"]

    @pytest.mark.parametrize(
        "policy, expected",
        [
            (SavePolicy.CASCADE_ALL, [True, True, True]),
            (SavePolicy.CASCADE_DIRECT, [True, False, False]),
            (SavePolicy.NO_CASCADE, [False, False, False]),
        ],
    )
    def test_should_save_reference(self, extractor, policy, expected):
        target = ReferenceHandler(extractor=extractor, policy=policy)
        assert [target.should_save_reference(depth) for depth in (1, 2, 3)] == expected

    def test_cascade_all(self, store, extractor):
        third = Node(label="third")
        second = Node(label="second", next=third)
        first = Node(label="first", next=second)
        ReferenceHandler(store, extractor, SavePolicy.CASCADE_ALL).save_references(first)
        assert first.id is None
        assert second.id is not None
        assert third.id is not None
        assert store.documents[("Node", second.id)]["next"] == third.id

    def test_cascade_fills_generated_values(self, store, extractor):
        ticket = Ticket(subject="printer on fire")
        assignment = Assignment(owner="ann", ticket=ticket)
        ReferenceHandler(store, extractor).save_references(assignment)
        assert ticket.number == 1
        assert ticket.token is not None
        assert ticket.id is not None
        assert store.counters == {"values_Ticket": 1}
        assert store.documents[("Ticket", ticket.id)]["number"] == 1

    def test_cascade_direct(self, store, extractor):
        third = Node(label="third")
        second = Node(label="second", next=third)
        first = Node(label="first", next=second)
        ReferenceHandler(store, extractor, SavePolicy.CASCADE_DIRECT).save_references(first)
        assert second.id is not None
        assert third.id is None

    def test_no_cascade(self, store, extractor):
        second = Node(label="second")
        first = Node(label="first", next=second)
        ReferenceHandler(store, extractor, SavePolicy.NO_CASCADE).save_references(first)
        assert second.id is None
        assert store.documents == {}

    def test_cascade_cycle_terminates(self, store, extractor):
        author = Author(name="Ann")
        book = Book(title="Dune", author=author)
        author.favorite_book = book
        ReferenceHandler(store, extractor).save_references(author)
        assert book.id is not None
        assert author.id is None
        assert len(store.documents) == 1

    def test_cascade_needs_store(self, extractor):
        target = ReferenceHandler(extractor=extractor)
        with pytest.raises(ConfigurationError):
            target.save_references(Node(label="first", next=Node(label="second")))
