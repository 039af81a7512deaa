"""Tests for the network event codec."""

import json

import pytest

from refmirror.config import EventKinds
from refmirror.crypto import derive_key
from refmirror.errors import AuthenticationFailure, NotPublished
from refmirror.events import (
    PrivateEvent,
    PublicEvent,
    RetractionEvent,
    event_from_dict,
    event_to_dict,
    from_private_event,
    from_public_event,
    to_private_event,
    to_public_event,
    to_retraction,
)
from refmirror.models import Citation, NetworkRef, Visibility


@pytest.fixture(scope="module")
def key():
    return derive_key("identity-for-event-tests")


@pytest.fixture
def citation():
    return Citation(
        id="ref-1",
        title="Retrieval-Augmented Generation",
        authors=["Patrick Lewis", "Ethan Perez"],
        year=2020,
        container="Proceedings of NeurIPS",
        doi="10.5555/3495724.3496517",
        url="https://example.com/rag",
        tags=["nlp", "retrieval"],
        notes="Reviewer 2 was right about the baselines",
        visibility=Visibility.PUBLIC,
        created_at=1700000000,
    )


class TestPublicEvent:
    """Tests for the cleartext encoding."""

    def test_tags_layout(self, citation):
        event = to_public_event(citation, created_at=1700000100)

        assert isinstance(event, PublicEvent)
        assert event.kind == 50000
        assert event.created_at == 1700000100
        assert [list(t) for t in event.tags] == [
            ['title', 'Retrieval-Augmented Generation'],
            ['author', 'Patrick Lewis'],
            ['author', 'Ethan Perez'],
            ['year', '2020'],
            ['journal', 'Proceedings of NeurIPS'],
            ['doi', '10.5555/3495724.3496517'],
            ['url', 'https://example.com/rag'],
            ['t', 'nlp'],
            ['t', 'retrieval'],
            ['client-ref-id', 'ref-1'],
        ]

    def test_notes_never_included(self, citation):
        wire = json.dumps(event_to_dict(to_public_event(citation)))
        assert "Reviewer 2" not in wire

    def test_round_trip(self, citation):
        """Test decode(encode(x)) preserves non-confidential fields."""
        decoded = from_public_event(to_public_event(citation))

        assert decoded.id == citation.id
        assert decoded.title == citation.title
        assert decoded.authors == citation.authors
        assert decoded.year == citation.year
        assert decoded.container == citation.container
        assert decoded.doi == citation.doi
        assert decoded.url == citation.url
        assert set(decoded.tags) == set(citation.tags)
        assert decoded.notes is None

    def test_decode_defaults(self):
        event = PublicEvent(kind=50000, content="", tags=(('year', 'soon'),),
                            created_at=1234, event_id="evt-9")
        decoded = from_public_event(event)

        assert decoded.id == "evt-9"
        assert decoded.title == "Untitled Reference"
        assert decoded.year is None
        assert decoded.visibility is Visibility.PUBLIC
        assert decoded.created_at == decoded.updated_at == 1234
        assert decoded.network_ref.event_id == "evt-9"

    def test_decode_without_any_id(self):
        event = PublicEvent(kind=50000, content="", tags=(), created_at=1)
        with pytest.raises(ValueError):
            from_public_event(event)

    def test_custom_kinds(self, citation):
        kinds = EventKinds(public=30000, private=30001, retraction=5)
        assert to_public_event(citation, kinds).kind == 30000


class TestPrivateEvent:
    """Tests for the encrypted encoding."""

    def test_minimal_tags(self, citation, key):
        citation.visibility = Visibility.PRIVATE
        event = to_private_event(citation, key)

        assert isinstance(event, PrivateEvent)
        assert event.kind == 50001
        assert [list(t) for t in event.tags] == [['client-ref-id', 'ref-1'], ['e-type', 'reference']]

    def test_nothing_leaks_in_cleartext(self, citation, key):
        citation.visibility = Visibility.PRIVATE
        event = to_private_event(citation, key)
        tags_wire = json.dumps([list(t) for t in event.tags])

        for secret in ["Retrieval", "Lewis", "2020", "10.5555", "Reviewer", "nlp"]:
            assert secret not in tags_wire
        assert "Reviewer 2" not in event.content
        assert "Retrieval-Augmented" not in event.content

    def test_round_trip_with_notes(self, citation, key):
        citation.visibility = Visibility.PRIVATE
        event = to_private_event(citation, key)
        decoded = from_private_event(event, key)

        assert decoded.notes == citation.notes
        assert decoded.authors == citation.authors
        assert decoded.visibility is Visibility.PRIVATE

    def test_wrong_key(self, citation, key):
        event = to_private_event(citation, key)
        with pytest.raises(AuthenticationFailure):
            from_private_event(event, derive_key("intruder"))


class TestRetraction:
    """Tests for retraction events."""

    def test_references_network_ref(self, citation):
        citation.network_ref = NetworkRef("abc123", Visibility.PUBLIC, "hash")
        event = to_retraction(citation, "Duplicate entry")

        assert isinstance(event, RetractionEvent)
        assert event.kind == 5
        assert event.content == "Duplicate entry"
        assert event.target_ids == ["abc123"]

    def test_default_reason(self, citation):
        citation.network_ref = NetworkRef("abc123", Visibility.PUBLIC, "hash")
        assert to_retraction(citation).content == "Deleted by user"

    def test_unpublished_fails(self, citation):
        with pytest.raises(NotPublished):
            to_retraction(citation)


class TestWireShape:
    """Tests for dict conversion of events."""

    def test_dispatch_by_kind(self, citation, key):
        for event, variant in [
            (to_public_event(citation), PublicEvent),
            (to_private_event(citation, key), PrivateEvent),
        ]:
            data = event_to_dict(event)
            data['id'] = 'e1'
            decoded = event_from_dict(data)
            assert isinstance(decoded, variant)
            assert decoded.event_id == 'e1'
            assert decoded.tags == event.tags

    def test_retraction_kind(self):
        decoded = event_from_dict({'kind': 5, 'content': 'x', 'tags': [['e', 'a']], 'created_at': 1})
        assert isinstance(decoded, RetractionEvent)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            event_from_dict({'kind': 1, 'content': '', 'tags': [], 'created_at': 0})
