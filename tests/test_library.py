"""Tests for the library store, BibTeX import and search."""

import json
import pytest
import tempfile
from pathlib import Path

from refmirror.audit.logger import AuditLogger
from refmirror.errors import IOFailure, ParseFailure, ValidationFailure
from refmirror.library import all_authors, all_tags, import_bibtex, search_citations
from refmirror.models import Citation, NetworkRef, Visibility
from refmirror.store import JsonLibraryStore


BIBTEX = """
@article{Doe2023,
  author = {Doe, John and Smith, Jane},
  title = {Machine Learning Fundamentals},
  journal = {AI Research Quarterly},
  year = {2023}
}

@inproceedings{Lewis2020,
  author = {Patrick Lewis},
  title = {Retrieval-Augmented Generation},
  booktitle = {Proceedings of NeurIPS},
  year = {2020}
}

@misc{NoAuthors,
  title = {Anonymous Pamphlet},
  year = {1850}
}
"""


@pytest.fixture
def temp_dir():
    """Create temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def store(temp_dir):
    return JsonLibraryStore(Path(temp_dir) / "library.json")


@pytest.fixture
def library():
    return [
        Citation(id="a", title="Attention Is All You Need", authors=["Ashish Vaswani"],
                 year=2017, container="Proceedings of NeurIPS", tags=["transformers"],
                 visibility=Visibility.PUBLIC),
        Citation(id="b", title="Deep Residual Learning", authors=["Kaiming He", "Jian Sun"],
                 year=2016, container="CVPR", tags=["vision", "cnn"]),
        Citation(id="c", title="BERT", authors=["Jacob Devlin"], year=2019,
                 tags=["transformers", "nlp"]),
    ]


class TestJsonLibraryStore:
    """Tests for whole-library persistence."""

    def test_missing_file_is_empty(self, store):
        assert store.load() == []

    def test_save_and_load(self, store, library):
        library[0].network_ref = NetworkRef("evt1", Visibility.PUBLIC, library[0].content_hash())
        library[1].notes = "Résumé of findings"
        store.save(library)

        loaded = store.load()
        assert [c.id for c in loaded] == ["a", "b", "c"]
        assert loaded[0].network_ref == library[0].network_ref
        assert loaded[1].notes == "Résumé of findings"
        assert loaded[1].visibility is Visibility.PRIVATE

    def test_save_replaces_whole_library(self, store, library):
        store.save(library)
        store.save(library[:1])
        assert [c.id for c in store.load()] == ["a"]

    def test_document_shape(self, store, library):
        store.save(library)
        data = json.loads(store.path.read_text(encoding='utf-8'))
        assert data['version'] == 1
        assert len(data['citations']) == 3

    def test_no_temp_files_left(self, store, library):
        store.save(library)
        assert [p.name for p in store.path.parent.iterdir()] == ["library.json"]

    def test_accepts_plain_list(self, store):
        store.path.write_text(json.dumps([{'id': 'x', 'title': 'T'}]), encoding='utf-8')
        assert store.load()[0].id == "x"

    def test_corrupt_json(self, store):
        store.path.write_text("{not json", encoding='utf-8')
        with pytest.raises(IOFailure):
            store.load()

    def test_corrupt_record(self, store):
        store.path.write_text(json.dumps({'citations': [{'title': 'no id'}]}), encoding='utf-8')
        with pytest.raises(IOFailure):
            store.load()


class TestImportBibtex:
    """Tests for importing BibTeX into a store."""

    def test_partial_success(self, store):
        report = import_bibtex(BIBTEX, store)

        assert report.total == 3
        assert report.succeeded == 2
        assert report.failed == 1
        assert isinstance(report.failures[0], ValidationFailure)
        assert 'authors' in report.failures[0].errors
        assert [c.id for c in store.load()] == ["Doe2023", "Lewis2020"]

    def test_imported_entries_private(self, store):
        import_bibtex(BIBTEX, store)
        assert all(c.visibility is Visibility.PRIVATE for c in store.load())

    def test_parse_failures_counted(self, store):
        broken = "@article{broken,\n  title = {Never closed\n\n"
        report = import_bibtex(broken + BIBTEX, store)

        assert report.total == 4
        assert report.failed == 2
        assert any(isinstance(f, ParseFailure) for f in report.failures)

    def test_id_collision_gets_new_id(self, store):
        import_bibtex(BIBTEX, store)
        report = import_bibtex(BIBTEX, store)

        ids = [c.id for c in store.load()]
        assert len(ids) == 4
        assert len(set(ids)) == 4
        assert all(c.id not in ("Doe2023", "Lewis2020") for c in report.imported)

    def test_nothing_valid_writes_nothing(self, store):
        report = import_bibtex("no entries here", store)
        assert report.total == 0
        assert not store.path.exists()

    def test_audit_event(self, store, temp_dir):
        log_file = Path(temp_dir) / "audit.log"
        import_bibtex(BIBTEX, store, audit_logger=AuditLogger(str(log_file)), source="refs.bib")

        event = json.loads(log_file.read_text().strip())
        assert event['event'] == 'bibtex_import'
        assert event['source'] == 'refs.bib'
        assert (event['total'], event['succeeded'], event['failed']) == (3, 2, 1)
        assert "Machine Learning" not in log_file.read_text()


class TestSearch:
    """Tests for search and facets."""

    def test_query_matches_title_author_container(self, library):
        assert [c.id for c in search_citations(library, "residual")] == ["b"]
        assert [c.id for c in search_citations(library, "devlin")] == ["c"]
        assert [c.id for c in search_citations(library, "neurips")] == ["a"]

    def test_empty_query_returns_all(self, library):
        assert len(search_citations(library)) == 3

    def test_facets(self, library):
        assert [c.id for c in search_citations(library, tags=["transformers"])] == ["a", "c"]
        assert [c.id for c in search_citations(library, year=2016)] == ["b"]
        assert [c.id for c in search_citations(library, authors=["sun"])] == ["b"]
        assert [c.id for c in search_citations(library, visibility=Visibility.PUBLIC)] == ["a"]

    def test_combined_filters(self, library):
        results = search_citations(library, "bert", tags=["nlp"], year=2019)
        assert [c.id for c in results] == ["c"]
        assert search_citations(library, "bert", year=2020) == []

    def test_all_tags(self, library):
        assert all_tags(library) == ["cnn", "nlp", "transformers", "vision"]

    def test_all_authors(self, library):
        assert all_authors(library) == ["Ashish Vaswani", "Jacob Devlin", "Jian Sun", "Kaiming He"]
