"""Tests for the command line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from refmirror.cli import cli


BIBTEX = """@article{Doe2023,
  author = {Doe, John and Smith, Jane},
  title = {Machine Learning Fundamentals},
  journal = {AI Research Quarterly},
  year = {2023}
}

@misc{NoAuthors,
  title = {Anonymous Pamphlet}
}
"""


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args):
    return runner.invoke(cli, ['--library', 'library.json', *args])


class TestImportExport:
    """Tests for import and export commands."""

    def test_import_reports_counts(self, runner):
        with runner.isolated_filesystem():
            Path('refs.bib').write_text(BIBTEX, encoding='utf-8')
            result = invoke(runner, 'import', 'refs.bib')

            assert result.exit_code == 0
            assert "Imported 1 of 2 references" in result.output
            assert "1 failed" in result.output

            data = json.loads(Path('library.json').read_text(encoding='utf-8'))
            assert [c['id'] for c in data['citations']] == ['Doe2023']

    def test_import_empty_file(self, runner):
        with runner.isolated_filesystem():
            Path('empty.bib').write_text("nothing here", encoding='utf-8')
            result = invoke(runner, 'import', 'empty.bib')

            assert result.exit_code == 0
            assert "No references found" in result.output

    def test_export_to_stdout(self, runner):
        with runner.isolated_filesystem():
            Path('refs.bib').write_text(BIBTEX, encoding='utf-8')
            invoke(runner, 'import', 'refs.bib')
            result = invoke(runner, 'export')

            assert result.exit_code == 0
            assert result.output.startswith("@article{doe2023machine,")
            assert "author = {Doe, John and Smith, Jane}" in result.output

    def test_export_to_file_with_visibility(self, runner):
        with runner.isolated_filesystem():
            Path('refs.bib').write_text(BIBTEX, encoding='utf-8')
            invoke(runner, 'import', 'refs.bib')

            result = invoke(runner, 'export', 'public.bib', '--visibility', 'public')
            assert result.exit_code == 0
            assert "Exported 0 references" in result.output
            assert Path('public.bib').read_text(encoding='utf-8') == ""

    def test_corrupt_library_fails(self, runner):
        with runner.isolated_filesystem():
            Path('library.json').write_text("{broken", encoding='utf-8')
            result = invoke(runner, 'list')

            assert result.exit_code == 1


class TestQueries:
    """Tests for list, search and facet commands."""

    @pytest.fixture
    def populated(self, runner):
        with runner.isolated_filesystem():
            Path('refs.bib').write_text(BIBTEX, encoding='utf-8')
            invoke(runner, 'import', 'refs.bib')
            yield

    def test_list(self, runner, populated):
        result = invoke(runner, 'list')
        assert result.exit_code == 0
        assert "private" in result.output
        assert "unsynced" in result.output
        assert "doe2023machine" in result.output

    def test_list_empty(self, runner):
        with runner.isolated_filesystem():
            result = invoke(runner, 'list')
            assert "Library is empty." in result.output

    def test_search(self, runner, populated):
        result = invoke(runner, 'search', 'machine')
        assert "Doe2023  Machine Learning Fundamentals (2023)" in result.output
        assert "1 match(es)" in result.output

        result = invoke(runner, 'search', '--year', '1999')
        assert "0 match(es)" in result.output

    def test_authors(self, runner, populated):
        result = invoke(runner, 'authors')
        assert result.output.splitlines() == ["Jane Smith", "John Doe"]

    def test_tags_empty_for_imports(self, runner, populated):
        assert invoke(runner, 'tags').output == ""


class TestCitekey:
    """Tests for the citekey command."""

    def test_citekey(self, runner):
        result = runner.invoke(cli, ['citekey', '--title', 'The Great Study',
                                     '--author', 'Jane Doe', '--year', '2020'])
        assert result.exit_code == 0
        assert result.output.strip() == "doe2020great"
