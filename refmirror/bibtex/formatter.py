"""
Export Citation records as BibTeX.

Intentionally lossy: parse(export(x)) preserves title, authors, year,
container, doi and url, but not entry types, ids or visibility.
"""

import re
from pathlib import Path
from typing import Iterable, List, Union

from refmirror.bibtex.keys import citation_key
from refmirror.errors import IOFailure
from refmirror.models import BibTeXEntry, Citation


ESCAPE_PATTERN = re.compile(r'([\\{}&%$#_^~])')

CONTAINER_FIELDS = {
    'article': 'journal',
    'inproceedings': 'booktitle',
}


def escape_bibtex(text: str) -> str:
    """Backslash-escape BibTeX special characters."""
    return ESCAPE_PATTERN.sub(r'\\\1', text)


def format_author(author: str) -> str:
    """Convert 'First Last' to 'Last, First'; single-token names are unchanged."""
    parts = author.split()
    if len(parts) >= 2:
        return f"{parts[-1]}, {' '.join(parts[:-1])}"
    return author


def entry_type_for(citation: Citation) -> str:
    """Pick the BibTeX entry type from the container title."""
    if citation.container:
        if 'proceedings' in citation.container.lower():
            return 'inproceedings'
        return 'article'
    return 'misc'


def to_entry(citation: Citation) -> BibTeXEntry:
    """
    Map a citation to a BibTeX entry with unescaped, ordered fields.

    Args:
        citation: Citation to convert

    Returns:
        BibTeXEntry ready for rendering
    """
    entry_type = entry_type_for(citation)
    fields = {'title': citation.title}

    if citation.authors:
        fields['author'] = ' and '.join(format_author(a) for a in citation.authors)
    if citation.year is not None:
        fields['year'] = str(citation.year)
    if citation.container:
        fields[CONTAINER_FIELDS.get(entry_type, 'howpublished')] = citation.container
    if citation.doi:
        fields['doi'] = citation.doi
    if citation.url:
        fields['url'] = citation.url
    if citation.tags:
        fields['keywords'] = ', '.join(citation.tags)

    return BibTeXEntry(
        entry_type=entry_type,
        citation_key=citation_key(citation.authors, citation.year, citation.title),
        fields=fields,
    )


def render_entry(entry: BibTeXEntry) -> str:
    """Render a single entry; the last field carries no trailing comma."""
    lines = [f"  {name} = {{{escape_bibtex(value)}}}" for name, value in entry.fields.items()]
    return f"@{entry.entry_type}{{{entry.citation_key},\n" + ",\n".join(lines) + "\n}\n"


def export_bibtex(citations: Iterable[Citation]) -> str:
    """
    Export citations to BibTeX text.

    Args:
        citations: Citations to export

    Returns:
        BibTeX document, entries separated by a blank line
    """
    return "\n".join(render_entry(to_entry(c)) for c in citations)


def write_bib_file(file_path: Union[str, Path], citations: List[Citation]) -> Path:
    """
    Write citations to a UTF-8 BibTeX file.

    Raises:
        IOFailure: If the file cannot be written
    """
    path = Path(file_path)
    try:
        path.write_text(export_bibtex(citations), encoding='utf-8')
    except OSError as e:
        raise IOFailure(f"Cannot write BibTeX file {path}: {e}") from e
    return path
