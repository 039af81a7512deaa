"""
Parse BibTeX (.bib) text into Citation records.

Best-effort pattern matching, not a full BibTeX grammar. Malformed blocks
are skipped and reported; they never produce a partial citation.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from refmirror.errors import IOFailure, ParseFailure
from refmirror.models import DEFAULT_TITLE, Citation, Visibility, now_seconds


logger = logging.getLogger(__name__)

# Each chunk runs from one @type{ to the next (or end of input)
ENTRY_PATTERN = re.compile(
    r'@(\w+)\s*{\s*([^,\s]+?)\s*,(.*?)(?=@\w+\s*{|$)',
    re.DOTALL,
)

# Entry body closes on a brace in the first column; indented braces belong to values
BODY_PATTERN = re.compile(r'^(.*?)\n}', re.DOTALL)

# name = {value}, value may hold one level of nested braces; \X escapes are one unit
FIELD_PATTERN = re.compile(r'(\w+)\s*=\s*{((?:\\.|[^{}\\]|{(?:\\.|[^{}\\])*})*)}')

UNESCAPE_PATTERN = re.compile(r'\\([\\{}&%$#_^~])|[{}]')

NON_ENTRY_TYPES = {'comment', 'string', 'preamble'}


@dataclass
class ParseReport:
    """Outcome of parsing a BibTeX document."""

    citations: List[Citation] = field(default_factory=list)
    failures: List[ParseFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.citations) + len(self.failures)


def _unescape(value: str) -> str:
    """Undo backslash escapes and drop bare grouping braces."""
    return UNESCAPE_PATTERN.sub(lambda m: m.group(1) or '', value)


def _parse_fields(fields_str: str) -> Dict[str, str]:
    """Parse BibTeX field key-value pairs (lower-cased names)."""
    fields = {}
    for match in FIELD_PATTERN.finditer(fields_str):
        fields[match.group(1).lower()] = _unescape(match.group(2)).strip()
    return fields


def parse_authors(author_str: str) -> List[str]:
    """
    Split a BibTeX author list into display names.

    'Last, First' chunks are reordered to 'First Last'; anything else
    is kept as written.
    """
    authors = []
    for chunk in author_str.split(' and '):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = [part.strip() for part in chunk.split(',')]
        if len(parts) == 2:
            chunk = f"{parts[1]} {parts[0]}".strip()
        authors.append(chunk)
    return authors


def _parse_year(year_str: Optional[str]) -> Optional[int]:
    if not year_str:
        return None
    match = re.match(r'\s*(\d+)', year_str)
    return int(match.group(1)) if match else None


def _to_citation(citekey: str, fields: Dict[str, str], stamp: int) -> Citation:
    return Citation(
        id=citekey,
        title=fields.get('title') or DEFAULT_TITLE,
        authors=parse_authors(fields.get('author', '')),
        year=_parse_year(fields.get('year')),
        container=fields.get('journal') or fields.get('booktitle') or None,
        doi=fields.get('doi') or None,
        url=fields.get('url') or None,
        tags=[],
        visibility=Visibility.PRIVATE,
        created_at=stamp,
        updated_at=stamp,
    )


def parse_bibtex_report(bib_content: str) -> ParseReport:
    """
    Parse BibTeX content, keeping track of skipped blocks.

    Args:
        bib_content: BibTeX file content as string

    Returns:
        ParseReport with parsed citations and per-block failures
    """
    report = ParseReport()
    stamp = now_seconds()

    for match in ENTRY_PATTERN.finditer(bib_content):
        entry_type = match.group(1).lower()
        citekey = match.group(2).strip()
        if entry_type in NON_ENTRY_TYPES:
            continue

        body = BODY_PATTERN.match(match.group(3))
        if body is None:
            failure = ParseFailure(f"Unterminated entry '{citekey}'", match.group(0))
        else:
            fields = _parse_fields(body.group(1))
            if fields:
                report.citations.append(_to_citation(citekey, fields, stamp))
                continue
            failure = ParseFailure(f"No fields found in entry '{citekey}'", match.group(0))

        logger.warning("Skipping BibTeX block: %s", failure)
        report.failures.append(failure)

    return report


def parse_bibtex(bib_content: str) -> List[Citation]:
    """
    Parse BibTeX content into citations.

    Imported citations are always private and carry no tags.

    Args:
        bib_content: BibTeX file content as string

    Returns:
        List of Citation objects (malformed blocks skipped)
    """
    return parse_bibtex_report(bib_content).citations


def read_bib_file(file_path: Union[str, Path]) -> ParseReport:
    """
    Read and parse a UTF-8 BibTeX file.

    Raises:
        IOFailure: If the file cannot be read
    """
    path = Path(file_path)
    try:
        content = path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise IOFailure(f"Cannot read BibTeX file {path}: {e}") from e
    return parse_bibtex_report(content)
