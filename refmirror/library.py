"""
Library-level helpers: BibTeX import into a store, search and facets.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from refmirror.audit.logger import AuditLogger
from refmirror.bibtex.parser import parse_bibtex_report
from refmirror.errors import ParseFailure, ValidationFailure
from refmirror.models import Citation, Visibility, new_citation_id, validate_citation
from refmirror.store import BaseLibraryStore


logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    """Partial-success report of a BibTeX import."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    imported: List[Citation] = field(default_factory=list)
    failures: List[Exception] = field(default_factory=list)


def import_bibtex(bib_content: str, store: BaseLibraryStore,
                  audit_logger: Optional[AuditLogger] = None,
                  source: str = "<text>") -> ImportReport:
    """
    Parse BibTeX and append the valid entries to the library.

    Malformed blocks and entries failing validation are counted as failed;
    the rest are saved in a single whole-library write.

    Args:
        bib_content: BibTeX text
        store: Library store to load from and save to
        audit_logger: Optional audit logger
        source: Label for the audit trail

    Returns:
        ImportReport with total/succeeded/failed counts

    Raises:
        IOFailure: If the library cannot be loaded or saved
    """
    parsed = parse_bibtex_report(bib_content)
    report = ImportReport(total=parsed.total)
    report.failures.extend(parsed.failures)
    report.failed = len(parsed.failures)

    library = store.load()
    known_ids = {c.id for c in library}

    for citation in parsed.citations:
        errors = validate_citation(citation)
        if errors:
            logger.warning("Rejecting imported entry %s: %s", citation.id, errors)
            report.failures.append(ValidationFailure(errors))
            report.failed += 1
            continue

        if citation.id in known_ids:
            citation.id = new_citation_id()
        known_ids.add(citation.id)
        report.imported.append(citation)
        report.succeeded += 1

    if report.imported:
        store.save(library + report.imported)

    if audit_logger:
        audit_logger.log_import(source, report.total, report.succeeded, report.failed,
                                parse_failures=sum(isinstance(f, ParseFailure) for f in report.failures))
    return report


def search_citations(citations: Iterable[Citation], query: str = "",
                     authors: Optional[List[str]] = None,
                     year: Optional[int] = None,
                     tags: Optional[List[str]] = None,
                     visibility: Optional[Visibility] = None) -> List[Citation]:
    """
    Filter citations by free text and facets.

    Args:
        citations: Citations to search
        query: Case-insensitive substring of title, an author or the container
        authors: Match if any given name is a substring of any author
        year: Exact year
        tags: Match if the citation carries any of these tags
        visibility: Exact visibility

    Returns:
        Matching citations in input order
    """
    needle = query.lower()
    wanted_authors = [a.lower() for a in authors or []]
    results = []

    for citation in citations:
        if needle:
            haystacks = [citation.title, citation.container or ""] + citation.authors
            if not any(needle in text.lower() for text in haystacks):
                continue
        if wanted_authors and not any(
            wanted in author.lower() for wanted in wanted_authors for author in citation.authors
        ):
            continue
        if year is not None and citation.year != year:
            continue
        if tags and not any(tag in citation.tags for tag in tags):
            continue
        if visibility is not None and citation.visibility != visibility:
            continue
        results.append(citation)

    return results


def all_tags(citations: Iterable[Citation]) -> List[str]:
    """Sorted unique tags across the library."""
    return sorted({tag for c in citations for tag in c.tags})


def all_authors(citations: Iterable[Citation]) -> List[str]:
    """Sorted unique author names across the library."""
    return sorted({author for c in citations for author in c.authors})
