"""
BibTeX interchange for the citation library.

Supports:
- Best-effort parsing of .bib text into private citations
- Export with derived citation keys and escaped field values
"""

from .keys import citation_key
from .parser import ParseReport, parse_bibtex, parse_bibtex_report, read_bib_file
from .formatter import escape_bibtex, export_bibtex, to_entry, write_bib_file

__all__ = [
    'citation_key',
    'ParseReport',
    'parse_bibtex',
    'parse_bibtex_report',
    'read_bib_file',
    'escape_bibtex',
    'export_bibtex',
    'to_entry',
    'write_bib_file',
]
