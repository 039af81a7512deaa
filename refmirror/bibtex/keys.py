"""Citation key derivation shared by the BibTeX exporter and the CLI."""

import re
from typing import List, Optional


STOP_WORDS = frozenset({'a', 'an', 'the', 'on', 'in', 'at', 'to', 'for', 'of'})

_NON_ALNUM = re.compile(r'[^0-9A-Za-z]')


def last_name_of(author: str) -> str:
    """Last whitespace-separated token of a display name."""
    tokens = author.split()
    return tokens[-1] if tokens else 'Unknown'


def first_significant_word(title: str) -> str:
    """First title word not in the stop-list, else the first word, else 'untitled'."""
    words = title.split()
    for word in words:
        if word.lower() not in STOP_WORDS:
            return word
    return words[0] if words else 'untitled'


def citation_key(authors: List[str], year: Optional[int], title: str) -> str:
    """
    Derive a deterministic citation key.

    Format: first author's last name + year (or 'nd') + first significant
    title word, stripped of non-alphanumerics and lower-cased.

    Args:
        authors: Ordered author display names
        year: Publication year, if known
        title: Citation title

    Returns:
        Citation key such as 'doe2020great'
    """
    first_author = authors[0] if authors else 'Unknown'
    year_part = str(year) if year is not None else 'nd'
    raw = f"{last_name_of(first_author)}{year_part}{first_significant_word(title or '')}"
    return _NON_ALNUM.sub('', raw).lower()
