"""Core utilities: entry ordering, filtering, and archive member checks."""

from __future__ import annotations

import fnmatch
import re
from typing import Callable, Dict, Iterable, List, Sequence, Tuple, Union

ORDER_LEXICOGRAPHIC = "lexicographic"
ORDER_NATURAL = "natural"

_DIGITS = re.compile(r"([0-9]+)")


def natural_key(name: str) -> Tuple[Tuple[Tuple[int, Union[int, str]], ...], str]:
    """Sort key comparing digit runs as integers and text case-insensitively.

    The raw name is appended so two names that only differ in case or in
    zero padding still compare in a fixed order.

    >>> sorted(['10.jpg', '2.jpg', '1.jpg'], key=natural_key)
    ['1.jpg', '2.jpg', '10.jpg']
    >>> sorted(['p2.png', 'P1.png', 'p01.png'], key=natural_key)
    ['P1.png', 'p01.png', 'p2.png']
    """
    parts = []
    for chunk in _DIGITS.split(name):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk.lower()))
    return tuple(parts), name


def lexicographic_key(name: str) -> str:
    """Plain codepoint order, the inherited default.

    >>> sorted(['10.jpg', '2.jpg', '1.jpg'], key=lexicographic_key)
    ['1.jpg', '10.jpg', '2.jpg']
    """
    return name


ORDERINGS: Dict[str, Callable[[str], object]] = {
    ORDER_LEXICOGRAPHIC: lexicographic_key,
    ORDER_NATURAL: natural_key,
}


def sort_entries(names: Iterable[str], ordering: str = ORDER_LEXICOGRAPHIC) -> List[str]:
    """Return `names` sorted with the named ordering strategy.

    >>> sort_entries(['003.jpg', '001.jpg', '002.jpg'])
    ['001.jpg', '002.jpg', '003.jpg']
    >>> sort_entries(['b10', 'b9'], 'natural')
    ['b9', 'b10']

    Raises ValueError for an unknown strategy.
    """
    try:
        key = ORDERINGS[ordering]
    except KeyError:
        raise ValueError(
            f"unknown ordering {ordering!r} (expected one of: {', '.join(ORDERINGS)})"
        )
    return sorted(names, key=key)


def filter_entries(names: Iterable[str], exclude: Sequence[str] = ()) -> List[str]:
    """Drop every name matching one of the `exclude` glob patterns.

    >>> filter_entries(['001.jpg', 'ComicInfo.xml'], ['comicinfo.xml'])
    ['001.jpg']
    >>> filter_entries(['001.jpg', 'notes.txt'])
    ['001.jpg', 'notes.txt']
    """
    if not exclude:
        return list(names)
    pats = [p.lower() for p in exclude]
    return [n for n in names if not any(fnmatch.fnmatchcase(n.lower(), p) for p in pats)]


def is_unsafe_member(member: str) -> bool:
    """True when an archive member would land outside the extraction dir.

    >>> is_unsafe_member('001.jpg')
    False
    >>> is_unsafe_member('../evil.txt')
    True
    >>> is_unsafe_member('/etc/passwd')
    True
    >>> is_unsafe_member('C:\\\\boot.ini')
    True
    """
    normalized = member.replace("\\", "/")
    if normalized.startswith("/"):
        return True
    if re.match(r"^[A-Za-z]:", normalized):
        return True
    return ".." in normalized.split("/")


def has_duplicate_names(names: Iterable[str]) -> bool:
    """
    >>> has_duplicate_names(['a', 'b'])
    False
    >>> has_duplicate_names(['a', 'b', 'a'])
    True
    """
    seen = set()
    for n in names:
        if n in seen:
            return True
        seen.add(n)
    return False
