"""Version string comparison.

Versions are dot-separated numeric components followed by an optional
qualifier: ``3.4.5``, ``v2.0``, ``1.2.0-beta1``, ``3.1rc2``, ``2.5.0 Stable``.

Comparison rules:

- numeric components compare pairwise, left to right, as integers
  (``3.4.10 > 3.4.9``); a missing trailing component counts as zero
  (``3.4 == 3.4.0``);
- with equal numerics, a version without qualifier is greater than one with a
  qualifier (``1.0 > 1.0-rc1``); two qualifiers compare lexically;
- when either side does not parse (``unknown``, ``beta-3``, empty), the two
  stripped strings are compared lexically (case-folded first, raw second) and
  the result is flagged ``low_confidence``. The fallback is a pure function of
  the two strings, so repeated calls always agree.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

MAX_VERSION_LENGTH = 64

_VERSION_RE = re.compile(
    r"^[vV]?(?P<numbers>\d+(?:\.\d+)*)"
    r"(?:[-+_~. ]?(?P<qualifier>[A-Za-z0-9][A-Za-z0-9.+_~ -]*))?$"
)


class VersionParseError(ValueError):
    """Raised when a string is not a dotted numeric version."""

    pass


class Ordering(str, Enum):
    """Result of comparing two versions."""
    LESS = "less"
    EQUAL = "equal"
    GREATER = "greater"


@dataclass(frozen=True)
class ParsedVersion:
    """A version split into numeric components and qualifier."""
    numbers: tuple[int, ...]
    qualifier: str | None = None


@dataclass(frozen=True)
class VersionComparison:
    """Ordering of ``a`` relative to ``b``."""
    order: Ordering
    low_confidence: bool = False

    @property
    def less(self) -> bool:
        return self.order is Ordering.LESS

    @property
    def equal(self) -> bool:
        return self.order is Ordering.EQUAL

    @property
    def greater(self) -> bool:
        return self.order is Ordering.GREATER


@lru_cache(maxsize=4096)
def parse_version(text: str) -> ParsedVersion:
    """Parse a version string.

    Args:
        text: Raw version string

    Returns:
        ParsedVersion with integer components and an optional qualifier

    Raises:
        VersionParseError: If the string has no leading numeric component
    """
    if not isinstance(text, str):
        raise VersionParseError(f"Not a version string: {text!r}")
    stripped = text.strip()
    match = _VERSION_RE.match(stripped)
    if not match:
        raise VersionParseError(f"Unparseable version: {text!r}")

    numbers = tuple(int(part) for part in match.group("numbers").split("."))
    qualifier = match.group("qualifier")
    if qualifier is not None:
        qualifier = qualifier.strip() or None
    return ParsedVersion(numbers=numbers, qualifier=qualifier)


def is_plausible_version(text: str | None) -> bool:
    """Check whether extracted text looks like a real version."""
    if not text or len(text.strip()) > MAX_VERSION_LENGTH:
        return False
    try:
        parse_version(text)
    except VersionParseError:
        return False
    return True


def _order(a, b) -> Ordering:
    if a < b:
        return Ordering.LESS
    if a > b:
        return Ordering.GREATER
    return Ordering.EQUAL


def _lexical(a: str, b: str) -> Ordering:
    a, b = a.strip(), b.strip()
    return _order((a.casefold(), a), (b.casefold(), b))


def _compare_parsed(a: ParsedVersion, b: ParsedVersion) -> Ordering:
    width = max(len(a.numbers), len(b.numbers))
    left = a.numbers + (0,) * (width - len(a.numbers))
    right = b.numbers + (0,) * (width - len(b.numbers))
    numeric = _order(left, right)
    if numeric is not Ordering.EQUAL:
        return numeric

    match (a.qualifier, b.qualifier):
        case (None, None):
            return Ordering.EQUAL
        case (None, _):
            return Ordering.GREATER
        case (_, None):
            return Ordering.LESS
        case (qa, qb):
            return _lexical(qa, qb)


def compare(a: str, b: str) -> VersionComparison:
    """Compare two version strings.

    Never raises. Unparseable input is compared lexically and flagged with
    ``low_confidence``.

    Args:
        a: Left version
        b: Right version

    Returns:
        VersionComparison describing ``a`` relative to ``b``
    """
    try:
        left = parse_version(a)
        right = parse_version(b)
    except VersionParseError:
        return VersionComparison(
            order=_lexical(str(a), str(b)),
            low_confidence=True,
        )
    return VersionComparison(order=_compare_parsed(left, right))


class VersionComparator:
    """Callable wrapper around :func:`compare` for injection into matchers."""

    def __call__(self, a: str, b: str) -> VersionComparison:
        return compare(a, b)

    def compare(self, a: str, b: str) -> VersionComparison:
        return compare(a, b)
