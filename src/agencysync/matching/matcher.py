"""Name normalization and similarity scoring for entity resolution.

Pure functions, no I/O. Two entity names are compared after normalization:

- identical normalized names score 1.0
- one normalized name containing the other scores 0.95
- anything else gets the Jaro-Winkler similarity of the normalized names

Examples:
    >>> normalize_company_name("Acme Pty Ltd")
    'acme'
    >>> similarity_score("Northwind Trading Co", "Northwind")
    0.95
"""
import re

EXACT_SCORE = 1.0
CONTAINMENT_SCORE = 0.95

# Corporate and country qualifiers, matched as whole trailing words after
# punctuation has been removed ("Pty. Ltd." is seen as "pty ltd").
COMPANY_SUFFIXES = (
    "pty ltd",
    "ltd",
    "limited",
    "inc",
    "incorporated",
    "llc",
    "corp",
    "corporation",
    "co",
    "company",
    "group",
    "holdings",
    "australia",
    "au",
)

_SUFFIX_RE = re.compile(
    r"\s+(?:" + "|".join(re.escape(s) for s in COMPANY_SUFFIXES) + r")$"
)
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_company_name(name: str) -> str:
    """
    Normalize an organization name for comparison.

    Lowercases, strips punctuation, collapses whitespace, then removes
    trailing corporate suffixes until none is left, so
    "Acme Holdings Pty. Ltd." becomes "acme". A bare suffix ("Group") is
    kept because there is nothing before it.

    Idempotent: normalizing an already-normalized name returns it unchanged.
    """
    if not name:
        return ""
    normalized = _PUNCTUATION_RE.sub("", name.lower())
    normalized = _WHITESPACE_RE.sub(" ", normalized).strip()
    while True:
        stripped = _SUFFIX_RE.sub("", normalized)
        if stripped == normalized:
            return normalized
        normalized = stripped


def normalize_person_name(name: str) -> str:
    """Lowercase and collapse whitespace. Punctuation is kept ("O'Brien")."""
    if not name:
        return ""
    return _WHITESPACE_RE.sub(" ", name.lower()).strip()


def jaro_winkler(s1: str, s2: str) -> float:
    """
    Jaro-Winkler similarity in [0, 1], 1 meaning identical.

    Characters match when equal and no further apart than
    max(len(longer) // 2 - 1, 0). The Jaro score is boosted by 0.1 per
    shared prefix character (up to 4), scaled by (1 - jaro).
    """
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    match_window = max(max(len(s1), len(s2)) // 2 - 1, 0)
    s1_matches = [False] * len(s1)
    s2_matches = [False] * len(s2)

    matches = 0
    for i, ch in enumerate(s1):
        start = max(0, i - match_window)
        end = min(i + match_window + 1, len(s2))
        for j in range(start, end):
            if s2_matches[j] or s2[j] != ch:
                continue
            s1_matches[i] = True
            s2_matches[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, ch in enumerate(s1):
        if not s1_matches[i]:
            continue
        while not s2_matches[k]:
            k += 1
        if ch != s2[k]:
            transpositions += 1
        k += 1

    jaro = (
        matches / len(s1)
        + matches / len(s2)
        + (matches - transpositions / 2) / matches
    ) / 3

    prefix = 0
    for a, b in zip(s1[:4], s2[:4]):
        if a != b:
            break
        prefix += 1

    return jaro + prefix * 0.1 * (1 - jaro)


def is_exact_match(a: str, b: str) -> bool:
    """True when two organization names normalize to the same string."""
    return normalize_company_name(a) == normalize_company_name(b)


def similarity_score(a: str, b: str, kind: str = "company") -> float:
    """
    Score two entity names.

    Args:
        a, b: Raw display names.
        kind: "company" for organizations, "person" for people.

    Returns:
        Similarity in [0, 1].
    """
    if kind == "company":
        normalize = normalize_company_name
    elif kind == "person":
        normalize = normalize_person_name
    else:
        raise ValueError(f"Unknown name kind: {kind!r}")

    na = normalize(a)
    nb = normalize(b)

    if na == nb:
        return EXACT_SCORE

    # An empty name is a substring of everything; never treat that as a match
    if na and nb and (na in nb or nb in na):
        return CONTAINMENT_SCORE

    return jaro_winkler(na, nb)
