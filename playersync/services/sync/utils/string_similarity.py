"""String similarity signals used by the player matcher.

All functions expect names already passed through name_normalizer.normalize().

- levenshtein_similarity: 1 - edit_distance / max(len(a), len(b))
- phonetic_match: Soundex agreement on first and last name tokens
- is_name_variation: first names are nickname-equivalent, rest identical
"""
from typing import Dict, FrozenSet, Set

import jellyfish
from rapidfuzz.distance import Levenshtein


# Formal first name → common short forms
NICKNAMES: Dict[str, Set[str]] = {
    'anthony': {'tony'},
    'benjamin': {'ben', 'benny'},
    'christopher': {'chris', 'kit'},
    'daniel': {'dan', 'danny'},
    'david': {'dave', 'davey'},
    'edward': {'ed', 'eddie', 'ted'},
    'eugene': {'gene'},
    'frederick': {'fred', 'freddy'},
    'gregory': {'greg'},
    'james': {'jim', 'jimmy', 'jamie'},
    'jeffrey': {'jeff'},
    'joseph': {'joe', 'joey'},
    'joshua': {'josh'},
    'kenneth': {'ken', 'kenny'},
    'matthew': {'matt'},
    'michael': {'mike', 'mickey'},
    'nicholas': {'nick', 'nicky'},
    'patrick': {'pat', 'paddy'},
    'richard': {'rick', 'ricky', 'dick'},
    'robert': {'rob', 'bob', 'bobby'},
    'stephen': {'steve', 'stevie'},
    'theodore': {'ted', 'teddy'},
    'thomas': {'tom', 'tommy'},
    'william': {'will', 'bill', 'billy'},
    'zachary': {'zach'},
}


def _build_groups() -> Dict[str, FrozenSet[str]]:
    groups: Dict[str, Set[str]] = {}
    for formal, shorts in NICKNAMES.items():
        for name in {formal} | shorts:
            groups.setdefault(name, set()).add(formal)
    return {name: frozenset(formals) for name, formals in groups.items()}


# Any known first name → the formal names it can stand for
_FORMAL_NAMES = _build_groups()


def levenshtein_similarity(a: str, b: str) -> float:
    """Normalized edit similarity in [0, 1]; 1.0 for two empty strings."""
    return Levenshtein.normalized_similarity(a, b)


def soundex(word: str) -> str:
    """Soundex code of a single token ('' for empty input)."""
    if not word:
        return ""
    return jellyfish.soundex(word)


def phonetic_match(a: str, b: str) -> bool:
    """
    True when both names have at least two tokens and their first and last
    tokens share Soundex codes, but the names are not identical.

    Examples:
        >>> phonetic_match("jon smith", "john smyth")
        True
        >>> phonetic_match("t brady", "tom brady")
        False
    """
    if a == b:
        return False
    a_parts, b_parts = a.split(), b.split()
    if len(a_parts) < 2 or len(b_parts) < 2:
        return False
    return (
        soundex(a_parts[0]) == soundex(b_parts[0])
        and soundex(a_parts[-1]) == soundex(b_parts[-1])
    )


def are_nicknames(first_a: str, first_b: str) -> bool:
    """True when two different first names are known variants of one name."""
    if not first_a or not first_b or first_a == first_b:
        return False
    formals_a = _FORMAL_NAMES.get(first_a)
    formals_b = _FORMAL_NAMES.get(first_b)
    if not formals_a or not formals_b:
        return False
    return bool(formals_a & formals_b)


def is_name_variation(a: str, b: str) -> bool:
    """
    True when first names are nickname-equivalent and the rest matches.

    Examples:
        >>> is_name_variation("pat mahomes", "patrick mahomes")
        True
        >>> is_name_variation("tom brady", "tom brady")
        False
    """
    a_parts, b_parts = a.split(), b.split()
    if len(a_parts) < 2 or len(b_parts) < 2:
        return False
    if a_parts[1:] != b_parts[1:]:
        return False
    return are_nicknames(a_parts[0], b_parts[0])
