"""Name normalization utilities for player matching.

Handles common variations between the provider roster and the catalog:
- Suffixes: "Jr.", "Sr.", "III", "IV", "II"
- Punctuation: "D.J. Moore" → "dj moore"
- Accents: "Sebastián Janikowski" → "sebastian janikowski"
- Case: "PATRICK MAHOMES" → "patrick mahomes"
- Extra spaces: "Tom   Brady" → "tom brady"
"""
import re
import unicodedata
from typing import Optional


# Common name suffixes that should be removed for comparison
SUFFIXES = {
    'jr', 'sr', 'iii', 'iv', 'ii', 'v', 'vi', 'vii', 'viii', 'ix',
}

# Position spellings that mean the same roster slot
POSITION_ALIASES = {
    'HB': 'RB',
    'PK': 'K',
    'DST': 'DEF',
    'D/ST': 'DEF',
    'D': 'DEF',
    'FL': 'WR',
    'SE': 'WR',
}


def normalize(name: str) -> str:
    """
    Normalize a name for comparison by removing variations.

    Steps:
    1. Remove common suffixes (Jr, Sr, III, etc.)
    2. Normalize unicode characters (accents)
    3. Convert to lowercase
    4. Remove punctuation (but keep letters)
    5. Remove extra whitespace

    Args:
        name: The name to normalize

    Returns:
        Normalized name string

    Examples:
        >>> normalize("D.J. Moore")
        'dj moore'
        >>> normalize("Odell Beckham Jr.")
        'odell beckham'
        >>> normalize("T. Brady")
        't brady'
    """
    if not name:
        return ""

    name = _remove_suffixes(name)
    name = _normalize_unicode(name)
    name = name.lower()
    name = re.sub(r'[^\w\s]', '', name)
    name = ' '.join(name.split())

    return name


def _remove_suffixes(name: str) -> str:
    """Remove a trailing suffix (Jr, Sr, II, III, ...) from a name."""
    parts = name.split()

    if len(parts) > 1 and parts[-1].lower().replace('.', '') in SUFFIXES:
        return ' '.join(parts[:-1])

    return name


def extract_suffix(name: str) -> str:
    """
    Extract the suffix from a name if present.

    Examples:
        >>> extract_suffix("Odell Beckham Jr.")
        'jr'
        >>> extract_suffix("Patrick Mahomes II")
        'ii'
        >>> extract_suffix("Travis Kelce")
        ''
    """
    if not name:
        return ""

    parts = name.split()

    if len(parts) > 1 and parts[-1].lower().replace('.', '') in SUFFIXES:
        return parts[-1].lower().replace('.', '')

    return ""


def _normalize_unicode(name: str) -> str:
    """Remove accents and diacritics ('á' → 'a', 'ñ' → 'n')."""
    normalized = unicodedata.normalize('NFD', name)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def normalize_team(team: Optional[str]) -> str:
    """Upper-case, trimmed team abbreviation ('' when missing)."""
    if not team:
        return ""
    return team.strip().upper()


def normalize_position(position: Optional[str]) -> str:
    """Upper-case position with equivalent spellings folded together."""
    if not position:
        return ""
    position = position.strip().upper()
    return POSITION_ALIASES.get(position, position)


def are_names_equal(name1: str, name2: str) -> bool:
    """Check if two names are equal after normalization."""
    norm1 = normalize(name1)
    return bool(norm1) and norm1 == normalize(name2)


def extract_player_name_parts(name: str) -> tuple[str, str]:
    """
    Split a player name into first and last name.

    Handles multi-word last names:
    - "Travis Kelce" → ("Travis", "Kelce")
    - "Amon-Ra St. Brown" → ("Amon-Ra", "St. Brown")
    - "Odell Beckham Jr." → ("Odell", "Beckham")

    Args:
        name: Full player name

    Returns:
        Tuple of (first_name, last_name)
    """
    parts = _remove_suffixes(name).split()

    if not parts:
        return ("", "")

    if len(parts) == 1:
        return (parts[0], "")

    return (parts[0], ' '.join(parts[1:]))
