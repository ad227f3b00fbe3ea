"""
Active ingredient normalization.

Every ingredient name that is persisted (medication catalogue, allergy
records) or compared (allergy cross-check) goes through
normalize_ingredient() so that "Dipirona Sódica", "  dipirona   sodica " and
"DIPIRONA SÓDICA" all compare equal.

Pipeline:
1. trim surrounding whitespace
2. lowercase
3. NFD decomposition, combining marks dropped (á -> a, ç -> c)
4. anything outside [a-z0-9] and whitespace removed
5. whitespace runs collapsed to a single space
6. trim again
"""
import re
import unicodedata


_DISALLOWED_CHARS = re.compile(r'[^a-z0-9\s]')
_WHITESPACE_RUN = re.compile(r'\s+')


def normalize_ingredient(raw):
    """
    Return the canonical form of an ingredient name.

    Total: non-string or empty input yields an empty string.
    Idempotent: normalize_ingredient(normalize_ingredient(x)) == normalize_ingredient(x).

    Examples:
        >>> normalize_ingredient('Dipirona Sódica')
        'dipirona sodica'
        >>> normalize_ingredient('  IBUPROFENO  ')
        'ibuprofeno'
        >>> normalize_ingredient(None)
        ''
    """
    if not isinstance(raw, str) or not raw:
        return ''

    value = raw.strip().lower()
    decomposed = unicodedata.normalize('NFD', value)
    value = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    value = _DISALLOWED_CHARS.sub('', value)
    value = _WHITESPACE_RUN.sub(' ', value)
    return value.strip()


def is_same_ingredient(a, b):
    """Two names denote the same ingredient iff their normalized forms are equal."""
    return normalize_ingredient(a) == normalize_ingredient(b)


def ingredient_in_list(ingredient, candidates):
    """True if any of candidates is the same ingredient as ingredient."""
    target = normalize_ingredient(ingredient)
    if not target:
        return False
    return any(normalize_ingredient(candidate) == target for candidate in candidates)
