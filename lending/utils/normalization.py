import re
import unicodedata

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_NON_ISBN = re.compile(r"[^0-9xX]")


def normalize_text(value: str) -> str:
    """Canonical comparison key for titles and authors.

    NFKD-decompose, drop diacritics, lowercase, collapse every run of
    characters outside ``[a-z0-9]`` to one space and trim.
    """
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = _COMBINING_MARKS.sub("", decomposed).lower()
    return _NON_ALNUM.sub(" ", stripped).strip()


def normalize_isbn(value: str) -> str:
    """Keep only digits and X, uppercased."""
    return _NON_ISBN.sub("", value).upper()
