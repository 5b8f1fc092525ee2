import re
from typing import Optional

from trigram_search.services.schemas import ValidationReason, ValidationResult

# US QWERTY keys and the characters on the same keys of a Russian ЙЦУКЕН layout
_EN_LAYOUT = "qwertyuiop[]asdfghjkl;'zxcvbnm,./QWERTYUIOP{}ASDFGHJKL:\"ZXCVBNM<>?"
_RU_LAYOUT = "йцукенгшщзхъфывапролджэячсмитьбю.ЙЦУКЕНГШЩЗХЪФЫВАПРОЛДЖЭЯЧСМИТЬБЮ,"
_LAYOUT_TABLE = str.maketrans(_EN_LAYOUT, _RU_LAYOUT)

_TRANSLIT_TABLE = str.maketrans({
    'а': 'a', 'б': 'b', 'в': 'v', 'г': 'g', 'д': 'd', 'е': 'e', 'ё': 'yo',
    'ж': 'zh', 'з': 'z', 'и': 'i', 'й': 'y', 'к': 'k', 'л': 'l', 'м': 'm',
    'н': 'n', 'о': 'o', 'п': 'p', 'р': 'r', 'с': 's', 'т': 't', 'у': 'u',
    'ф': 'f', 'х': 'h', 'ц': 'ts', 'ч': 'ch', 'ш': 'sh', 'щ': 'shch',
    'ъ': '', 'ы': 'y', 'ь': '', 'э': 'e', 'ю': 'yu', 'я': 'ya',
})

# Punctuation run at the end, possibly interleaved with spaces ("a. !")
_TRAILING_PUNCTUATION = re.compile(r'[.,!?;:][\s.,!?;:]*$')
_WHITESPACE = re.compile(r'\s+')
# Latin letters/digits, Cyrillic letters, Arabic script block
_VALID_CHAR = re.compile(r'[a-zA-Z0-9а-яА-ЯёЁ\u0600-\u06FF]')
_LATIN_LAYOUT_ONLY = re.compile(r'^[a-zA-Z0-9\s.,!?;:]+$')


class QueryNormalizer:
    """
    Responsible for normalizing and sanity-checking search queries.
    Ensures that minor variations in input (case, spacing, trailing punctuation)
    yield the same search results and the same cache key.
    """

    @staticmethod
    def normalize(query: Optional[str]) -> str:
        """
        Normalizes the user search query.

        Steps:
        1. Lowercasing: Ensures case-insensitive matching.
        2. Trimming, then dropping trailing punctuation (". , ! ? ; :").
        3. Whitespace cleanup: Collapses runs of whitespace to one space.

        The result is a fixed point: normalize(normalize(q)) == normalize(q).

        Args:
            query (str): Raw user query.

        Returns:
            str: Normalized query.
        """
        if not query:
            return ""

        normalized = query.lower().strip()
        normalized = _TRAILING_PUNCTUATION.sub('', normalized)
        # Stripping punctuation can expose whitespace that preceded it ("a ,")
        normalized = _WHITESPACE.sub(' ', normalized).strip()

        return normalized

    @staticmethod
    def validate(query: Optional[str]) -> ValidationResult:
        """
        Basic validation for search queries.

        Returns:
            ValidationResult: valid=False with a reason of empty, too_short
            (fewer than 2 characters after trimming) or no_valid_chars
            (no Latin, Cyrillic or Arabic letter/digit).
        """
        if not query:
            return ValidationResult(valid=False, reason=ValidationReason.EMPTY)
        if len(query.strip()) < 2:
            return ValidationResult(valid=False, reason=ValidationReason.TOO_SHORT)
        if not _VALID_CHAR.search(query):
            return ValidationResult(valid=False, reason=ValidationReason.NO_VALID_CHARS)
        return ValidationResult(valid=True)

    @staticmethod
    def convert_layout(query: str) -> str:
        """
        Re-types text entered on a US keyboard as if the Russian layout had been
        active, e.g. "vjkbndf" -> "молитва". Case is preserved; characters
        outside the table are left untouched.
        """
        return query.translate(_LAYOUT_TABLE)

    @staticmethod
    def transliterate(text: str) -> str:
        """
        Transliterates Cyrillic characters to their Latin equivalents,
        e.g. "рамадан" -> "ramadan". Useful for cross-script matching.
        """
        return text.lower().translate(_TRANSLIT_TABLE)

    @staticmethod
    def is_latin_layout(query: str) -> bool:
        """True if the query could only have been typed on a Latin layout."""
        return bool(_LATIN_LAYOUT_ONLY.match(query))
