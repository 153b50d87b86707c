"""Canonical text form shared by hashing and tokenization."""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any, Dict, Optional

from .errors import NormalizationError

logger = logging.getLogger(__name__)

# Harakat/tashkeel, superscript alef and Quranic annotation marks
_ARABIC_DIACRITICS = "\u064B-\u065F\u0670\u06D6-\u06ED"
# Tatweel, zero-width and bidi controls, BOM, NUL
_INVISIBLES = "\u0640\u200B-\u200F\u202A-\u202E\u2066-\u2069\uFEFF\x00"
_STRIP_RE = re.compile(f"[{_ARABIC_DIACRITICS}{_INVISIBLES}]")

# Mathematical operators and symbols (+ - = < > . , : % ^ etc.) are kept
_PUNCTUATION_RE = re.compile(r"[،؛؟!?\"'«»“”‘’`()\[\]{}]")

_WHITESPACE_RE = re.compile(r"\s+")
_OPERATOR_SPACING_RE = re.compile(r" ?([+\-−×÷*/=≠<>≤≥±∓^√]) ?")

_ASCII_DIGITS = "0123456789"
_ARABIC_INDIC_DIGITS = "٠١٢٣٤٥٦٧٨٩"
_PERSIAN_DIGITS = "۰۱۲۳۴۵۶۷۸۹"

_DIGIT_TABLES: Dict[str, Optional[Dict[int, int]]] = {
    "arabic-indic": str.maketrans(
        _ASCII_DIGITS + _PERSIAN_DIGITS, _ARABIC_INDIC_DIGITS * 2
    ),
    "western": str.maketrans(
        _ARABIC_INDIC_DIGITS + _PERSIAN_DIGITS, _ASCII_DIGITS * 2
    ),
    "none": None,
}


def coerce_text(value: Any) -> str:
    """Return ``value`` as well-formed text, replacing what cannot be decoded."""

    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Item text is not valid UTF-8, decoding lossily")
            return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, str):
        # lone surrogates cannot be hashed as UTF-8
        return value.encode("utf-8", errors="replace").decode("utf-8")
    raise NormalizationError(type(value).__name__)


class Normalizer:
    """Converts raw item text into its comparable canonical form."""

    def __init__(self, digit_style: str = "arabic-indic"):
        if digit_style not in _DIGIT_TABLES:
            raise ValueError(
                f"digit_style must be one of {sorted(_DIGIT_TABLES)}, got '{digit_style}'"
            )
        self.digit_style = digit_style
        self._digit_table = _DIGIT_TABLES[digit_style]

    def normalize(self, raw_text: Any) -> str:
        # Marks go before composition: NFC folds alef + madda/hamza into one letter
        text = _STRIP_RE.sub("", coerce_text(raw_text))
        text = unicodedata.normalize("NFC", text)
        if self._digit_table is not None:
            text = text.translate(self._digit_table)
        text = _PUNCTUATION_RE.sub("", text)
        text = _WHITESPACE_RE.sub(" ", text).strip()
        text = _OPERATOR_SPACING_RE.sub(r"\1", text)
        return unicodedata.normalize("NFC", text.casefold())

    __call__ = normalize


_default_normalizer = Normalizer()


def normalize(raw_text: Any) -> str:
    """Normalize with the default (Arabic-Indic digits) settings."""
    return _default_normalizer.normalize(raw_text)


__all__ = ["Normalizer", "coerce_text", "normalize"]
