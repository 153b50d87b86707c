"""Tests for item text normalization."""

from __future__ import annotations

import pytest

from src.dedup.errors import NormalizationError
from src.dedup.normalizer import Normalizer, coerce_text, normalize


def test_spacing_around_operators_is_ignored():
    assert normalize("2x + 5 = 13") == normalize("2x+5=13")
    assert normalize("a  <  b") == normalize("a<b")


def test_whitespace_is_collapsed_and_trimmed():
    assert normalize("  Hello \n\t  World  ") == "hello world"


def test_arabic_diacritics_and_tatweel_are_removed():
    assert normalize("مُحَمَّدٌ") == "محمد"
    assert normalize("العـــربية") == "العربية"
    assert normalize("ٱلْكِتَابُ") == normalize("ٱلكتاب")


def test_invisible_characters_are_removed():
    assert normalize("ab\u200bcd") == "abcd"
    assert normalize("\ufeffabc") == "abc"
    assert normalize("a\u202bb\u202c") == "ab"


def test_punctuation_removed_but_math_symbols_kept():
    assert normalize("ما هو الناتج؟") == "ما هو الناتج"
    assert normalize("«مرحبا»") == "مرحبا"
    assert normalize("f(x) = [x]") == "fx=x"
    assert normalize("3.5 + 2,5 %") == "٣.٥+٢,٥ %"


def test_default_digit_style_is_arabic_indic():
    assert normalize("x = 42") == "x=٤٢"
    assert normalize("۴۲") == "٤٢"
    assert normalize("42") == normalize("٤٢")


def test_western_digit_style():
    normalizer = Normalizer("western")
    assert normalizer.normalize("س = ٤٢") == "س=42"
    assert normalizer.normalize("۱۲۳") == "123"


def test_digit_style_none_leaves_digits():
    normalizer = Normalizer("none")
    assert normalizer.normalize("42 ٤٢") == "42 ٤٢"


def test_unknown_digit_style_rejected():
    with pytest.raises(ValueError):
        Normalizer("roman")


def test_case_folding_is_unicode_aware():
    assert normalize("Straße") == "strasse"
    assert normalize("HELLO World") == "hello world"


def test_composed_and_decomposed_forms_match():
    assert normalize("cafe\u0301") == normalize("caf\u00e9")


def test_normalize_is_idempotent_on_mixed_text():
    raw = "  ما قيمةُ  س إذا كان 2س + 5 = 13؟  (Solve for X) "
    once = normalize(raw)
    assert normalize(once) == once


def test_normalizer_instances_are_callable():
    assert Normalizer()("ABC") == "abc"


def test_bytes_are_decoded_as_utf8():
    assert normalize("نص السؤال".encode("utf-8")) == normalize("نص السؤال")


def test_invalid_utf8_is_replaced_not_rejected():
    assert coerce_text(b"abc\xffdef") == "abc\ufffddef"
    assert normalize(b"abc\xffdef") == "abc\ufffddef"


def test_lone_surrogates_are_replaced():
    assert coerce_text("a\ud800b") == "a?b"
    normalized = normalize("a\ud800b")
    normalized.encode("utf-8")


def test_none_becomes_empty_text():
    assert normalize(None) == ""
    assert normalize("") == ""
    assert normalize("   \n ") == ""


def test_non_text_values_raise():
    with pytest.raises(NormalizationError) as excinfo:
        normalize(12345)
    assert excinfo.value.value_type == "int"


@pytest.mark.parametrize("mark", ["\u0653", "\u0654", "\u0655"])
def test_madda_and_hamza_marks_on_alef_are_stripped(mark):
    plain = "ما هي اجابة السؤال"
    assert normalize(plain.replace("ا", "ا" + mark)) == normalize(plain)


def test_precomposed_hamza_letters_are_kept():
    assert normalize("أإآ") == "أإآ"
