import pytest

from trigram_search.services.threshold_calculator import ThresholdCalculator


@pytest.mark.parametrize("query, expected", [
    ("abc", 0.8),                 # short single word
    ("abcd", 0.8),
    ("abcde", 0.7),               # exactly five characters
    ("abcdef", 0.5),              # 6-9 characters
    ("abcdefghi", 0.5),
    ("abcdefghij", 0.4),          # single word, 10+ characters
    ("ab cd", 0.4),               # two short words skip the single-word bands
    ("a" * 29, 0.4),
    ("a" * 30, 0.3),
    ("long query " * 4, 0.3),
])
def test_threshold_bands(query, expected):
    assert ThresholdCalculator.calculate(query) == expected


def test_threshold_is_stricter_for_short_words():
    # A 3-letter word must match more closely than an 8-letter one
    assert ThresholdCalculator.calculate("abc") > ThresholdCalculator.calculate("abcdefgh")

    # The 30-character boundary loosens the cutoff
    assert ThresholdCalculator.calculate("x" * 30) < ThresholdCalculator.calculate("x" * 29)


def test_threshold_range():
    for length in range(0, 60):
        assert 0 < ThresholdCalculator.calculate("q" * length) <= 1
