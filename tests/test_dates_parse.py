import pytest

from resume_tree.rules import format_range, normalize_duration


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2008 - Present", "2008 – Present"),
        ("2006—2007", "2006 – 2007"),
        ("Jun 2006 to Sep 2006", "Jun 2006 – Sep 2006"),
        ("June – Sept 2006", "June – Sept 2006"),
        ("2019 - current", "2019 – Present"),
        ("Summer internship", "Summer internship"),
        ("", ""),
        (None, None),
    ],
)
def test_normalize_duration(raw, expected):
    assert normalize_duration(raw) == expected


@pytest.mark.parametrize("raw", ["N/A", "unknown", "TBD", "none", "-"])
def test_placeholder_durations_carry_no_signal(raw):
    assert normalize_duration(raw) is None


def test_format_range_open_ends():
    assert format_range("2020", None) == "2020 – Present"
    assert format_range(None, "now") == "Present"
    assert format_range(None, "2021") == "2021"
    assert format_range("", "") is None
