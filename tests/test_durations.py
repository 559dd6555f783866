import pytest

from servicemon.durations import format_span, format_uptime


@pytest.mark.parametrize(
    "seconds,expected",
    [
        (0, "0s"),
        (0.0000005, "500ns"),
        (0.0000015, "1.5µs"),
        (0.25, "250ms"),
        (1.5, "1.5s"),
        (59, "59s"),
        (120, "2m0s"),
        (3723.25, "1h2m3.25s"),
        (174600, "48h30m0s"),
        (-90, "-1m30s"),
    ],
)
def test_format_uptime_matches_go_duration_text(seconds, expected):
    assert format_uptime(seconds) == expected


@pytest.mark.parametrize(
    "seconds,expected",
    [
        (0, "0m"),
        (59, "0m"),
        (3660, "1h 1m"),
        (90061, "1d 1h 1m"),
        (-5, "0m"),
    ],
)
def test_format_span(seconds, expected):
    assert format_span(seconds) == expected
