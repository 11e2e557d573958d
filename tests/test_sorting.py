import pytest

from dockscope.formatting import (
    format_bytes, humanize_age, parse_bytes, parse_duration, parse_status, short_id,
    shorten_duration,
)
from dockscope.sorting import (
    RANK_BYTES, RANK_DURATION, RANK_NUMERIC, RANK_PLACEHOLDER, RANK_TEXT, cell_sort_key,
    row_sort_key,
)


@pytest.mark.parametrize("text, rank", [
    ("42", RANK_NUMERIC),
    ("12.5%", RANK_NUMERIC),
    ("1.5 GB", RANK_BYTES),
    ("512MiB", RANK_BYTES),
    ("5m", RANK_DURATION),
    ("1h30m", RANK_DURATION),
    ("nginx", RANK_TEXT),
    ("-", RANK_PLACEHOLDER),
    ("<none>", RANK_PLACEHOLDER),
])
def test_cell_rank(text, rank):
    assert cell_sort_key(text)[0] == rank


def test_numbers_sort_numerically():
    values = ["10", "9", "100"]
    assert sorted(values, key=cell_sort_key) == ["9", "10", "100"]


def test_bytes_sort_by_size():
    values = ["1.0 GB", "900 B", "2.0 MB"]
    assert sorted(values, key=cell_sort_key) == ["900 B", "2.0 MB", "1.0 GB"]


def test_durations_sort_by_seconds():
    values = ["2h", "45m", "1d", "30s"]
    assert sorted(values, key=cell_sort_key) == ["30s", "45m", "2h", "1d"]


def test_text_is_case_insensitive():
    values = ["beta", "Alpha", "gamma"]
    assert sorted(values, key=cell_sort_key) == ["Alpha", "beta", "gamma"]


def test_mixed_types_do_not_raise():
    values = ["web", "5m", "3", "1.0 KB", "-"]
    assert sorted(values, key=cell_sort_key) == ["-", "3", "1.0 KB", "5m", "web"]


def test_short_row_sorts_after_text():
    assert row_sort_key(["a"], 3) > row_sort_key(["a", "b", "c", "zzz"], 3)


def test_format_bytes():
    assert format_bytes(512) == "512 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(100 * 1024 * 1024) == "100.0 MB"


def test_parse_bytes():
    assert parse_bytes("1.5 KB") == 1536
    assert parse_bytes("2GiB") == 2 * 1024 ** 3
    assert parse_bytes("nginx") is None


def test_parse_duration():
    assert parse_duration("90s") == 90
    assert parse_duration("1h30m") == 5400
    assert parse_duration("2mo") == 60 * 86400
    assert parse_duration("Up") is None
    assert parse_duration("") is None


@pytest.mark.parametrize("text, expected", [
    ("About an hour", "1h"),
    ("5 minutes ago", "5m"),
    ("Less than a second", "1s"),
    ("3 days", "3d"),
    ("2 weeks ago", "2w"),
])
def test_shorten_duration(text, expected):
    assert shorten_duration(text) == expected


@pytest.mark.parametrize("status, expected", [
    ("Up 2 hours", ("Up", "2h")),
    ("Up 3 minutes (healthy)", ("Up", "3m")),
    ("Up 5 minutes (Paused)", ("Paused", "5m")),
    ("Exited (0) 5 minutes ago", ("Exited (0)", "5m")),
    ("Created", ("Created", "-")),
])
def test_parse_status(status, expected):
    assert parse_status(status) == expected


def test_humanize_age():
    now = 1_700_000_000
    assert humanize_age(now - 30, now=now) == "30s"
    assert humanize_age(now - 3 * 3600, now=now) == "3h"
    assert humanize_age(now - 10 * 86400, now=now) == "1w"
    assert humanize_age(None) == "-"
    assert humanize_age("garbage") == "-"


def test_short_id_strips_prefix():
    assert short_id("sha256:0123456789abcdef") == "0123456789ab"
    assert short_id("abc") == "abc"
