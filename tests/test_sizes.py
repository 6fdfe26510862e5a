import pytest

from s3_multipart.utils.sizes import human_size, parse_size


@pytest.mark.parametrize(
    "value, expected",
    [
        (1024, 1024),
        ("1", 1),
        ("0b", 0),
        ("1k", 1024),
        ("1kb", 1024),
        ("5mb", 5 * 1024 * 1024),
        ("15MiB", 15 * 1024 * 1024),
        ("  15 MB ", 15 * 1024 * 1024),
        ("2gb", 2 * 1024 * 1024 * 1024),
    ],
)
def test_parse_size_valid(value, expected):
    assert parse_size(value) == expected


@pytest.mark.parametrize("value", ["", "mb", "5tb", "1.5mb", "5m5"])
def test_parse_size_invalid(value):
    with pytest.raises(ValueError):
        parse_size(value)


def test_human_size():
    assert human_size(512) == "512 B"
    assert human_size(15 * 1024 * 1024) == "15.00 MB"
