import pytest

from jobqueue.utils import epoch_from_iso, iso_from_epoch, parse_delay_to_seconds


@pytest.mark.parametrize("text,seconds", [
    ("20s", 20),
    ("5m", 300),
    ("1h30m", 5400),
    ("2d3h", 183600),
    ("  2h  ", 7200),
    ("90M", 5400),
    ("45", 45),
])
def test_parse_delay(text, seconds):
    assert parse_delay_to_seconds(text) == seconds


@pytest.mark.parametrize("text", ["", "   ", "soon", "5x", "0s", "0"])
def test_parse_delay_rejects(text):
    with pytest.raises(ValueError):
        parse_delay_to_seconds(text)


def test_iso_round_trip():
    ts = 1_700_000_000.25
    text = iso_from_epoch(ts)
    assert text == "2023-11-14T22:13:20.250000Z"
    assert epoch_from_iso(text) == pytest.approx(ts)


def test_iso_sorts_lexically():
    assert iso_from_epoch(999.5) < iso_from_epoch(1000.0) < iso_from_epoch(10000.0)


def test_epoch_from_empty():
    assert epoch_from_iso(None) is None
