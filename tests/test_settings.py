"""Tests for framing settings."""

import pytest

from datvideo.models.settings import FramingSettings


def test_defaults():
    """Defaults match one MPEG-TS packet and a 1 MiB frame cap."""
    s = FramingSettings()
    assert s.chunk_size == 188
    assert s.max_frame_size == 1024 * 1024
    assert s.validate() is s


@pytest.mark.parametrize(
    "kwargs",
    [
        {"chunk_size": 0},
        {"max_frame_size": 1},
        {"read_size": 0},
    ],
)
def test_invalid(kwargs):
    """Out-of-range sizes are rejected."""
    with pytest.raises(ValueError):
        FramingSettings(**kwargs).validate()


def test_dict_roundtrip():
    """to_dict and from_dict agree, unknown keys are ignored."""
    s = FramingSettings(chunk_size=512, max_frame_size=4096)
    data = s.to_dict()
    data["unused"] = 1
    assert FramingSettings.from_dict(data) == s


def test_from_dict_coerces():
    """String values, as from a config file or form, are converted."""
    assert FramingSettings.from_dict({"chunk_size": "100"}).chunk_size == 100
