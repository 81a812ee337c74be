"""
Expiry Normalization Unit Tests
"""

from datetime import datetime, timedelta, timezone

import pytest

from copilot_gateway.common.time import expires_within, normalize_expiry

INSTANT = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value",
    [
        1700000000,
        1700000000.0,
        1700000000000,
        "1700000000",
        "1700000000000",
        "2023-11-14T22:13:20Z",
        "2023-11-14T22:13:20+00:00",
        "2023-11-15T06:13:20+08:00",
        datetime(2023, 11, 14, 22, 13, 20),
    ],
)
def test_normalize_expiry_same_instant(value):
    assert normalize_expiry(value) == INSTANT


@pytest.mark.parametrize("value", [None, "", "soon", True, [], {}])
def test_normalize_expiry_unparseable(value):
    assert normalize_expiry(value) is None


@pytest.mark.parametrize("value", [1700000000, 1700000000000, "2023-11-14T22:13:20Z"])
def test_expires_within_agrees_across_representations(value):
    just_before = INSTANT - timedelta(seconds=100)
    long_before = INSTANT - timedelta(hours=1)
    assert expires_within(value, 300, now=just_before) is True
    assert expires_within(value, 300, now=long_before) is False


def test_expires_within_treats_unparseable_as_expired():
    assert expires_within("not a date", 300) is True
    assert expires_within(None, 300) is True
