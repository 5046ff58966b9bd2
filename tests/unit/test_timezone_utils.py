"""Tests for src/utils/timezone.py"""

import time
from datetime import timedelta

from src.utils.timezone import IST, now_local, now_millis


def test_ist_offset():
    assert IST.utcoffset(None) == timedelta(hours=5, minutes=30)


def test_now_local_naive_by_default():
    assert now_local().tzinfo is None


def test_now_local_aware_uses_ist():
    current = now_local(aware=True)
    assert current.utcoffset() == timedelta(hours=5, minutes=30)


def test_now_millis_is_epoch_milliseconds():
    before = int(time.time() * 1000)
    value = now_millis()
    after = int(time.time() * 1000)
    assert before - 1 <= value <= after + 1
