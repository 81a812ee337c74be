"""
Timer Unit Tests
"""

from unittest.mock import patch

from copilot_gateway.common.timer import Timer


def test_unstarted_timer_reports_nothing():
    timer = Timer()
    assert timer.first_byte_delay_ms is None
    assert timer.total_time_ms is None


def test_first_byte_and_total():
    with patch("copilot_gateway.common.timer.time.perf_counter", side_effect=[1.0, 1.25, 2.0]):
        timer = Timer().start()
        timer.mark_first_byte()
        timer.mark_first_byte()  # ignored, already marked
        timer.stop()
    assert timer.first_byte_delay_ms == 250
    assert timer.total_time_ms == 1000


def test_stop_without_first_byte_uses_end_time():
    with patch("copilot_gateway.common.timer.time.perf_counter", side_effect=[5.0, 5.5]):
        timer = Timer().start().stop()
    assert timer.first_byte_delay_ms == 500
    assert timer.total_time_ms == 500
