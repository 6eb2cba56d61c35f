"""Tests del HistoryPoller y de la decodificación del feed."""

import logging
import re
import threading
import time
from datetime import datetime, timezone

import pytest
import requests

from conftest import make_feeds, make_response
from watering_monitor.archive.poller import HistoryPoller
from watering_monitor.archive.schemas import decode_feeds, format_label
from watering_monitor.config import ArchiveSettings
from watering_monitor.errors import DecodeError


@pytest.fixture
def poller(archive_settings, model, http_session):
    p = HistoryPoller(archive_settings, model, session=http_session)
    yield p
    p.stop()


def seed_history(poller, http_session, count=5):
    http_session.get.return_value = make_response(make_feeds(count))
    assert poller.fetch_once() is not None


# =============================================================================
# DECODIFICACIÓN
# =============================================================================

class TestDecodeFeeds:

    def test_zero_fill_keeps_alignment(self):
        data = make_feeds(40, overrides={7: {"field1": "sensor-error"}})
        batch = decode_feeds(data)

        assert len(batch.moisture) == 40
        assert batch.moisture.values[7] == 0
        assert batch.moisture.values[6] == 46.0
        assert len(batch.labels) == 40
        assert len(batch.temperature) == len(batch.humidity) == 40

    def test_missing_and_null_fields_zero_filled(self):
        data = make_feeds(3, overrides={1: {"field2": None}, 2: {"field3": ""}})
        data["feeds"][0].pop("field1")
        batch = decode_feeds(data)

        assert batch.moisture.values[0] == 0.0
        assert batch.temperature.values[1] == 0.0
        assert batch.humidity.values[2] == 0.0
        assert batch.is_aligned

    def test_out_of_range_number_zero_filled(self):
        batch = decode_feeds(make_feeds(5, overrides={2: {"field1": 10 ** 400}}))

        assert len(batch) == 5
        assert batch.moisture.values[2] == 0.0
        assert batch.temperature.values[2] == 20.2

    def test_invalid_timestamp_drops_whole_sample(self):
        data = make_feeds(5, overrides={2: {"created_at": "yesterday-ish"}})
        batch = decode_feeds(data)

        assert len(batch) == 4
        assert batch.is_aligned
        assert 42.0 not in batch.moisture.values

    def test_non_dict_entries_dropped(self):
        data = make_feeds(3)
        data["feeds"].append("oops")
        assert len(decode_feeds(data)) == 3

    def test_window_keeps_most_recent(self):
        batch = decode_feeds(make_feeds(50), window_size=40)
        assert len(batch) == 40
        assert batch.moisture.values[0] == 50.0
        assert batch.moisture.values[-1] == 89.0

    def test_custom_field_mapping(self):
        data = make_feeds(2, overrides={0: {"field4": "7"}, 1: {"field4": "8"}})
        batch = decode_feeds(data, field_moisture="field4")
        assert batch.moisture.values == (7.0, 8.0)

    def test_series_timestamps_match_created_at(self):
        batch = decode_feeds(make_feeds(2))
        assert batch.moisture.points[0].timestamp == datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert batch.humidity.points[1].timestamp.minute == 1

    @pytest.mark.parametrize("data", [None, [], "feeds", {"feeds": None}, {"feeds": "x"}])
    def test_invalid_response_shape(self, data):
        with pytest.raises(DecodeError):
            decode_feeds(data)

    def test_label_is_short_local_time(self):
        label = format_label(datetime(2026, 5, 1, 10, 30, tzinfo=timezone.utc))
        assert re.fullmatch(r"\d{2}:\d{2}", label)
        assert label.endswith(":30")


# =============================================================================
# FETCH
# =============================================================================

class TestFetchOnce:

    def test_fetch_applies_history(self, poller, http_session, model):
        batch = poller.fetch_once()

        assert batch is not None
        snap = model.snapshot()
        assert len(snap.history) == 40
        assert snap.history is batch

        url = http_session.get.call_args.args[0]
        params = http_session.get.call_args.kwargs["params"]
        assert url == "https://archive.test/channels/2989896/feeds.json"
        assert params == {"results": 40}

    def test_read_key_passed_when_set(self, poller, http_session):
        poller.fetch_once(api_key="READKEY")
        assert http_session.get.call_args.kwargs["params"]["api_key"] == "READKEY"

    def test_explicit_channel_and_window(self, poller, http_session, model):
        http_session.get.return_value = make_response(make_feeds(20))
        poller.fetch_once(channel_id=1234, window_size=10)

        assert "/channels/1234/" in http_session.get.call_args.args[0]
        assert http_session.get.call_args.kwargs["params"]["results"] == 10
        assert len(model.snapshot().history) == 10

    def test_unset_channel_is_noop(self, model, http_session):
        poller = HistoryPoller(ArchiveSettings(channel_id=0), model, session=http_session)
        assert poller.fetch_once() is None
        http_session.get.assert_not_called()

    def test_transport_error_keeps_previous_history(self, poller, http_session, model, caplog):
        seed_history(poller, http_session)
        before = model.snapshot().history

        http_session.get.side_effect = requests.ConnectionError("dns failure")
        with caplog.at_level(logging.WARNING):
            assert poller.fetch_once() is None

        assert model.snapshot().history is before
        assert "Fetch failed" in caplog.text
        assert poller.stats["failed"] == 1

    def test_http_error_keeps_previous_history(self, poller, http_session, model):
        seed_history(poller, http_session)
        before = model.snapshot().history

        http_session.get.return_value = make_response(status_code=500)
        assert poller.fetch_once() is None
        assert model.snapshot().history is before

    def test_invalid_json_keeps_previous_history(self, poller, http_session, model):
        seed_history(poller, http_session)
        before = model.snapshot().history

        http_session.get.return_value = make_response(json_error=ValueError("Expecting value"))
        assert poller.fetch_once() is None
        assert model.snapshot().history is before

    def test_out_of_range_number_does_not_escape(self, poller, http_session, model):
        http_session.get.return_value = make_response(make_feeds(40, overrides={2: {"field1": 10 ** 400}}))

        batch = poller.fetch_once()

        assert batch is not None
        assert model.snapshot().history.moisture.values[2] == 0.0
        assert model.snapshot().history.moisture.values[3] == 43.0

    def test_single_sample_not_applied(self, poller, http_session, model):
        seed_history(poller, http_session, count=5)
        http_session.get.return_value = make_response(make_feeds(1))

        assert poller.fetch_once() is None
        assert len(model.snapshot().history) == 5

    def test_overlapping_fetch_is_skipped(self, poller, http_session):
        poller._fetch_lock.acquire()
        try:
            assert poller.fetch_once() is None
        finally:
            poller._fetch_lock.release()
        http_session.get.assert_not_called()
        assert poller.stats["skipped"] == 1


# =============================================================================
# PROGRAMACIÓN PERIÓDICA
# =============================================================================

class TestSchedule:

    def test_disabled_archive_does_not_schedule(self, model, http_session, caplog):
        poller = HistoryPoller(ArchiveSettings(channel_id=0), model, session=http_session)
        with caplog.at_level(logging.WARNING):
            assert poller.schedule() is False
        assert poller.is_running is False
        assert "history disabled" in caplog.text

    def test_schedule_fetches_immediately(self, poller, http_session, model):
        fetched = threading.Event()
        response = make_response(make_feeds(40))

        def get(*args, **kwargs):
            fetched.set()
            return response

        http_session.get.side_effect = get
        assert poller.schedule() is True

        assert fetched.wait(2.0)
        deadline = time.monotonic() + 2.0
        while len(model.snapshot().history) == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(model.snapshot().history) == 40

    def test_schedule_repeats_at_fixed_interval(self, poller, http_session):
        assert poller.schedule(interval=0.05) is True
        deadline = time.monotonic() + 2.0
        while http_session.get.call_count < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert http_session.get.call_count >= 3

    def test_stop_cancels_schedule_promptly(self, poller):
        poller.schedule()
        started = time.monotonic()
        poller.stop()

        assert time.monotonic() - started < 2.0
        assert poller.is_running is False

    def test_poll_cycle_survives_unexpected_error(self, poller, http_session):
        calls = []

        def get(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("unexpected")
            return make_response(make_feeds(3))

        http_session.get.side_effect = get
        poller.schedule(interval=0.05)
        deadline = time.monotonic() + 2.0
        while len(calls) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(calls) >= 2
