"""Tests de decodificación de lecturas en vivo."""

import json

import pytest

from watering_monitor.coercion import coerce_float, coerce_text
from watering_monitor.errors import DecodeError
from watering_monitor.mqtt.validators import decode_live_message, validate_live_reading


class TestCoercion:

    @pytest.mark.parametrize("raw,expected", [
        (41.5, 41.5),
        (12, 12.0),
        ("22.1", 22.1),
        (" 63 ", 63.0),
        (0, 0.0),
        ("0", 0.0),
    ])
    def test_numeric_values(self, raw, expected):
        assert coerce_float(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "nan", "inf", "1e400", 10 ** 400, float("nan"), True, [1], {"v": 1}])
    def test_non_numeric_values_are_absent(self, raw):
        assert coerce_float(raw) is None

    def test_text_coercion(self):
        assert coerce_text("ON") == "ON"
        assert coerce_text(1) == "1"
        assert coerce_text("  ") is None
        assert coerce_text(None) is None


class TestLivePayload:

    def test_valid_payload(self):
        raw = json.dumps({"moisture": 41.5, "temperature": "22.1", "humidity": 63, "pump_status": "OFF"})
        reading = decode_live_message(raw.encode())

        assert reading.moisture == 41.5
        assert reading.temperature == 22.1
        assert reading.humidity == 63.0
        assert reading.pump_status == "OFF"

    def test_non_numeric_field_is_absent_not_zero(self):
        reading = decode_live_message(b'{"moisture": "n/a", "temperature": 0, "humidity": 55}')
        assert reading.moisture is None
        assert reading.temperature == 0.0

    def test_out_of_range_integer_is_absent(self):
        raw = b'{"moisture": 1' + b"0" * 400 + b', "temperature": 21.5, "humidity": 60, "pump_status": "ON"}'
        reading = decode_live_message(raw)

        assert reading.moisture is None
        assert reading.temperature == 21.5
        assert reading.humidity == 60.0
        assert reading.pump_status == "ON"

    def test_legacy_pump_field(self):
        result = validate_live_reading({"moisture": 30, "pump": "ON"})
        assert result.valid is True
        assert result.payload.pump_status == "ON"
        assert any("pump" in w for w in result.warnings)

    def test_pump_status_wins_over_legacy_field(self):
        reading = decode_live_message(b'{"pump_status": "OFF", "pump": "ON"}')
        assert reading.pump_status == "OFF"

    def test_numeric_pump_status_becomes_text(self):
        reading = decode_live_message(b'{"moisture": 10, "pump_status": 1}')
        assert reading.pump_status == "1"

    def test_unknown_extra_fields_ignored(self):
        reading = decode_live_message(b'{"moisture": 10, "rssi": -70}')
        assert reading.moisture == 10.0

    def test_warning_for_non_numeric_metric(self):
        result = validate_live_reading({"humidity": "wet"})
        assert result.valid is True
        assert result.payload.humidity is None
        assert "Non-numeric humidity" in str(result.warnings)


class TestMalformedPayload:

    @pytest.mark.parametrize("raw", [
        b"not json",
        b"{moisture: 1}",
        b"\xff\xfe\x00",
        b"",
    ])
    def test_unparseable_payload(self, raw):
        with pytest.raises(DecodeError):
            decode_live_message(raw)

    @pytest.mark.parametrize("raw", [b"[1, 2, 3]", b"42", b'"moisture"', b"null"])
    def test_non_object_payload(self, raw):
        with pytest.raises(DecodeError):
            decode_live_message(raw)

    def test_object_without_telemetry_fields(self):
        with pytest.raises(DecodeError) as exc:
            decode_live_message(b'{"hello": "world"}')
        assert "no telemetry fields" in str(exc.value)

    def test_validation_result_for_non_dict(self):
        result = validate_live_reading(["moisture"])
        assert result.valid is False
        assert "JSON object" in result.error
