from services.sensor.ble import parse_heart_rate_measurement


def test_uint8_heart_rate():
    assert parse_heart_rate_measurement(bytes([0x00, 62])) == 62


def test_uint16_heart_rate():
    assert parse_heart_rate_measurement(bytes([0x01, 0x2C, 0x01])) == 300


def test_flags_beyond_format_bit_ignored():
    # Sensor contact and energy expended flags set
    assert parse_heart_rate_measurement(bytes([0x0E, 58, 0x10, 0x00])) == 58


def test_truncated_frames():
    assert parse_heart_rate_measurement(b"") is None
    assert parse_heart_rate_measurement(bytes([0x00])) is None
    assert parse_heart_rate_measurement(bytes([0x01, 0x2C])) is None
