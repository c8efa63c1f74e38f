"""
Tests for IP extraction, value encoding and timestamp coercion
"""

from datetime import datetime, timezone

import pytest

from attribution_worker.core.exceptions import MalformedRecordError
from attribution_worker.shared.helpers.codec import decode_pointer, decode_value, encode_value
from attribution_worker.shared.helpers.datetime_utils import coerce_timestamp, to_iso
from attribution_worker.shared.helpers.ip_utils import (
    decode_ip_from_key,
    encode_ip_for_key,
    extract_ips,
    split_ip_values,
)


class TestIpExtraction:
    def test_union_keeps_field_priority_order(self):
        record = {
            "unique_ips": ["198.51.100.7", "203.0.113.10"],
            "ip_address": "192.0.2.1",
            "custom_ipv4": "203.0.113.10",
            "PIP": "2001:db8::1",
        }

        assert extract_ips(record) == [
            "2001:db8::1",
            "203.0.113.10",
            "192.0.2.1",
            "198.51.100.7",
        ]

    def test_comma_separated_and_placeholders(self):
        assert split_ip_values(" 192.0.2.1 , unknown,, null , 192.0.2.2") == [
            "192.0.2.1",
            "192.0.2.2",
        ]

    def test_reinjected_output_gives_same_set(self):
        ips = extract_ips({"ip_address": "192.0.2.1, 192.0.2.2", "PIP": "192.0.2.2"})
        assert extract_ips({"ip_address": ", ".join(ips)}) == ips

    def test_empty_record_has_no_ips(self):
        assert extract_ips({}) == []

    def test_ipv6_key_encoding(self):
        encoded = encode_ip_for_key("2001:db8::1")
        assert ":" not in encoded
        assert decode_ip_from_key(encoded) == "2001:db8::1"


class TestCodec:
    def test_reads_percent_encoded_and_plain_json(self):
        value = {"source": "google ads", "ips": ["a", "b"]}

        assert decode_value(encode_value(value)) == value
        assert decode_value('{"a": 1}') == {"a": 1}

    def test_encoding_matches_uri_component_rules(self):
        assert encode_value("it's (ok)!") == "%22it's%20(ok)!%22"

    def test_garbage_raises_malformed_record(self):
        with pytest.raises(MalformedRecordError):
            decode_value("%7Bnot json", key="conversions:1")

    def test_pointer_shapes(self):
        assert decode_pointer("pageview:1") == ["pageview:1"]
        assert decode_pointer('["pageview:1", "pageview:2"]') == ["pageview:1", "pageview:2"]
        assert decode_pointer(encode_value("pageview:3")) == ["pageview:3"]
        assert decode_pointer(None) == []


class TestTimestamps:
    @pytest.mark.parametrize(
        "raw",
        [
            "2025-07-20T10:00:00.000Z",
            "2025-07-20T10:00:00+00:00",
            "2025-07-20T10:00:00",
            1753005600000,
            "1753005600000",
        ],
    )
    def test_coerce_formats(self, raw):
        assert coerce_timestamp(raw) == datetime(2025, 7, 20, 10, 0, tzinfo=timezone.utc)

    def test_unusable_values(self):
        assert coerce_timestamp("yesterday") is None
        assert coerce_timestamp(None) is None
        assert coerce_timestamp(True) is None

    def test_iso_uses_z_suffix(self):
        assert to_iso(datetime(2025, 7, 20, 10, 0, tzinfo=timezone.utc)) == "2025-07-20T10:00:00Z"
