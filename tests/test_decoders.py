"""Tests for the throttled bitmask and memcached stats decoders."""
from __future__ import annotations

import pytest

from rpi_exporter.decoders import (
    SETTINGS_SPECS,
    STATS_SPECS,
    THROTTLE_BITS,
    decode_stats,
    decode_throttled,
    has_bit,
    parse_bool,
    parse_float,
)
from rpi_exporter.errors import ParseError, PartialDecodeError


def _by_name(facts):
    return {fact.descriptor.name: fact.value for fact in facts}


def _by_sample(facts):
    return {(fact.descriptor.name, fact.label_values): fact.value for fact in facts}


class TestThrottledDecoder:
    """Tests for vcgencmd get_throttled decoding."""

    def test_decode_throttled_output(self):
        """Test the documented 0x50005 example."""
        facts = _by_name(decode_throttled("throttled=0x50005\n"))

        assert facts == {
            "rpi_undervoltage_detected": 1.0,
            "rpi_arm_frequency_capped": 0.0,
            "rpi_throttled": 1.0,
            "rpi_soft_temp_limit_active": 0.0,
            "rpi_undervoltage_occurred": 1.0,
            "rpi_arm_frequency_capped_occurred": 0.0,
            "rpi_throttling_occurred": 1.0,
            "rpi_soft_temp_limit_occurred": 0.0,
        }

    @pytest.mark.parametrize("word", [0x0, 0x1, 0x2, 0xA, 0xF000F, 0x80008, 0xFFFFFFFF])
    def test_each_fact_matches_bit_test(self, word):
        """Test every fact equals the bit test on the parsed word."""
        facts = decode_throttled(f"throttled={word:#x}")

        assert len(facts) == len(THROTTLE_BITS)
        for fact, (position, descriptor) in zip(facts, THROTTLE_BITS):
            assert fact.descriptor is descriptor
            assert fact.value == (1.0 if word & (1 << position) else 0.0)

    def test_bare_hex_word(self):
        """Test input without the key= prefix or 0x prefix."""
        facts = _by_name(decode_throttled("4"))

        assert facts["rpi_throttled"] == 1.0
        assert facts["rpi_undervoltage_detected"] == 0.0

    @pytest.mark.parametrize(
        "text",
        [
            "not-a-number",
            "throttled=",
            "",
            "throttled=0xZZ",
            "throttled=-0x1",
            "throttled=+5",
            "throttled=5_0005",
            "throttled=0x 5",
            "throttled=0x\ufffd",
        ],
    )
    def test_malformed_input(self, text):
        """Test malformed input raises ParseError carrying the raw text."""
        with pytest.raises(ParseError) as excinfo:
            decode_throttled(text)

        assert excinfo.value.source == "vcgencmd"
        assert excinfo.value.raw == text

    def test_has_bit(self):
        assert has_bit(0x50005, 16)
        assert not has_bit(0x50005, 17)


class TestStatsDecoder:
    """Tests for memcached stats decoding."""

    def test_missing_keys_are_skipped(self):
        """Test only present keys produce facts."""
        facts = _by_sample(
            decode_stats({"curr_items": "42", "bytes": "1024"}, STATS_SPECS)
        )

        assert facts == {
            ("memcached_current_items", ()): 42.0,
            ("memcached_current_bytes", ()): 1024.0,
        }

    def test_unparsable_value_keeps_other_facts(self):
        """Test a bad value is skipped and reported after decoding the rest."""
        with pytest.raises(PartialDecodeError) as excinfo:
            decode_stats({"curr_items": "42", "evictions": "bad"}, STATS_SPECS)

        error = excinfo.value
        assert error.source == "memcached"
        assert error.invalid == {"evictions": "bad"}
        assert _by_name(error.facts) == {"memcached_current_items": 42.0}

    def test_typed_conversions(self):
        """Test integer, float, boolean and label-valued stats."""
        stats = {
            "uptime": "3600",
            "rusage_user": "1.500000",
            "rusage_system": "0:250000",
            "accepting_conns": "1",
            "version": "1.6.21",
            "cmd_get": "10",
            "cmd_set": "4",
            "get_hits": "7",
            "get_misses": "3",
        }

        facts = _by_sample(decode_stats(stats, STATS_SPECS))

        assert facts[("memcached_uptime_seconds", ())] == 3600.0
        assert facts[("memcached_process_user_cpu_seconds_total", ())] == pytest.approx(1.5)
        assert facts[("memcached_process_system_cpu_seconds_total", ())] == pytest.approx(0.25)
        assert facts[("memcached_accepting_connections", ())] == 1.0
        assert facts[("memcached_version", ("1.6.21",))] == 1.0
        assert facts[("memcached_commands", ("get",))] == 10.0
        assert facts[("memcached_commands", ("set",))] == 4.0
        assert facts[("memcached_gets", ("hit",))] == 7.0
        assert facts[("memcached_gets", ("miss",))] == 3.0

    def test_settings_booleans(self):
        """Test on/off and yes/no settings values."""
        settings = {
            "maxconns": "1024",
            "item_size_max": "1048576",
            "num_threads": "4",
            "lru_crawler": "yes",
            "evictions": "off",
        }

        facts = _by_name(decode_stats(settings, SETTINGS_SPECS))

        assert facts == {
            "memcached_config_max_connections": 1024.0,
            "memcached_config_item_size_max_bytes": 1048576.0,
            "memcached_config_threads": 4.0,
            "memcached_config_lru_crawler_enabled": 1.0,
            "memcached_config_evictions_enabled": 0.0,
        }

    def test_empty_version_is_invalid(self):
        with pytest.raises(PartialDecodeError) as excinfo:
            decode_stats({"version": " "}, STATS_SPECS)

        assert excinfo.value.invalid == {"version": " "}
        assert excinfo.value.facts == []

    def test_parse_bool_rejects_unknown(self):
        with pytest.raises(ValueError):
            parse_bool("maybe")

    def test_parse_float_legacy_rusage(self):
        assert parse_float("12:500000") == pytest.approx(12.5)
