import pytest
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from protocol import (encode_echo_body, parse_echo_body, parse_timestamp, derive_sample,
                      EchoResponse, MalformedEchoResponse)


class TestEncodeEchoBody:
    def test_without_padding(self):
        assert encode_echo_body(1700000000000000, 1) == "1700000000000000|1"

    def test_padding_is_third_field(self):
        body = encode_echo_body(42, 3, resp_size=10)
        assert body == "42|3|0000000000\n"
        assert parse_echo_body(body).padding == "0000000000\n"

    def test_zero_or_negative_size_adds_nothing(self):
        assert encode_echo_body(42, 2, resp_size=0) == "42|2"
        assert encode_echo_body(42, 2, resp_size=-5) == "42|2"


class TestParseEchoBody:
    def test_first_request_flag(self):
        assert parse_echo_body("100|1").is_first
        assert not parse_echo_body("100|2").is_first
        assert not parse_echo_body("100|11").is_first

    def test_flag_with_padding(self):
        echo = parse_echo_body("100|1|000\n")
        assert echo.arrival_us == 100
        assert echo.is_first

    def test_padding_with_separator_stays_in_third_field(self):
        assert parse_echo_body("1|2|a|b").padding == "a|b"

    def test_missing_ordinal_is_malformed(self):
        with pytest.raises(MalformedEchoResponse):
            parse_echo_body("404: Not Found")

    @pytest.mark.parametrize("field", ["", "abc", "12.5", " 12", "1_000", "99999999999999999999"])
    def test_bad_timestamp_parses_as_zero(self, field):
        assert parse_timestamp(field) == 0
        assert parse_echo_body(f"{field}|1").arrival_us == 0

    def test_signed_timestamp(self):
        assert parse_timestamp("-15") == -15
        assert parse_timestamp("+15") == 15


class TestDeriveSample:
    def test_breakdown(self):
        sample = derive_sample(1000, 1600, EchoResponse(1250, "1"))
        assert sample.is_first
        assert sample.total_us == 600
        assert sample.client_to_server_us == 250
        assert sample.server_to_client_us == 350

    def test_legs_always_sum_to_total(self):
        # Includes skewed responder clocks and a zero timestamp from a parse failure
        clocks = [(0, 0, 0), (10, 20, 15), (10, 20, 5), (10, 20, 40), (1000, 1010, 0), (5, 5, 10 ** 15)]
        for sent, received, arrival in clocks:
            sample = derive_sample(sent, received, EchoResponse(arrival, "2"))
            assert sample.total_us == sample.client_to_server_us + sample.server_to_client_us

    def test_unparsable_timestamp_gives_huge_latency(self):
        sent = 1700000000000000
        sample = derive_sample(sent, sent + 300, parse_echo_body("garbage|1"))
        assert sample.server_to_client_us == sent + 300
        assert sample.client_to_server_us == -sent
        assert sample.total_us == 300
