"""Tests for the access log codec."""

import pytest

from logship.codec import (
    SourceStatus,
    parse_line,
    serialize_event,
    validate_source,
)
from logship.models import (
    BAD_IP,
    BAD_NUMBER,
    BAD_TIME,
    MALFORMED,
    LogEvent,
    Rejected,
)


def _line(addrs="10.0.0.1", time="01/Jan/2023:00:00:00 +0000", host="-",
          request="GET / HTTP/1.1", status="200", size="512",
          referer="-", agent="curl/7.0"):
    return f'{addrs} - - [{time}] "{host}" "{request}" {status} {size} "{referer}" "{agent}"'


class TestParseLine:
    def test_example_line(self, sample_line):
        event = parse_line(sample_line)
        assert event == LogEvent(
            primary_ip="10.0.0.1",
            alt_ip=None,
            host=None,
            request="GET / HTTP/1.1",
            status_code=200,
            size=512,
            referer=None,
            user_agent="curl/7.0",
            timestamp=1672531200,
        )

    def test_all_fields_present(self):
        event = parse_line(_line(
            host="example.com",
            referer="https://example.com/start",
            agent="Mozilla/5.0 (X11; Linux x86_64)",
            status="404",
            size="0",
        ))
        assert isinstance(event, LogEvent)
        assert event.host == "example.com"
        assert event.referer == "https://example.com/start"
        assert event.user_agent == "Mozilla/5.0 (X11; Linux x86_64)"
        assert event.status_code == 404
        assert event.size == 0

    def test_timezone_offset_applied(self):
        event = parse_line(_line(time="01/Jan/2023:01:00:00 +0100"))
        assert event.timestamp == 1672531200

    def test_trailing_newline_ignored(self, sample_line):
        assert parse_line(sample_line + "\n") == parse_line(sample_line)

    def test_dash_request_is_absent(self):
        event = parse_line(_line(request="-"))
        assert event.request is None

    def test_internal_quotes_kept_verbatim(self):
        event = parse_line(_line(
            request='GET /search?q="x" HTTP/1.1',
            agent='Mozilla/5.0 "compatible"',
        ))
        assert event.request == 'GET /search?q="x" HTTP/1.1'
        assert event.user_agent == 'Mozilla/5.0 "compatible"'
        assert event.referer is None


class TestClientAddresses:
    def test_forwarded_pair(self):
        event = parse_line(_line(addrs="203.0.113.5, 10.0.0.2"))
        assert event.primary_ip == "203.0.113.5"
        assert event.alt_ip == "10.0.0.2"

    def test_pair_without_space(self):
        event = parse_line(_line(addrs="203.0.113.5,10.0.0.2"))
        assert event.primary_ip == "203.0.113.5"
        assert event.alt_ip == "10.0.0.2"

    def test_invalid_secondary_dropped(self):
        event = parse_line(_line(addrs="203.0.113.5, unknown"))
        assert isinstance(event, LogEvent)
        assert event.primary_ip == "203.0.113.5"
        assert event.alt_ip is None

    def test_ipv6_primary(self):
        event = parse_line(_line(addrs="2001:db8::1"))
        assert event.primary_ip == "2001:db8::1"

    def test_invalid_primary_rejected(self):
        result = parse_line(_line(addrs="not-an-ip"))
        assert isinstance(result, Rejected)
        assert result.reason == BAD_IP


class TestRejections:
    @pytest.mark.parametrize("line", ["", "garbage", "10.0.0.1 - - no brackets here"])
    def test_malformed(self, line):
        result = parse_line(line)
        assert isinstance(result, Rejected)
        assert result.reason == MALFORMED
        assert result.line == line

    @pytest.mark.parametrize("time", [
        "32/Jan/2023:00:00:00 +0000",
        "01/Jan/2023:00:00:00",
        "2023-01-01T00:00:00Z",
        "31/Dec/1969:23:59:59 +0000",
    ])
    def test_bad_time(self, time):
        result = parse_line(_line(time=time))
        assert isinstance(result, Rejected)
        assert result.reason == BAD_TIME

    @pytest.mark.parametrize("status,size", [
        ("abc", "512"),
        ("70000", "512"),
        ("-1", "512"),
        ("200", "-"),
        ("200", "4294967296"),
    ])
    def test_bad_number(self, status, size):
        result = parse_line(_line(status=status, size=size))
        assert isinstance(result, Rejected)
        assert result.reason == BAD_NUMBER

    def test_ip_checked_before_time(self):
        result = parse_line(_line(addrs="nope", time="bogus"))
        assert result.reason == BAD_IP


class TestSerializeEvent:
    def test_example_line_reproduced(self, sample_line):
        assert serialize_event(parse_line(sample_line)) == sample_line

    def test_absent_fields_written_as_dash(self, event_factory):
        line = serialize_event(event_factory(1672531200, user_agent=None))
        assert line.endswith('"-" "-"')

    def test_alt_ip_written_as_pair(self, event_factory):
        line = serialize_event(event_factory(1672531200, alt_ip="10.0.0.9"))
        assert line.startswith("10.0.0.1, 10.0.0.9 - - [01/Jan/2023:00:00:00 +0000]")

    @pytest.mark.parametrize("line", [
        _line(),
        _line(addrs="203.0.113.5, 10.0.0.2", host="example.com"),
        _line(addrs="2001:db8::1", time="15/Mar/2024:18:30:12 -0500"),
        _line(request='GET /q="x" HTTP/1.1', agent='Bot "v2"', referer="http://a/b"),
        _line(request="-", status="503", size="4294967295"),
    ])
    def test_structured_round_trip(self, line):
        event = parse_line(line)
        assert isinstance(event, LogEvent)
        assert parse_line(serialize_event(event)) == event


class TestValidateSource:
    def _write(self, tmp_path, lines):
        path = tmp_path / "access.log"
        path.write_text("".join(line + "\n" for line in lines))
        return str(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "access.log"
        path.write_text("")
        verdict = validate_source(str(path))
        assert verdict.status is SourceStatus.EMPTY
        assert not verdict.ok

    def test_blank_lines_only_is_empty(self, tmp_path):
        path = self._write(tmp_path, ["", "   ", ""])
        assert validate_source(path).status is SourceStatus.EMPTY

    def test_two_lines_too_short(self, tmp_path, sample_line):
        path = self._write(tmp_path, [sample_line, sample_line])
        verdict = validate_source(path)
        assert verdict.status is SourceStatus.TOO_SHORT
        assert verdict.sampled == 2

    def test_three_of_ten_malformed(self, tmp_path, sample_line):
        path = self._write(tmp_path, [sample_line] * 7 + ["garbage"] * 3)
        verdict = validate_source(path)
        assert verdict.ratio == pytest.approx(0.70)
        assert verdict.status is SourceStatus.LOW_CONFIDENCE

    def test_all_malformed_is_low_confidence(self, tmp_path):
        path = self._write(tmp_path, ["garbage"] * 10)
        verdict = validate_source(path)
        assert verdict.ratio == 0.0
        assert verdict.status is SourceStatus.LOW_CONFIDENCE

    def test_good_file_ok(self, tmp_path, sample_line):
        path = self._write(tmp_path, [sample_line] * 10)
        verdict = validate_source(path)
        assert verdict.ok
        assert verdict.ratio == 1.0

    def test_threshold_is_inclusive(self, tmp_path, sample_line):
        path = self._write(tmp_path, [sample_line] * 3 + ["garbage"])
        verdict = validate_source(path)
        assert verdict.ratio == 0.75
        assert verdict.ok

    def test_blank_run_read_is_bounded(self, tmp_path, sample_line):
        path = self._write(tmp_path, [""] * 100 + [sample_line] * 10)
        verdict = validate_source(path, sample_size=10)
        assert verdict.status is SourceStatus.EMPTY
        assert verdict.sampled == 0

    def test_blank_lines_within_bound_skipped(self, tmp_path, sample_line):
        path = self._write(tmp_path, [""] * 50 + [sample_line] * 10)
        verdict = validate_source(path, sample_size=10)
        assert verdict.ok
        assert verdict.sampled == 10

    def test_only_sample_size_lines_read(self, tmp_path, sample_line):
        path = self._write(tmp_path, [sample_line] * 10 + ["garbage"] * 10)
        verdict = validate_source(path, sample_size=10)
        assert verdict.sampled == 10
        assert verdict.ok
