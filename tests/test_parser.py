"""Tests for tickstream.tick and tickstream.parser."""

import logging

import pytest

from tickstream.parser import EventParser, FAILURE_LOG_EVERY, parse_tick
from tickstream.tick import CSV_HEADER, Tick, TickParseError


class TestParseTick:
    """Tests for parse_tick()."""

    def test_parses_wire_record(self):
        tick = parse_tick('{"timestamp":1,"bid":100.0,"ask":100.5,"volume":5}')

        assert tick == Tick(timestamp=1, bid=100.0, ask=100.5, volume=5)

    def test_ignores_unknown_fields(self):
        tick = parse_tick(
            '{"timestamp":2,"bid":101.0,"ask":101.4,"volume":7,"symbol":"EURUSD","venue":"x"}'
        )

        assert tick.timestamp == 2
        assert tick.volume == 7

    def test_integer_prices_become_floats(self):
        tick = parse_tick('{"timestamp":1,"bid":100,"ask":101,"volume":5}')

        assert isinstance(tick.bid, float)
        assert tick.bid == 100.0

    def test_integral_float_volume_accepted(self):
        tick = parse_tick('{"timestamp":1.0,"bid":1.0,"ask":2.0,"volume":5.0}')

        assert tick.timestamp == 1
        assert tick.volume == 5
        assert isinstance(tick.volume, int)

    def test_crossed_quote_and_negative_volume_forwarded(self):
        """ask < bid and negative volume are not validation failures."""
        tick = parse_tick('{"timestamp":1,"bid":101.0,"ask":100.0,"volume":-3}')

        assert tick.ask < tick.bid
        assert tick.volume == -3

    @pytest.mark.parametrize("record,reason", [
        ('{"timestamp":1,"bid":100.0,"ask":100.5}', "missing field volume"),
        ('{"timestamp":1,"bid":"abc","ask":100.5,"volume":5}', "bid must be a number"),
        ('{"timestamp":1,"bid":100.0,"ask":100.5,"volume":5.5}', "volume must be an integer"),
        ('{"timestamp":true,"bid":100.0,"ask":100.5,"volume":5}', "timestamp must be an integer"),
        ('{"timestamp":1,"bid":100.0,', "malformed JSON"),
        ('[1, 2, 3]', "expected object"),
        ('not json at all', "malformed JSON"),
    ])
    def test_rejects_invalid_records(self, record, reason):
        with pytest.raises(TickParseError) as exc_info:
            parse_tick(record)

        assert reason in exc_info.value.reason
        assert exc_info.value.record == record

    def test_long_record_truncated_in_message(self):
        record = "x" * 500
        with pytest.raises(TickParseError) as exc_info:
            parse_tick(record)

        assert len(str(exc_info.value)) < 200


class TestTick:
    """Tests for the Tick model."""

    def test_is_immutable(self):
        tick = Tick(timestamp=1, bid=1.0, ask=2.0, volume=3)

        with pytest.raises(AttributeError):
            tick.bid = 5.0

    def test_row_order_matches_header(self):
        tick = Tick(timestamp=1, bid=1.5, ask=2.5, volume=3)

        assert CSV_HEADER == "Timestamp,Bid,Ask,Volume"
        assert tick.to_row() == [1, 1.5, 2.5, 3]


class TestEventParser:
    """Tests for the skip-and-continue EventParser."""

    def test_malformed_record_returns_none(self):
        parser = EventParser()

        assert parser.parse('{"timestamp":1}') is None
        assert parser.failure_count == 1
        assert parser.parsed_count == 0

    def test_continues_after_failure(self):
        parser = EventParser()
        records = [
            '{"timestamp":1,"bid":100.0,"ask":100.5,"volume":5}',
            '{"timestamp":2,"bid":"abc","ask":100.5,"volume":5}',
            '{"timestamp":3,"bid":100.0,"ask":100.5}',
            '{"timestamp":4,"bid":101.0,"ask":101.5,"volume":9}',
        ]

        ticks = [t for t in (parser.parse(r) for r in records) if t is not None]

        assert [t.timestamp for t in ticks] == [1, 4]
        assert parser.parsed_count == 2
        assert parser.failure_count == 2

    def test_failure_warning_is_sampled(self, caplog):
        parser = EventParser()

        with caplog.at_level(logging.WARNING, logger="tickstream.parser"):
            for _ in range(FAILURE_LOG_EVERY + 1):
                parser.parse("garbage")

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2
