"""Tests for podsnip.engine.parser module."""

import pytest

from podsnip.engine.parser import PLACEHOLDER_CONFIDENCE, parse_line, parse_segments
from podsnip.utils.errors import NoSegmentsExtractedError


class TestParseLine:
    """Tests for single-line parsing."""

    def test_converts_milliseconds_to_seconds(self):
        assert parse_line("1000,2500,hello world") == (1.0, 2.5, "hello world")

    def test_non_matching_line_returns_none(self):
        assert parse_line("progress: 42%") is None

    def test_csv_header_is_not_a_segment(self):
        assert parse_line("start,end,text") is None

    def test_text_may_contain_commas(self):
        assert parse_line("0,1200,well, you know") == (0.0, 1.2, "well, you know")

    def test_quoted_text_is_unquoted(self):
        assert parse_line('0,800," he said ""hi"" "') == (0.0, 0.8, 'he said "hi"')

    def test_blank_text_is_returned_empty(self):
        assert parse_line("3000,3200,  ") == (3.0, 3.2, "")


class TestParseSegments:
    """Tests for parse_segments()."""

    def test_mixed_output_yields_only_valid_entries(self):
        raw = "\n".join([
            "whisper_init_from_file: loading model",
            "1000,2500,hello world",
            "progress: 42%",
            "3000,3200,  ",
            "",
            "4000,5500, second line ",
        ])

        segments = parse_segments(raw)

        assert len(segments) == 2
        first, second = segments
        assert first.segment_index == 0
        assert first.start_time == 1.0
        assert first.end_time == 2.5
        assert first.text == "hello world"
        assert second.segment_index == 1
        assert second.start_time == 4.0
        assert second.text == "second line"

    def test_indices_are_dense_after_dropped_lines(self):
        raw = "0,100,a\n100,200, \n200,300,b\n300,400,\t\n400,500,c"
        segments = parse_segments(raw)
        assert [s.segment_index for s in segments] == [0, 1, 2]
        assert [s.text for s in segments] == ["a", "b", "c"]

    def test_output_order_is_preserved(self):
        raw = "0,1000,first\n1000,2000,second\n2000,3000,third"
        segments = parse_segments(raw)
        starts = [s.start_time for s in segments]
        assert starts == sorted(starts)
        assert [s.text for s in segments] == ["first", "second", "third"]

    def test_zero_length_segments_are_skipped(self):
        raw = "1000,1000,instant\n1000,2000,real"
        segments = parse_segments(raw)
        assert len(segments) == 1
        assert segments[0].text == "real"
        assert segments[0].segment_index == 0

    def test_uses_placeholder_confidence_by_default(self):
        segments = parse_segments("0,1000,hi")
        assert segments[0].confidence_score == PLACEHOLDER_CONFIDENCE

    def test_confidence_can_be_overridden(self):
        segments = parse_segments("0,1000,hi", confidence_score=0.5)
        assert segments[0].confidence_score == 0.5

    def test_windows_line_endings(self):
        segments = parse_segments("0,1000,hi\r\n1000,2000,there\r\n")
        assert [s.text for s in segments] == ["hi", "there"]

    def test_no_matching_lines_raises(self):
        with pytest.raises(NoSegmentsExtractedError):
            parse_segments("whisper_init: done\nprogress = 100%\n")

    def test_only_blank_text_lines_raises(self):
        with pytest.raises(NoSegmentsExtractedError):
            parse_segments("0,1000,   \n1000,2000,")

    def test_empty_output_raises(self):
        with pytest.raises(NoSegmentsExtractedError, match="No transcript segments"):
            parse_segments("")
