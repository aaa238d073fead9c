"""Tests for parsing dialogue payloads and rebuilding translated documents."""

import pytest

from subllm_ass.ass_parser import (
    KIND_DIALOGUE,
    KIND_INFO,
    KIND_OTHER,
    KIND_STYLE,
    SPAN_CLOSING,
    SPAN_OPENING,
    SPAN_STANDALONE,
    MarkupSpan,
    classify_markup,
    dialogue_lines,
    document_stats,
    extract_markup,
    parse_document,
    parse_line,
    read_subtitle,
    reconstruct_dialogue,
    reconstruct_document,
    reinsert_markup,
    unique_texts,
    write_subtitle,
)

HELLO_LINE = "Dialogue: 0,0:00:01.00,0:00:02.00,Default,,0,0,0,,Hello {\\b1}world{\\b0}!"


class TestClassifyMarkup:
    @pytest.mark.parametrize("token", ["{\\b1}", "{\\i1}", "{\\u1}", "{\\s1}", "{\\b700}"])
    def test_opening_toggles(self, token):
        assert classify_markup(token) == SPAN_OPENING

    @pytest.mark.parametrize("token", ["{\\b0}", "{\\i0}", "{\\u0}", "{\\s0}", "{\\r}"])
    def test_closing_toggles(self, token):
        assert classify_markup(token) == SPAN_CLOSING

    @pytest.mark.parametrize("token", ["{\\pos(10,10)}", "{\\c&H00FF00&}", "{\\k20}", "{}", "{note}", "{\\blur2}"])
    def test_everything_else_is_standalone(self, token):
        assert classify_markup(token) == SPAN_STANDALONE

    def test_first_toggle_decides(self):
        assert classify_markup("{\\fad(100,100)\\i1}") == SPAN_OPENING


class TestExtractMarkup:
    def test_offsets_in_clean_text(self):
        text, spans = extract_markup("Hello {\\b1}world{\\b0}!")
        assert text == "Hello world!"
        assert [(s.token, s.offset, s.kind) for s in spans] == [
            ("{\\b1}", 6, SPAN_OPENING),
            ("{\\b0}", 11, SPAN_CLOSING),
        ]

    def test_leading_whitespace_shifts_offsets(self):
        text, spans = extract_markup("  {\\i1}Hi{\\i0}  ")
        assert text == "Hi"
        assert [s.offset for s in spans] == [0, 2]

    def test_markup_only_payload(self):
        text, spans = extract_markup("{\\pos(10,10)}")
        assert text == ""
        assert len(spans) == 1


class TestParseDocument:
    def test_line_kinds(self, sample_ass):
        lines = parse_document(sample_ass)
        kinds = [line.kind for line in lines]
        assert kinds[0] == KIND_INFO
        assert KIND_STYLE in kinds
        assert kinds[10] == KIND_DIALOGUE
        assert kinds[3] == KIND_OTHER

    def test_every_line_kept(self, sample_ass):
        lines = parse_document(sample_ass)
        assert len(lines) == len(sample_ass.split("\n"))

    def test_payload_with_commas(self):
        line = parse_line("Dialogue: 0,0:00:01.00,0:00:02.00,Default,,0,0,0,,Well, well, well")
        assert line.text == "Well, well, well"

    def test_short_dialogue_record(self):
        line = parse_line("Dialogue: 0,0:00:01.00,Default")
        assert line.kind == KIND_DIALOGUE
        assert not line.is_translatable

    def test_translatable_set_excludes_markup_only(self, sample_ass):
        lines = parse_document(sample_ass)
        texts = [line.text for line in dialogue_lines(lines)]
        assert texts == ["Hello there", "Watch out, Tom!", "Hello there"]

    def test_unique_texts_keep_first_order(self, sample_ass):
        assert unique_texts(parse_document(sample_ass)) == ["Hello there", "Watch out, Tom!"]

    def test_document_stats(self, sample_ass):
        stats = document_stats(parse_document(sample_ass))
        assert stats["translatable"] == 3
        assert stats["unique"] == 2
        assert stats["markup_spans"] == 2


class TestReinsertMarkup:
    def test_same_length_keeps_positions(self):
        spans = [MarkupSpan("{\\b1}", 0, SPAN_OPENING), MarkupSpan("{\\b0}", 5, SPAN_CLOSING)]
        assert reinsert_markup("abcde", spans, 5) == "{\\b1}abcde{\\b0}"

    def test_proportional_positions(self):
        spans = [MarkupSpan("{\\i1}", 2, SPAN_OPENING)]
        # ratio 2.0, offset 2 -> 4
        assert reinsert_markup("abcdefgh", spans, 4) == "abcd{\\i1}efgh"

    def test_insert_point_clamped_to_length(self):
        spans = [MarkupSpan("{\\b0}", 10, SPAN_CLOSING)]
        assert reinsert_markup("ab", spans, 10) == "ab{\\b0}"

    def test_ties_keep_original_order(self):
        spans = [
            MarkupSpan("{\\b0}", 3, SPAN_CLOSING),
            MarkupSpan("{\\i1}", 3, SPAN_OPENING),
        ]
        assert reinsert_markup("abcdef", spans, 6) == "abc{\\b0}{\\i1}def"

    def test_empty_original_length(self):
        spans = [MarkupSpan("{\\an8}", 0)]
        assert reinsert_markup("xyz", spans, 0) == "{\\an8}xyz"


class TestReconstruct:
    def test_persian_example_keeps_fields_and_markup(self):
        line = parse_line(HELLO_LINE)
        rebuilt = reconstruct_dialogue(line, "سلام دنیا!")
        fields = rebuilt.split(",")
        assert fields[:9] == HELLO_LINE.split(",")[:9]
        payload = ",".join(fields[9:])
        assert "{\\b1}" in payload and "{\\b0}" in payload
        assert payload.index("{\\b1}") < payload.index("{\\b0}")
        assert payload == "سلام {\\b1}دنیا{\\b0}!"

    def test_markup_count_conserved(self):
        line = parse_line("Dialogue: 0,0:00:01.00,0:00:02.00,Default,,0,0,0,,{\\i1}A{\\i0} b {\\c&HFF&}c")
        rebuilt = reconstruct_dialogue(line, "translated text")
        assert rebuilt.count("{") == 3
        assert rebuilt.count("}") == 3

    def test_model_markup_is_dropped(self):
        line = parse_line("Dialogue: 0,0:00:01.00,0:00:02.00,Default,,0,0,0,,Plain")
        rebuilt = reconstruct_dialogue(line, "{\\b1}Llano")
        assert rebuilt.endswith(",,Llano")

    def test_short_record_passes_through(self):
        raw = "Dialogue: 0,0:00:01.00,Default"
        assert reconstruct_dialogue(parse_line(raw), "x") == raw

    def test_untranslated_document_round_trips(self, sample_ass):
        assert reconstruct_document(parse_document(sample_ass), {}) == sample_ass

    def test_only_translated_lines_change(self, sample_ass):
        lines = parse_document(sample_ass)
        out = reconstruct_document(lines, {"Hello there": "Hola"})
        out_lines = out.split("\n")
        assert out_lines[10] == "Dialogue: 0,0:00:01.00,0:00:02.00,Default,,0,0,0,,Hola\r"
        assert out_lines[12].endswith(",,Hola\r")
        assert out_lines[11] == sample_ass.split("\n")[11]
        assert out.endswith("\r\n")

    def test_lf_document(self):
        content = HELLO_LINE + "\n"
        out = reconstruct_document(parse_document(content), {"Hello world!": "Hi all!"})
        assert out.endswith("!\n")
        assert "\r" not in out


class TestSubtitleFiles:
    def test_bom_preserved(self, tmp_path):
        path = tmp_path / "in.ass"
        path.write_bytes(b"\xef\xbb\xbf" + HELLO_LINE.encode("utf-8"))
        text, bom = read_subtitle(path)
        assert bom is True
        assert text == HELLO_LINE
        out = tmp_path / "out" / "o.ass"
        write_subtitle(out, text, bom)
        assert out.read_bytes().startswith(b"\xef\xbb\xbf")

    def test_cp1252_fallback(self, tmp_path):
        path = tmp_path / "in.ass"
        path.write_bytes("Dialogue: 0,0,0,D,,0,0,0,,Café".encode("cp1252"))
        text, bom = read_subtitle(path)
        assert bom is False
        assert text.endswith("Café")
