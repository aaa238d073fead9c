"""Tests for the quality heuristics."""

from subllm_ass.memory import TranslationMemory
from subllm_ass.models import QualityScore
from subllm_ass.prompts import QualitySettings
from subllm_ass.quality import (
    average_score,
    generate_quality_score,
    quality_report,
    untranslated_words,
    validate_translation,
)

SALAM = "سلام دوست من"


class TestQualityScore:
    def test_good_translation(self):
        score = generate_quality_score("Hello my friend", SALAM, "Persian")
        assert score.accuracy == 100
        assert score.consistency == 100
        assert 0 <= score.overall <= 100

    def test_untranslated_text_scores_low_accuracy(self):
        score = generate_quality_score("Hello my friend", "Hello my friend", "Persian")
        assert score.accuracy == 0
        assert any("Persian" in s for s in score.suggestions)

    def test_length_penalty(self):
        score = generate_quality_score("Hello my friend", "س", "Persian")
        assert score.fluency == 80
        assert "Translation may be too short" in score.suggestions

    def test_consistency_against_memory(self):
        memory = TranslationMemory()
        memory.add("Hello my friend", SALAM)
        score = generate_quality_score("Hello my friend", "خداحافظ", "Persian", memory)
        assert score.consistency < 80
        assert any("Similar earlier translation" in s for s in score.suggestions)

    def test_average(self):
        scores = [QualityScore(80, 0, 0, 0), QualityScore(60, 0, 0, 0)]
        assert average_score(scores) == 70.0
        assert average_score([]) == 0.0


class TestValidateTranslation:
    def test_latin_target_has_no_leftovers(self):
        assert untranslated_words("Hola amigo", "Spanish") == []

    def test_leftover_words(self):
        metrics = validate_translation("Hello Tom", "سلام Tom", "Persian")
        assert any("Untranslated" in issue for issue in metrics.issues)
        assert metrics.score < 100

    def test_too_many_lines(self):
        metrics = validate_translation("a\\Nb\\Nc", "x\\Ny\\Nz", "Spanish")
        assert any("More than 2 lines" in issue for issue in metrics.issues)

    def test_report(self):
        report = quality_report({"Hello my friend": SALAM}, "Persian", QualitySettings(genre="drama"))
        assert report.startswith("Quality report:")
        assert "Genre: drama" in report
        assert "Status: complete" in report

    def test_empty_report(self):
        assert quality_report({}, "Persian", QualitySettings()) == "Quality report: no translations."
