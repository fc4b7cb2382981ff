"""Tests for recommendation parsing and fuzzy filename matching."""

from __future__ import annotations

import unittest

from govmail_ai.matcher import (
    exact_match,
    extract_html_block,
    keyword_match,
    match_file,
    normalized_substring_match,
    parse_line,
    parse_recommendations,
    recommend_attachments,
    strip_recommendation_block,
)
from govmail_ai.models import FileRef

CANDIDATES = [
    FileRef("f1", "spec sheet.pdf", "application/pdf"),
    FileRef("f2", "clin0001-drawing-v2.PDF", "application/pdf"),
    FileRef("f3", "SF1449.pdf", "application/pdf"),
]


def _reply(*lines: str) -> str:
    body = "\n".join(lines)
    return (
        "Here is my analysis.\n\n"
        f"RECOMMENDED_ATTACHMENTS_START\n{body}\nRECOMMENDED_ATTACHMENTS_END"
    )


class ParseRecommendationsTests(unittest.TestCase):
    """Validate extraction of the recommendation block."""

    def test_structured_lines_are_parsed_in_order(self) -> None:
        recs = parse_recommendations(
            _reply(
                "- filename: Spec_Sheet.pdf | reason: pricing table",
                "- filename: SF1449.pdf | reason: signed cover form",
            )
        )
        self.assertEqual(
            [(rec.declared_filename, rec.reason) for rec in recs],
            [
                ("Spec_Sheet.pdf", "pricing table"),
                ("SF1449.pdf", "signed cover form"),
            ],
        )

    def test_missing_block_yields_nothing(self) -> None:
        self.assertEqual(parse_recommendations("No attachments needed."), [])
        self.assertEqual(parse_recommendations(""), [])

    def test_unterminated_block_yields_nothing(self) -> None:
        text = "RECOMMENDED_ATTACHMENTS_START\n- filename: a.pdf | reason: x"
        self.assertEqual(parse_recommendations(text), [])

    def test_none_sentinel_yields_nothing(self) -> None:
        self.assertEqual(parse_recommendations(_reply("none")), [])
        self.assertEqual(parse_recommendations(_reply("NONE")), [])
        self.assertEqual(parse_recommendations(_reply("- none")), [])

    def test_none_bullet_among_others_is_kept(self) -> None:
        recs = parse_recommendations(
            _reply("- filename: SF1449.pdf | reason: form", "- none")
        )
        self.assertEqual([rec.declared_filename for rec in recs], ["SF1449.pdf", "none"])
        records = recommend_attachments(
            _reply("- filename: SF1449.pdf | reason: form", "- none"), CANDIDATES
        )
        self.assertEqual(len(records), 2)
        self.assertFalse(records[1].found)

    def test_lines_without_dash_are_ignored(self) -> None:
        recs = parse_recommendations(
            _reply("Files to attach:", "- filename: SF1449.pdf | reason: form")
        )
        self.assertEqual([rec.declared_filename for rec in recs], ["SF1449.pdf"])

    def test_malformed_lines_degrade_to_best_effort(self) -> None:
        self.assertEqual(parse_line("- Drawing.pdf | needed for CLIN 2").reason, "needed for CLIN 2")
        dashed = parse_line("- Drawing.pdf - the technical drawing")
        self.assertEqual(dashed.declared_filename, "Drawing.pdf")
        self.assertEqual(dashed.reason, "the technical drawing")
        bare = parse_line("- `Drawing.pdf`")
        self.assertEqual(bare.declared_filename, "Drawing.pdf")
        self.assertEqual(bare.reason, "")

    def test_hyphenated_filename_is_not_split(self) -> None:
        rec = parse_line("- clin-0001-drawing.pdf")
        self.assertEqual(rec.declared_filename, "clin-0001-drawing.pdf")


class MatchStageTests(unittest.TestCase):
    """Validate each matching stage and their precedence."""

    def test_exact_match_ignores_case(self) -> None:
        found = exact_match("sf1449.PDF", CANDIDATES)
        self.assertIsNotNone(found)
        assert found is not None
        self.assertEqual(found.id, "f3")

    def test_normalized_match_drops_separators(self) -> None:
        found = normalized_substring_match("Spec_Sheet.pdf", CANDIDATES)
        self.assertIsNotNone(found)
        assert found is not None
        self.assertEqual(found.id, "f1")

    def test_keyword_match_needs_half_the_tokens(self) -> None:
        found = keyword_match("CLIN_0001_Drawing.pdf", CANDIDATES)
        self.assertIsNotNone(found)
        assert found is not None
        self.assertEqual(found.id, "f2")
        self.assertIsNone(keyword_match("quarterly budget forecast.xlsx", CANDIDATES))

    def test_keyword_match_on_partial_title(self) -> None:
        candidates = [FileRef("w", "Updated Wiring Diagram.pdf")]
        self.assertIsNone(normalized_substring_match("Wiring Diagram Rev B", candidates))
        found = match_file("Wiring Diagram Rev B", candidates)
        assert found is not None
        self.assertEqual(found.id, "w")

    def test_keyword_match_without_significant_tokens(self) -> None:
        self.assertIsNone(keyword_match("a-b.c", CANDIDATES))

    def test_normalized_match_skips_empty_names(self) -> None:
        self.assertIsNone(normalized_substring_match("___", CANDIDATES))

    def test_exact_beats_later_stages(self) -> None:
        candidates = [FileRef("loose", "spec sheet v2.pdf"), FileRef("tight", "Spec.pdf")]
        found = match_file("spec.pdf", candidates)
        assert found is not None
        self.assertEqual(found.id, "tight")

    def test_first_candidate_wins_within_a_stage(self) -> None:
        candidates = [FileRef("a", "Report.pdf"), FileRef("b", "report.pdf")]
        found = match_file("REPORT.pdf", candidates)
        assert found is not None
        self.assertEqual(found.id, "a")

    def test_unmatched_name_returns_none(self) -> None:
        self.assertIsNone(match_file("Wage_Determination.docx", CANDIDATES))
        self.assertIsNone(match_file("anything.pdf", []))


class RecommendAttachmentsTests(unittest.TestCase):
    """Validate the end-to-end recommendation pipeline."""

    def test_one_record_per_recommendation(self) -> None:
        reply = _reply(
            "- filename: Spec_Sheet.pdf | reason: pricing",
            "- filename: CLIN_0001_Drawing.pdf | reason: drawing",
            "- filename: Wage_Determination.docx | reason: labor rates",
        )
        records = recommend_attachments(reply, CANDIDATES)
        self.assertEqual(len(records), 3)
        self.assertEqual(
            [rec.matched_file.id if rec.matched_file else None for rec in records],
            ["f1", "f2", None],
        )
        self.assertFalse(records[2].found)
        self.assertEqual(records[2].reason, "labor rates")

    def test_same_inputs_give_same_records(self) -> None:
        reply = _reply("- filename: SF1449.pdf | reason: form")
        self.assertEqual(
            recommend_attachments(reply, CANDIDATES),
            recommend_attachments(reply, CANDIDATES),
        )

    def test_no_candidates_leaves_every_record_unmatched(self) -> None:
        records = recommend_attachments(_reply("- filename: SF1449.pdf | reason: form"), [])
        self.assertEqual(len(records), 1)
        self.assertIsNone(records[0].matched_file)


class DisplayHelperTests(unittest.TestCase):
    """Validate helpers that prepare replies for display and drafting."""

    def test_strip_recommendation_block(self) -> None:
        reply = _reply("- filename: SF1449.pdf | reason: form")
        self.assertEqual(strip_recommendation_block(reply), "Here is my analysis.")

    def test_extract_html_block(self) -> None:
        reply = "Sure:\n```html\n<p>Hello</p>\n```\nDone."
        self.assertEqual(extract_html_block(reply), "<p>Hello</p>")
        self.assertIsNone(extract_html_block("No fence here."))
        self.assertIsNone(extract_html_block("```html\n\n```"))


if __name__ == "__main__":
    unittest.main()
