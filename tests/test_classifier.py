"""Tests for rule-pattern compilation and observation classification."""

from __future__ import annotations

import pytest

from conftest import obs
from lighttrack.classifier import (
    MAX_PATTERN_LENGTH,
    Classifier,
    compile_rule_pattern,
    extract_tickets,
)
from lighttrack.config import ProjectRule, RuleTables


class TestCompileRulePattern:
    def test_bare_pattern_is_case_insensitive(self) -> None:
        pattern = compile_rule_pattern("slack")
        assert pattern is not None
        assert pattern.matches("Team chat - SLACK")

    def test_slash_pattern_honours_flags(self) -> None:
        sensitive = compile_rule_pattern("/Jira/")
        insensitive = compile_rule_pattern("/Jira/i")
        assert sensitive is not None and insensitive is not None
        assert not sensitive.matches("jira board")
        assert insensitive.matches("jira board")

    def test_sticky_flag_anchors_at_start(self) -> None:
        pattern = compile_rule_pattern("/standup/y")
        assert pattern is not None
        assert pattern.matches("standup notes")
        assert not pattern.matches("daily standup")

    @pytest.mark.parametrize(
        "raw",
        [
            "/abc/x",
            "/abc/ii",
            "(a+)+",
            "/(a*){2,}/",
            "/([a-z]+)*/",
            "[unclosed",
            "",
            None,
            42,
            "a" * (MAX_PATTERN_LENGTH + 1),
        ],
    )
    def test_rejects_unusable_patterns(self, raw) -> None:
        assert compile_rule_pattern(raw) is None

    def test_optional_group_is_allowed(self) -> None:
        pattern = compile_rule_pattern(r"/(\w+)?jira/i")
        assert pattern is not None
        assert pattern.matches("team JIRA board")

    def test_match_input_is_clipped(self) -> None:
        pattern = compile_rule_pattern("needle")
        assert pattern is not None
        assert not pattern.matches("x" * 2000 + "needle")


class TestExtractTickets:
    def test_first_occurrence_order_and_dedup(self) -> None:
        assert extract_tickets("PROJ-7 and ABC-42 then PROJ-7 again") == ["PROJ-7", "ABC-42"]

    def test_ignores_lowercase_and_single_letter_keys(self) -> None:
        assert extract_tickets("abc-12 A-1 X9-3") == ["X9-3"]

    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("feature/ABC-42_login - Code", ["ABC-42"]),
            ("refsABC-7 fix", ["ABC-7"]),
        ],
    )
    def test_tickets_inside_words(self, title, expected) -> None:
        assert extract_tickets(title) == expected

    def test_branch_style_ticket_survives_classification(self) -> None:
        result = Classifier().classify(obs("Code", "feature/ABC-42_login"))
        assert result.tickets == ["ABC-42"]


class TestClassifier:
    def test_jira_mapping_with_review_tag(self) -> None:
        rules = RuleTables.from_mapping({"jiraProjectMappings": {"abc": "Alpha"}})
        result = Classifier(rules).classify(obs("Browser", "ABC-42 review flow"))
        assert result.tickets == ["ABC-42"]
        assert result.tags == ["review"]
        assert result.project == "Alpha"
        assert result.billable is True
        assert result.metadata == {"rule": "jira"}

    def test_break_tag_forces_non_billable(self) -> None:
        rules = RuleTables.from_mapping(
            {
                "projectMappings": {"slack": {"project": "Client", "billable": True}},
                "tagPatterns": {"break": "/lunch|coffee/i"},
            }
        )
        result = Classifier(rules).classify(obs("Slack", "Coffee run"))
        assert result.project == "Client"
        assert result.tags == ["break"]
        assert result.billable is False

    def test_rule_billable_flag_applies_without_break(self) -> None:
        rules = RuleTables.from_mapping(
            {"projectMappings": {"netflix": {"project": "Personal", "billable": False}}}
        )
        assert Classifier(rules).classify(obs("Chrome", "Netflix")).billable is False

    def test_precedence_jira_then_url_then_app_title(self) -> None:
        rules = RuleTables.from_mapping(
            {
                "projectMappings": {"chrome": "FromTitle"},
                "urlProjectMappings": {"github.com": "FromUrl"},
                "jiraProjectMappings": {"OPS": "FromJira"},
            }
        )
        classifier = Classifier(rules)
        assert (
            classifier.classify(
                obs("Chrome", "OPS-1 runbook", url="https://github.com/x")
            ).project
            == "FromJira"
        )
        assert (
            classifier.classify(obs("Chrome", "README", url="https://GitHub.com/x")).project
            == "FromUrl"
        )
        assert classifier.classify(obs("Chrome", "README")).project == "FromTitle"

    def test_jira_checks_url_before_title(self) -> None:
        rules = RuleTables.from_mapping(
            {"jiraProjectMappings": {"ABC": "FromUrl", "XYZ": "FromTitle"}}
        )
        result = Classifier(rules).classify(
            obs("Chrome", "XYZ-9 board", url="https://jira.example/browse/abc-1")
        )
        assert result.project == "FromUrl"

    def test_insertion_order_of_tables_is_irrelevant(self) -> None:
        forward = RuleTables.from_mapping(
            {
                "jiraProjectMappings": {"OPS": "FromJira"},
                "projectMappings": {"ops": "FromTitle"},
            }
        )
        backward = RuleTables.from_mapping(
            {
                "projectMappings": {"ops": "FromTitle"},
                "jiraProjectMappings": {"OPS": "FromJira"},
            }
        )
        observation = obs("Terminal", "OPS-3 deploy")
        assert Classifier(forward).classify(observation) == Classifier(backward).classify(
            observation
        )

    def test_meeting_mapping_needs_meeting_tag(self) -> None:
        rules = RuleTables.from_mapping({"meetingMappings": {"weekly": "Rituals"}})
        classifier = Classifier(rules)
        assert classifier.classify(obs("Teams", "Weekly meeting")).project == "Rituals"
        assert classifier.classify(obs("Teams", "Weekly notes")).project == "Uncategorized"

    def test_default_project_when_nothing_matches(self) -> None:
        classifier = Classifier()
        assert classifier.classify(obs("Code", "main.rs"), "Internal").project == "Internal"
        result = classifier.classify(obs("Code", "main.rs"))
        assert result.project == "Uncategorized"
        assert result.metadata == {"rule": "default"}

    def test_record_rule_carries_bookkeeping_codes(self) -> None:
        rules = RuleTables.from_mapping(
            {
                "projectMappings": {
                    "excel": {
                        "project": "Finance",
                        "activity": "Reporting",
                        "sapCode": "SAP-1",
                        "costCenter": "CC-9",
                    }
                }
            }
        )
        result = Classifier(rules).classify(obs("Excel", "Q3 budget"))
        assert result.project == "Finance"
        assert result.activity == "Reporting"
        assert result.sap_code == "SAP-1"
        assert result.cost_center == "CC-9"
        assert result.po_number == ""

    def test_invalid_patterns_are_skipped(self) -> None:
        rules = RuleTables.from_mapping(
            {"projectMappings": {"(a+)+": "Evil", "code": "Dev"}}
        )
        assert Classifier(rules).classify(obs("Code", "aaaa")).project == "Dev"


class TestRuleTables:
    def test_round_trip_keeps_plain_strings(self) -> None:
        raw = {
            "jiraProjectMappings": {"ABC": "Alpha"},
            "urlProjectMappings": {},
            "projectMappings": {"code": {"project": "Dev", "billable": False}},
            "meetingMappings": {},
            "tagPatterns": {"break": "/lunch/i"},
        }
        assert RuleTables.from_mapping(raw).to_mapping() == raw

    def test_record_without_project_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            RuleTables.from_mapping({"projectMappings": {"code": {"billable": True}}})

    def test_plain_string_rule(self) -> None:
        assert ProjectRule.from_value("Dev") == ProjectRule(project="Dev")
