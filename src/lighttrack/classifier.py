"""Rule-table classification of window observations."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from .config import FALLBACK_PROJECT, ProjectRule, RuleTables
from .models import WindowObservation

logger = logging.getLogger(__name__)

MAX_PATTERN_LENGTH = 500
MAX_MATCH_INPUT = 2000
ALLOWED_FLAGS = frozenset("gimsuy")

TICKET_PATTERN = re.compile(r"[A-Z][A-Z0-9]{1,9}-\d+")
# Project-key lookup only considers whole-word keys.
JIRA_KEY_PATTERN = re.compile(r"\b[A-Z][A-Z0-9]{1,9}-\d+\b")
BUILTIN_TAG_KEYWORDS: tuple[str, ...] = ("meeting", "review")

_SLASH_PATTERN = re.compile(r"/(?P<body>.*)/(?P<flags>[A-Za-z]*)", re.DOTALL)
# Quantified groups that themselves contain a quantifier: (a+)+, (a*){2,}
_NESTED_QUANTIFIER = re.compile(r"\([^)]*[+*][^)]*\)[+*]|\([^)]*[+*?][^)]*\)\{")

_FLAG_BITS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


@dataclass(slots=True, frozen=True)
class RulePattern:
    source: str
    regex: re.Pattern[str]
    sticky: bool = False

    def matches(self, text: str) -> bool:
        text = text[:MAX_MATCH_INPUT]
        if self.sticky:
            return self.regex.match(text) is not None
        return self.regex.search(text) is not None


def compile_rule_pattern(raw: Any) -> Optional[RulePattern]:
    """Compile a ``/pattern/flags`` (or bare, case-insensitive) rule pattern.

    Returns ``None`` for anything unusable: over-long patterns, flags outside
    ``gimsuy``, nested quantifiers, or regex syntax errors.
    """
    if not isinstance(raw, str) or not raw or len(raw) > MAX_PATTERN_LENGTH:
        return None
    match = _SLASH_PATTERN.fullmatch(raw) if raw.startswith("/") else None
    if match:
        body, flags = match.group("body"), match.group("flags")
        if not body or not set(flags) <= ALLOWED_FLAGS or len(set(flags)) != len(flags):
            return None
    else:
        body, flags = raw, "i"
    if _NESTED_QUANTIFIER.search(body):
        return None
    bits = 0
    for flag in flags:
        bits |= _FLAG_BITS.get(flag, 0)
    try:
        regex = re.compile(body, bits)
    except re.error:
        return None
    return RulePattern(source=raw, regex=regex, sticky="y" in flags)


def extract_tickets(text: str) -> list[str]:
    """Ticket keys (``ABC-123``) in order of first occurrence, deduplicated."""
    return _dedupe(TICKET_PATTERN.findall(text or ""))


def _dedupe(values: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


@dataclass(slots=True)
class Classification:
    project: str
    tickets: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    activity: Optional[str] = None
    sap_code: str = ""
    cost_center: str = ""
    po_number: str = ""
    wbs_element: str = ""
    billable: bool = True

    @classmethod
    def fallback(cls, project: str) -> "Classification":
        return cls(project=project, metadata={"rule": "default"})


def _compile_table(
    table: Mapping[str, ProjectRule], kind: str
) -> list[tuple[RulePattern, ProjectRule]]:
    compiled = []
    for pattern, rule in table.items():
        rule_pattern = compile_rule_pattern(pattern)
        if rule_pattern is None:
            logger.warning("Ignoring invalid %s pattern %r", kind, pattern)
            continue
        compiled.append((rule_pattern, rule))
    return compiled


class Classifier:
    """Decides project, tickets, tags and billability for an observation."""

    def __init__(self, rules: Optional[RuleTables] = None) -> None:
        self.rules = rules or RuleTables()
        self._jira = dict(self.rules.jira)
        self._url = [(pattern.lower(), rule) for pattern, rule in self.rules.url.items() if pattern]
        self._app_title = _compile_table(self.rules.app_title, "app/title")
        self._meeting = _compile_table(self.rules.meeting, "meeting")
        self._tags: list[tuple[str, RulePattern]] = []
        for tag, pattern in self.rules.tag_patterns.items():
            compiled = compile_rule_pattern(pattern)
            if compiled is None:
                logger.warning("Ignoring invalid tag pattern %r for %r", pattern, tag)
                continue
            self._tags.append((tag, compiled))

    def classify(
        self, observation: WindowObservation, default_project: Optional[str] = None
    ) -> Classification:
        title = observation.title or ""
        tickets = extract_tickets(title)
        tags = self._extract_tags(observation)

        kind, rule = self._match_project(observation, tags)
        if rule is None:
            project = default_project or FALLBACK_PROJECT
            rule = ProjectRule(project=project)

        if "break" in tags:
            billable = False
        elif rule.billable is not None:
            billable = rule.billable
        else:
            billable = True

        return Classification(
            project=rule.project,
            tickets=tickets,
            tags=tags,
            metadata={"rule": kind},
            activity=rule.activity,
            sap_code=rule.sap_code or "",
            cost_center=rule.cost_center or "",
            po_number=rule.po_number or "",
            wbs_element=rule.wbs_element or "",
            billable=billable,
        )

    def _extract_tags(self, observation: WindowObservation) -> list[str]:
        lowered = (observation.title or "").lower()
        tags = [keyword for keyword in BUILTIN_TAG_KEYWORDS if keyword in lowered]
        search_text = f"{observation.title or ''} {observation.app or ''}"
        for tag, pattern in self._tags:
            if pattern.matches(search_text):
                tags.append(tag)
        return _dedupe(tag.lower() for tag in tags)

    def _match_project(
        self, observation: WindowObservation, tags: list[str]
    ) -> tuple[str, Optional[ProjectRule]]:
        rule = self._match_jira(observation)
        if rule is not None:
            return "jira", rule
        rule = self._match_url(observation)
        if rule is not None:
            return "url", rule
        search_text = f"{observation.title or ''} {observation.app or ''}"
        for pattern, rule in self._app_title:
            if pattern.matches(search_text):
                return "app", rule
        if "meeting" in tags:
            for pattern, rule in self._meeting:
                if pattern.matches(observation.title or ""):
                    return "meeting", rule
        return "default", None

    def _match_jira(self, observation: WindowObservation) -> Optional[ProjectRule]:
        if not self._jira:
            return None
        for text in (observation.url, observation.title):
            if not text:
                continue
            for ticket in JIRA_KEY_PATTERN.findall(text.upper()):
                rule = self._jira.get(ticket.split("-", 1)[0])
                if rule is not None:
                    return rule
        return None

    def _match_url(self, observation: WindowObservation) -> Optional[ProjectRule]:
        if not observation.url:
            return None
        url = observation.url.lower()
        for pattern, rule in self._url:
            if pattern in url:
                return rule
        return None
