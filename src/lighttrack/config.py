"""Configuration models and helpers for the tracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol


FALLBACK_PROJECT = "Uncategorized"

DEFAULT_SETTINGS: dict[str, Any] = {
    "autoSaveInterval": 60,
    "minActivityDuration": 60,
    "idleThreshold": 180,
    "pauseOnIdle": False,
    "consolidateActivities": True,
    "mergeGapThreshold": 300,
    "dataRetention": 90,
    "defaultProject": None,
    "showNotifications": True,
    "doNotTrackApps": [],
    "doNotTrackKeywords": [],
    "doNotTrackDomains": [],
}

RULE_TABLES_KEY = "ruleTables"


class SettingsReader(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...


def _setting(store: SettingsReader, key: str) -> Any:
    value = store.get(key)
    if value is None:
        return DEFAULT_SETTINGS.get(key)
    return value


@dataclass(slots=True)
class TrackerSettings:
    """Snapshot of the engine-relevant settings, read at the start of an operation."""

    auto_save_interval: float = 60.0
    min_activity_duration: float = 60.0
    idle_threshold: float = 180.0
    pause_on_idle: bool = False
    consolidate_activities: bool = True
    merge_gap_threshold: float = 300.0
    data_retention_days: float = 90.0
    default_project: Optional[str] = None
    show_notifications: bool = True

    @property
    def fallback_project(self) -> str:
        return self.default_project or FALLBACK_PROJECT

    @classmethod
    def from_store(cls, store: SettingsReader) -> "TrackerSettings":
        return cls(
            auto_save_interval=float(_setting(store, "autoSaveInterval")),
            min_activity_duration=float(_setting(store, "minActivityDuration")),
            idle_threshold=float(_setting(store, "idleThreshold")),
            pause_on_idle=bool(_setting(store, "pauseOnIdle")),
            consolidate_activities=bool(_setting(store, "consolidateActivities")),
            merge_gap_threshold=float(_setting(store, "mergeGapThreshold")),
            data_retention_days=float(_setting(store, "dataRetention")),
            default_project=_setting(store, "defaultProject") or None,
            show_notifications=bool(_setting(store, "showNotifications")),
        )


@dataclass(slots=True, frozen=True)
class ProjectRule:
    """Value of a rule-table entry: a project plus optional bookkeeping codes."""

    project: str
    activity: Optional[str] = None
    sap_code: Optional[str] = None
    cost_center: Optional[str] = None
    wbs_element: Optional[str] = None
    po_number: Optional[str] = None
    billable: Optional[bool] = None

    @classmethod
    def from_value(cls, value: Any) -> "ProjectRule":
        if isinstance(value, str):
            return cls(project=value)
        if isinstance(value, Mapping):
            project = value.get("project")
            if not isinstance(project, str) or not project:
                raise ValueError("Rule record requires a non-empty 'project'")
            billable = value.get("billable")
            return cls(
                project=project,
                activity=value.get("activity") or None,
                sap_code=value.get("sapCode") or None,
                cost_center=value.get("costCenter") or None,
                wbs_element=value.get("wbsElement") or None,
                po_number=value.get("poNumber") or None,
                billable=billable if isinstance(billable, bool) else None,
            )
        raise ValueError(f"Unsupported rule value: {value!r}")

    def to_value(self) -> Any:
        extras = {
            "activity": self.activity,
            "sapCode": self.sap_code,
            "costCenter": self.cost_center,
            "wbsElement": self.wbs_element,
            "poNumber": self.po_number,
            "billable": self.billable,
        }
        extras = {key: value for key, value in extras.items() if value is not None}
        if not extras:
            return self.project
        return {"project": self.project, **extras}


def _rule_table(raw: Any) -> dict[str, ProjectRule]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(pattern): ProjectRule.from_value(value) for pattern, value in raw.items()}


@dataclass(slots=True, frozen=True)
class RuleTables:
    """User-maintained classification tables.

    The tables are consulted by kind (JIRA, URL, app/title, meeting), never by
    the order in which they were supplied.
    """

    jira: Mapping[str, ProjectRule] = field(default_factory=dict)
    url: Mapping[str, ProjectRule] = field(default_factory=dict)
    app_title: Mapping[str, ProjectRule] = field(default_factory=dict)
    meeting: Mapping[str, ProjectRule] = field(default_factory=dict)
    tag_patterns: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "RuleTables":
        raw = raw or {}
        tag_patterns = raw.get("tagPatterns") or {}
        return cls(
            jira={
                key.upper(): rule
                for key, rule in _rule_table(raw.get("jiraProjectMappings")).items()
            },
            url=_rule_table(raw.get("urlProjectMappings")),
            app_title=_rule_table(raw.get("projectMappings")),
            meeting=_rule_table(raw.get("meetingMappings")),
            tag_patterns={
                str(tag).lower(): str(pattern) for tag, pattern in tag_patterns.items()
            },
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "jiraProjectMappings": {k: v.to_value() for k, v in self.jira.items()},
            "urlProjectMappings": {k: v.to_value() for k, v in self.url.items()},
            "projectMappings": {k: v.to_value() for k, v in self.app_title.items()},
            "meetingMappings": {k: v.to_value() for k, v in self.meeting.items()},
            "tagPatterns": dict(self.tag_patterns),
        }
