"""
Insight domain entity - a derived, severity-tagged alert about business metrics.

Insights are recomputed from a snapshot every time and never stored. The id
is a pure function of (rule, scope key, month), so the same anomaly in the
same month always has the same id and can be de-duplicated by callers.
"""
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any, Iterable

SEVERITY_CRITICAL = "critical"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"

SEVERITY_RANK = {
    SEVERITY_CRITICAL: 0,
    SEVERITY_WARNING: 1,
    SEVERITY_INFO: 2,
}

SCOPE_ACADEMY = "academy"
SCOPE_BRANCH = "branch"
SCOPE_MEMBER = "member"


@dataclass(frozen=True)
class InsightScope:
    type: str
    id: str | None = None
    name: str | None = None

    @property
    def key(self) -> str:
        """Scope part of the insight id."""
        return self.id if self.id is not None else self.type

    @classmethod
    def academy(cls) -> "InsightScope":
        return cls(type=SCOPE_ACADEMY)

    @classmethod
    def branch(cls, branch_id: str, name: str) -> "InsightScope":
        return cls(type=SCOPE_BRANCH, id=branch_id, name=name)

    @classmethod
    def member(cls, member_id: str, name: str) -> "InsightScope":
        return cls(type=SCOPE_MEMBER, id=member_id, name=name)


def insight_id(rule: str, scope: InsightScope, ym: str) -> str:
    return f"{rule}-{scope.key}-{ym}"


@dataclass(frozen=True)
class Insight:
    id: str
    rule: str
    title: str
    description: str
    severity: str
    scope: InsightScope
    actions: tuple[str, ...]
    created_at: date
    snapshot: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["actions"] = list(self.actions)
        data["created_at"] = self.created_at.isoformat()
        return data


def sort_by_severity(insights: Iterable[Insight]) -> list[Insight]:
    """Stable: insights of equal severity keep their relative order."""
    return sorted(insights, key=lambda i: SEVERITY_RANK[i.severity])
