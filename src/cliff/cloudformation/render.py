"""
Rendering of change set resource changes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import click

REPLACEMENT_MARKER = "⚠️  Requires replacement"

ACTION_MARKERS = {
    "Add": "🌱 ",
    "Modify": "🔧 ",
    "Remove": "✂️  ",
}

ACTION_COLORS = {
    "Add": "bright_green",
    "Modify": "bright_yellow",
    "Remove": "bright_red",
}


@dataclass(frozen=True)
class ChangeRecord:
    """One entry of a change set's ``Changes`` list."""

    kind: str
    action: str = ""
    resource_type: str = ""
    logical_id: str = ""
    physical_id: str = ""
    scope: Tuple[str, ...] = ()
    replacement: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def replacement_required(self) -> bool:
        return self.replacement == "True"

    @classmethod
    def from_change(cls, change: Dict[str, Any]) -> "ChangeRecord":
        """Build a record from a DescribeChangeSet ``Changes`` entry."""
        resource = change.get("ResourceChange") or {}
        return cls(
            kind=change.get("Type", ""),
            action=resource.get("Action", ""),
            resource_type=resource.get("ResourceType", ""),
            logical_id=resource.get("LogicalResourceId", ""),
            physical_id=resource.get("PhysicalResourceId", ""),
            scope=tuple(resource.get("Scope", [])),
            replacement=resource.get("Replacement", ""),
            raw=change,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "action": self.action,
            "resource_type": self.resource_type,
            "logical_id": self.logical_id,
            "physical_id": self.physical_id,
            "scope": list(self.scope),
            "replacement": self.replacement,
            "replacement_required": self.replacement_required,
        }


@dataclass(frozen=True)
class ChangeSetResult:
    """Terminal outcome of a change set."""

    status: str
    status_reason: Optional[str] = None
    changes: Tuple[ChangeRecord, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status.endswith("_COMPLETE")


def _style(text: str, color: bool, **styles: Any) -> str:
    return click.style(text, **styles) if color else text


def render_change(record: ChangeRecord, color: bool = False) -> str:
    """Render a single resource change as one line."""
    fields = [
        _style(record.action, color, bold=True),
        _style(record.resource_type, color, dim=True),
        _style(record.logical_id, color, bold=True),
        _style(record.physical_id, color, dim=True),
        _style(", ".join(record.scope), color, bold=True),
    ]
    line = " ".join(fields)
    if record.replacement_required:
        line = f"{line} {REPLACEMENT_MARKER}"

    marker = ACTION_MARKERS.get(record.action)
    if marker is None:
        return line
    return marker + _style(line, color, fg=ACTION_COLORS[record.action])


def render_changes(records: Sequence[ChangeRecord], color: bool = False) -> List[str]:
    """Render changes grouped by action name.

    The sort is a plain string sort of the action, so Add, Modify and Remove
    come out in that order; ties keep their original order.
    """
    lines = []
    for record in sorted(records, key=lambda r: r.action):
        if record.kind == "Resource":
            lines.append(render_change(record, color=color))
        else:
            lines.append(f"other {record.raw or record!r}")
    return lines


def render_result(result: ChangeSetResult, color: bool = False) -> List[str]:
    """Render a terminal change set, or its status when it did not succeed."""
    if result.succeeded:
        return render_changes(result.changes, color=color)

    line = f"change set status is {result.status}"
    if result.status_reason:
        line = f"{line}: {result.status_reason}"
    return [line]
