"""Validation and reference resolution for task field payloads.

Shared by the single-task tools and the selector-driven batch update. Names
(dartboards, statuses, assignees, tags, priority and size labels) are matched
case-insensitively against the workspace config and replaced by the values
the API expects.
"""

from typing import Any

from .exceptions import ValidationError
from .models import DartConfig
from .parsers.csv_parser import MAX_TITLE_LENGTH
from .parsers.csv_parser import find_closest_matches
from .parsers.csv_parser import is_valid_iso8601_date

TASK_FIELDS = (
    "title",
    "description",
    "dartboard",
    "status",
    "priority",
    "size",
    "assignees",
    "tags",
    "due_at",
    "start_at",
    "parent_task",
)


def _listing(names: list[str], limit: int) -> str:
    listed = ", ".join(names[:limit])
    if len(names) > limit:
        listed += f", ... ({len(names) - limit} more)"
    return listed


_PLURALS = {"status": "statuses", "priority": "priorities"}


def _not_found(field: str, label: str, value: Any, names: list[str], limit: int = 10):
    plural = _PLURALS.get(label, f"{label}s")
    raise ValidationError(
        f'Invalid {label}: "{value}" not found in workspace. Available {plural}: {_listing(names, limit)}',
        field=field,
        value=value,
        suggestions=find_closest_matches(str(value), names),
    )


def _string_list(field: str, value: Any) -> list[str]:
    if isinstance(value, str):
        value = [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(f"{field} must be a list of strings", field=field, value=value)
    return value


def resolve_task_fields(fields: dict[str, Any], config: DartConfig) -> dict[str, Any]:
    """Validate a task field mapping and resolve its references.

    Raises:
        ValidationError: On the first unknown field, malformed value or unknown
            reference; ``field`` names the offending field
    """
    resolved: dict[str, Any] = {}

    for name, value in fields.items():
        if name not in TASK_FIELDS:
            raise ValidationError(
                f"Unknown task field: {name}. Valid fields: {', '.join(TASK_FIELDS)}",
                field=name,
                suggestions=find_closest_matches(name, list(TASK_FIELDS)),
            )

        if name == "title":
            if not isinstance(value, str) or not value.strip():
                raise ValidationError("title must be a non-empty string", field="title", value=value)
            if len(value) > MAX_TITLE_LENGTH:
                raise ValidationError(
                    f"title exceeds maximum length of {MAX_TITLE_LENGTH} characters (current: {len(value)})",
                    field="title",
                )
            resolved["title"] = value

        elif name == "dartboard":
            board = config.find_dartboard(str(value))
            if board is None:
                _not_found("dartboard", "dartboard", value, [b.name for b in config.dartboards])
            resolved["dartboard"] = board.identifier

        elif name == "status":
            status = config.find_status(str(value))
            if status is None:
                _not_found("status", "status", value, [s.name for s in config.statuses], limit=50)
            resolved["status"] = status.identifier

        elif name == "priority":
            priority = config.find_priority(str(value))
            if priority is None:
                _not_found("priority", "priority", value, [p.label for p in config.priorities], limit=50)
            resolved["priority"] = priority.label

        elif name == "size":
            size = config.find_size(str(value)) or next((s for s in config.sizes if s.value == value), None)
            if size is None:
                _not_found("size", "size", value, [s.label for s in config.sizes])
            resolved["size"] = size.label

        elif name == "assignees":
            identifiers = []
            for entry in _string_list("assignees", value):
                user = config.find_assignee(entry)
                if user is None:
                    candidates = [u.email for u in config.assignees if u.email] + [u.name for u in config.assignees]
                    _not_found("assignees", "assignee", entry, candidates, limit=20)
                identifiers.append(user.identifier)
            resolved["assignees"] = identifiers

        elif name == "tags":
            identifiers = []
            for entry in _string_list("tags", value):
                tag = config.find_tag(entry)
                if tag is None:
                    _not_found("tags", "tag", entry, [t.name for t in config.tags], limit=20)
                identifiers.append(tag.identifier)
            resolved["tags"] = identifiers

        elif name in ("due_at", "start_at"):
            if not isinstance(value, str) or not is_valid_iso8601_date(value):
                raise ValidationError(
                    f'Invalid {name} date format: "{value}". Expected ISO8601 format (e.g., "2026-01-17T10:00:00Z")',
                    field=name,
                    value=value,
                )
            resolved[name] = value

        else:
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{name} must be a string", field=name, value=value)
            resolved[name] = value

    return resolved
