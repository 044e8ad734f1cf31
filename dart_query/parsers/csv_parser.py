"""CSV parsing, validation and reference resolution for task imports.

Column headers are matched against a custom mapping first and then against
built-in case-insensitive aliases, so spreadsheets exported from other tools
(``Task Name``, ``Assigned To``, ``Story Points``) import without editing.
Human-readable references (dartboard, status, assignee and tag names) are
resolved against the workspace configuration, with fuzzy suggestions for
near misses.
"""

from __future__ import annotations

import csv
import datetime
import io
import re
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from rapidfuzz.distance import Levenshtein

from ..models import DartConfig

COLUMN_ALIASES: dict[str, list[str]] = {
    "title": ["title", "task name", "task", "name", "summary"],
    "description": ["description", "desc", "details", "notes", "body"],
    "assignee": ["assignee", "assigned to", "owner", "responsible"],
    "status": ["status", "state", "stage"],
    "priority": ["priority", "pri", "importance"],
    "size": ["size", "estimate", "points", "story points"],
    "tags": ["tags", "labels", "categories"],
    "dartboard": ["dartboard", "board", "project"],
    "due_at": ["due_at", "due date", "due", "deadline"],
    "start_at": ["start_at", "start date", "start", "begins"],
    "parent_task": ["parent_task", "parent", "parent id"],
}

VALID_COLUMNS = list(COLUMN_ALIASES)
REQUIRED_COLUMNS = ["title"]
MAX_TITLE_LENGTH = 500
FIRST_DATA_ROW = 2

_SNIFF_DELIMITERS = ",;\t|"
_ISO8601_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2}(\.\d{3})?(Z|[+-]\d{2}:\d{2})?)?$")


@dataclass
class CSVParseResult:
    """Normalized rows plus the warnings and errors met while parsing."""

    rows: list[dict[str, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class RowIssue:
    """One problem found in one row."""

    row_number: int
    field: str
    error: str
    value: Any = None

    def format(self) -> str:
        return f"{self.field}: {self.error}"


@dataclass
class Suggestion:
    field: str
    input: str
    suggestions: list[str]


@dataclass
class ResolveResult:
    resolved: dict[str, Any]
    errors: list[RowIssue] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)


# === Parsing ===


def _read_content(csv_data: str | None, csv_file_path: str | None, result: CSVParseResult) -> str | None:
    if not csv_data and not csv_file_path:
        result.errors.append("Either csv_data or csv_file_path must be provided")
        return None
    if csv_data and csv_file_path:
        result.warnings.append("Both csv_data and csv_file_path provided; using csv_data")
    if csv_data:
        return csv_data
    try:
        with open(csv_file_path, encoding="utf-8-sig", newline="") as f:
            return f.read()
    except OSError as e:
        result.errors.append(f"Failed to read CSV file: {e}")
        return None


def _sniff_dialect(content: str) -> type[csv.Dialect]:
    sample = content[:8192]
    try:
        return csv.Sniffer().sniff(sample, delimiters=_SNIFF_DELIMITERS)
    except csv.Error:
        # Single-column files have no delimiter to detect.
        return csv.excel


def _is_blank(record: list[str]) -> bool:
    return all(not cell.strip() for cell in record)


def count_data_rows(csv_data: str | None = None, csv_file_path: str | None = None) -> int:
    """Count non-blank data records without normalizing them.

    Used to enforce the row ceiling before the full parse. Malformed input is
    counted as far as it can be read; ``parse_csv`` reports the errors.
    """
    scratch = CSVParseResult()
    content = _read_content(csv_data, csv_file_path, scratch)
    if not content or not content.strip():
        return 0

    count = 0
    reader = csv.reader(io.StringIO(content), dialect=_sniff_dialect(content))
    try:
        for record in reader:
            if not _is_blank(record):
                count += 1
    except csv.Error:
        pass
    return max(0, count - 1)


def parse_csv(
    csv_data: str | None = None,
    csv_file_path: str | None = None,
    column_mapping: dict[str, str] | None = None,
) -> CSVParseResult:
    """Parse CSV text or a CSV file into rows keyed by canonical column name.

    Args:
        csv_data: Inline CSV content (takes precedence over ``csv_file_path``)
        csv_file_path: Path to a UTF-8 CSV file
        column_mapping: Custom ``{csv header: canonical column}`` mapping

    Returns:
        CSVParseResult: Rows with trimmed, non-empty values; any ``errors`` mean
        the input must be rejected
    """
    result = CSVParseResult()
    content = _read_content(csv_data, csv_file_path, result)
    if content is None:
        return result
    if not content.strip():
        result.errors.append("CSV content is empty")
        return result

    reader = csv.reader(io.StringIO(content), dialect=_sniff_dialect(content), strict=True)
    headers: list[str] | None = None
    records: list[dict[str, str]] = []
    row_number = 1
    try:
        for record in reader:
            if _is_blank(record):
                continue
            if headers is None:
                headers = [header.strip() for header in record]
                continue
            row_number += 1
            if len(record) != len(headers):
                problem = "Too many fields" if len(record) > len(headers) else "Too few fields"
                result.errors.append(
                    f"CSV parse error at row {row_number}: {problem}: "
                    f"expected {len(headers)} fields but parsed {len(record)}"
                )
            records.append(dict(zip(headers, record)))
    except csv.Error as e:
        result.errors.append(f"CSV parse error at row {row_number + 1}: {e}")

    if not headers or not any(headers):
        result.errors.append("CSV must have a header row with column names")
        return result

    normalized = normalize_columns(records, headers, column_mapping)
    result.rows = normalized.rows
    result.warnings.extend(normalized.warnings)
    result.errors.extend(normalized.errors)
    return result


def _map_header(header: str, column_mapping: dict[str, str] | None, warnings: list[str]) -> str | None:
    if column_mapping:
        target = column_mapping.get(header)
        if target is None:
            lowered = header.lower()
            target = next((v for k, v in column_mapping.items() if k.lower() == lowered), None)
        if target:
            if target not in VALID_COLUMNS:
                warnings.append(f'Custom mapping for "{header}" maps to unknown field "{target}"; using anyway')
            return target

    lowered = header.lower()
    for canonical, aliases in COLUMN_ALIASES.items():
        if lowered in aliases:
            return canonical
    return None


def normalize_columns(
    records: list[dict[str, str]],
    headers: list[str],
    column_mapping: dict[str, str] | None = None,
) -> CSVParseResult:
    """Rename columns to canonical names and drop empty values."""
    result = CSVParseResult()
    header_mapping: dict[str, str] = {}
    unmapped: list[str] = []

    for header in headers:
        header = header.strip()
        if not header:
            result.warnings.append("Found empty column header; skipping")
            continue
        target = _map_header(header, column_mapping, result.warnings)
        if target is None:
            unmapped.append(header)
        else:
            header_mapping[header] = target

    if unmapped:
        result.warnings.append(f"Unknown columns (will be ignored): {', '.join(unmapped)}")
        result.warnings.append(f"Valid columns: {', '.join(VALID_COLUMNS)}")

    mapped_fields = set(header_mapping.values())
    for required in REQUIRED_COLUMNS:
        if required not in mapped_fields:
            result.errors.append(f"Required column '{required}' is missing")
            result.errors.append(f"Hint: '{required}' can be named: {', '.join(COLUMN_ALIASES[required])}")
    if result.errors:
        return result

    for row_number, record in enumerate(records, start=FIRST_DATA_ROW):
        row = {}
        for header, target in header_mapping.items():
            value = record.get(header)
            if value is not None and value.strip():
                row[target] = value.strip()

        for required in REQUIRED_COLUMNS:
            if required not in row:
                result.warnings.append(f"Row {row_number}: Required field '{required}' is empty")

        if row:
            result.rows.append(row)

    return result


def get_supported_columns() -> dict[str, list[str]]:
    return {canonical: list(aliases) for canonical, aliases in COLUMN_ALIASES.items()}


def is_valid_column(column_name: str) -> bool:
    lowered = column_name.strip().lower()
    return any(lowered in aliases for aliases in COLUMN_ALIASES.values())


# === Validation & Resolution ===


def find_closest_matches(value: str, candidates: list[str], threshold: int = 2, limit: int = 3) -> list[str]:
    """Return up to ``limit`` candidates within ``threshold`` edits of ``value``, closest first."""
    needle = value.lower()
    scored = []
    for candidate in dict.fromkeys(candidates):
        distance = Levenshtein.distance(needle, candidate.lower(), score_cutoff=threshold)
        if distance <= threshold:
            scored.append((distance, candidate))
    scored.sort(key=lambda pair: pair[0])
    return [candidate for _, candidate in scored[:limit]]


def is_valid_iso8601_date(value: str) -> bool:
    """Accept ``YYYY-MM-DD`` and ``YYYY-MM-DDTHH:MM:SS[.mmm][Z|±HH:MM]`` naming a real instant."""
    if not _ISO8601_PATTERN.match(value):
        return False
    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        datetime.datetime.fromisoformat(normalized)
    except ValueError:
        return False
    return True


def _split_tags(value: str) -> list[str]:
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def _available(labels: list[str], limit: int | None = None) -> str:
    if limit is None or len(labels) <= limit:
        return ", ".join(labels)
    return ", ".join(labels[:limit]) + f", ... ({len(labels) - limit} more)"


def validate_row(row: dict[str, str], config: DartConfig, row_number: int) -> list[RowIssue]:
    """Check required fields, formats and reference existence for one row."""
    issues: list[RowIssue] = []

    title = row.get("title", "")
    if not title.strip():
        issues.append(RowIssue(row_number, "title", "Title is required", title))
    elif len(title) > MAX_TITLE_LENGTH:
        issues.append(
            RowIssue(row_number, "title", f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters", title)
        )

    if row.get("priority") and config.find_priority(row["priority"]) is None:
        labels = [p.label for p in config.priorities]
        issues.append(
            RowIssue(
                row_number,
                "priority",
                f'Invalid priority: "{row["priority"]}". Available priorities: {_available(labels)}',
                row["priority"],
            )
        )

    if row.get("size") and config.find_size(row["size"]) is None:
        labels = [s.label for s in config.sizes]
        issues.append(
            RowIssue(
                row_number,
                "size",
                f'Invalid size: "{row["size"]}". Available sizes: {_available(labels, limit=10)}',
                row["size"],
            )
        )

    for date_field, label in (("due_at", "Due date"), ("start_at", "Start date")):
        if row.get(date_field) and not is_valid_iso8601_date(row[date_field]):
            issues.append(
                RowIssue(
                    row_number,
                    date_field,
                    f"{label} must be in ISO8601 format (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SSZ)",
                    row[date_field],
                )
            )

    if row.get("dartboard") and config.find_dartboard(row["dartboard"]) is None:
        value = row["dartboard"].strip()
        issues.append(RowIssue(row_number, "dartboard", f"Dartboard '{value}' not found in workspace", value))

    if row.get("status") and config.find_status(row["status"]) is None:
        value = row["status"].strip()
        issues.append(RowIssue(row_number, "status", f"Status '{value}' not found in workspace", value))

    if row.get("assignee") and config.find_assignee(row["assignee"]) is None:
        value = row["assignee"].strip()
        issues.append(RowIssue(row_number, "assignee", f"Assignee '{value}' not found in workspace", value))

    for tag in _split_tags(row.get("tags", "")):
        if config.find_tag(tag) is None:
            issues.append(RowIssue(row_number, "tags", f"Tag '{tag}' not found in workspace", tag))

    return issues


def resolve_references(row: dict[str, str], config: DartConfig, row_number: int) -> ResolveResult:
    """Replace human-readable references with workspace identifiers.

    Unresolvable references are reported as errors, with up to three
    near-miss suggestions each.
    """
    result = ResolveResult(resolved=dict(row))

    def miss(field_name: str, label: str, value: str, candidates: list[str]):
        result.errors.append(RowIssue(row_number, field_name, f"{label} '{value}' not found in workspace", value))
        matches = find_closest_matches(value, candidates)
        if matches:
            result.suggestions.append(Suggestion(field_name, value, matches))

    if "dartboard" in row:
        value = row["dartboard"].strip()
        board = config.find_dartboard(value) if value else None
        if not value:
            result.errors.append(
                RowIssue(row_number, "dartboard", "Dartboard value is empty or whitespace-only", row["dartboard"])
            )
        elif board is not None:
            result.resolved["dartboard"] = board.identifier
        else:
            miss("dartboard", "Dartboard", value, [b.name for b in config.dartboards])

    if row.get("status"):
        value = row["status"].strip()
        status = config.find_status(value)
        if status is not None:
            result.resolved["status"] = status.identifier
        else:
            miss("status", "Status", value, [s.name for s in config.statuses])

    if row.get("assignee"):
        value = row["assignee"].strip()
        user = config.find_assignee(value)
        if user is not None:
            result.resolved["assignee"] = user.identifier
        else:
            candidates = [u.email for u in config.assignees if u.email] + [u.name for u in config.assignees]
            miss("assignee", "Assignee", value, candidates)

    if "tags" in row:
        names = _split_tags(row["tags"])
        if not row["tags"].strip():
            result.errors.append(RowIssue(row_number, "tags", "Tags value is empty or whitespace-only", row["tags"]))
        elif not names:
            result.errors.append(
                RowIssue(row_number, "tags", "Tags value contains only commas, no tag names", row["tags"])
            )
        else:
            resolved_tags = []
            for name in names:
                tag = config.find_tag(name)
                if tag is not None:
                    resolved_tags.append(tag.identifier)
                else:
                    miss("tags", "Tag", name, [t.name for t in config.tags])
            if len(resolved_tags) == len(names):
                result.resolved["tags"] = resolved_tags
            else:
                result.resolved.pop("tags", None)

    if row.get("priority"):
        priority = config.find_priority(row["priority"])
        if priority is not None:
            result.resolved["priority"] = priority.label

    if row.get("size"):
        size = config.find_size(row["size"])
        if size is not None:
            result.resolved["size"] = size.label

    return result
