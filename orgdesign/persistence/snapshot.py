"""
Snapshot format and tolerant parsing.

A snapshot is the complete persisted model: organization, policies,
attachments and a small metadata block carrying the structural version.
Parsing never raises; every failure is reported as a SnapshotLoadResult.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from orgdesign.organization.models import Organization
from orgdesign.policy.models import Policy, PolicyAttachment
from orgdesign.validation.models import ErrorCategory

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0.0"
DEFAULT_STRUCTURAL_VERSION = "1.0"
UNKNOWN_APP_VERSION = "0.0.0"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class SnapshotMetadata(BaseModel):
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    app_version: str = Field(default=UNKNOWN_APP_VERSION)
    structural_version: str = Field(default=DEFAULT_STRUCTURAL_VERSION)


class PersistedSnapshot(BaseModel):
    """Complete serialized model."""
    format_version: str = Field(default=FORMAT_VERSION, description="Snapshot format version")
    organization: Organization
    policies: Dict[str, Policy] = Field(default_factory=dict)
    attachments: List[PolicyAttachment] = Field(default_factory=list)
    metadata: SnapshotMetadata = Field(default_factory=SnapshotMetadata)

    @field_validator("format_version", mode="before")
    @classmethod
    def _format_version_as_text(cls, value: Any) -> Any:
        # Non-string versions become text; a mismatch is reported as a warning
        return value if isinstance(value, str) else str(value)


class PersistenceIssue(BaseModel):
    """Problem found in a snapshot, with a JSON pointer path."""
    path: str = Field(description="JSON pointer path to issue")
    message: str = Field(description="Human-readable error message")


class PersistenceError(BaseModel):
    category: ErrorCategory = ErrorCategory.PERSISTENCE_FORMAT
    message: str
    issues: List[PersistenceIssue] = Field(default_factory=list)


class SnapshotLoadResult(BaseModel):
    """Outcome of loading a snapshot from text."""
    ok: bool
    snapshot: Optional[PersistedSnapshot] = None
    error: Optional[PersistenceError] = None
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def failure(cls, message: str, issues: Optional[List[PersistenceIssue]] = None) -> "SnapshotLoadResult":
        return cls(ok=False, error=PersistenceError(message=message, issues=issues or []))


class SnapshotFormatError(Exception):
    """Raised inside the persistence package when a snapshot is malformed."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


def _leading_int(text: str) -> Optional[int]:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else None


def increment_version(current: Optional[str]) -> str:
    """
    Bump the minor component of a ``major.minor`` structural version.

    Missing or unparseable parts default to major 1 and minor 0 before the
    increment, so ``"1.9"`` becomes ``"1.10"`` and ``""`` becomes ``"1.1"``.
    """
    parts = (current or "").split(".")
    major = _leading_int(parts[0]) or 1
    minor = (_leading_int(parts[1]) if len(parts) > 1 else None) or 0
    return f"{major}.{minor + 1}"


def sanitize_filename(name: str) -> str:
    """Lowercase, collapse every non-alphanumeric run into one dash and trim dashes."""
    sanitized = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return sanitized or "organization"


def build_snapshot(
    organization: Organization,
    policies: Dict[str, Policy],
    attachments: List[PolicyAttachment],
    app_version: str,
    structural_version: str,
) -> PersistedSnapshot:
    return PersistedSnapshot(
        format_version=FORMAT_VERSION,
        organization=organization,
        policies=policies,
        attachments=attachments,
        metadata=SnapshotMetadata(
            saved_at=datetime.now(timezone.utc),
            app_version=app_version,
            structural_version=structural_version,
        ),
    )


def dump_snapshot(snapshot: PersistedSnapshot, indent: Optional[int] = 2) -> str:
    return snapshot.model_dump_json(indent=indent)


def _check_required(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise SnapshotFormatError("/", "Snapshot must be a JSON object")
    if not data.get("format_version"):
        raise SnapshotFormatError("/format_version", "Invalid organization file format - missing required fields")
    organization = data.get("organization")
    if not isinstance(organization, dict):
        raise SnapshotFormatError("/organization", "Invalid organization file format - missing required fields")
    if organization.get("nodes") is None or not organization.get("root_id"):
        raise SnapshotFormatError("/organization", "Invalid organization structure in organization file")
    return data


def _backfill_optional(data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    if not data.get("policies"):
        data["policies"] = {}
    if not data.get("attachments"):
        data["attachments"] = []
    if not data.get("metadata"):
        data["metadata"] = {
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "app_version": UNKNOWN_APP_VERSION,
            "structural_version": DEFAULT_STRUCTURAL_VERSION,
        }
    elif isinstance(data["metadata"], dict) and not data["metadata"].get("structural_version"):
        data["metadata"] = {**data["metadata"], "structural_version": DEFAULT_STRUCTURAL_VERSION}
    return data


def parse_snapshot(raw_text: str) -> SnapshotLoadResult:
    """
    Parse snapshot text into a PersistedSnapshot.

    Requires a format version plus an organization with nodes and a root
    id. Missing policies, attachments and metadata are backfilled with safe
    defaults. A format version other than FORMAT_VERSION is accepted with a
    warning. ISO-8601 timestamps are converted to datetimes.

    Args:
        raw_text: Snapshot JSON text

    Returns:
        SnapshotLoadResult; never raises
    """
    try:
        data = json.loads(raw_text)
    except (TypeError, ValueError, RecursionError) as e:
        return SnapshotLoadResult.failure(
            f"Failed to parse organization file: {e}",
            [PersistenceIssue(path="/", message=str(e))],
        )

    try:
        data = _backfill_optional(_check_required(data))
    except SnapshotFormatError as e:
        return SnapshotLoadResult.failure(
            f"Failed to parse organization file: {e.message}",
            [PersistenceIssue(path=e.path, message=e.message)],
        )

    try:
        snapshot = PersistedSnapshot.model_validate(data)
    except PydanticValidationError as e:
        issues = [
            PersistenceIssue(path="/" + "/".join(str(part) for part in error["loc"]), message=error["msg"])
            for error in e.errors()
        ]
        return SnapshotLoadResult.failure(
            f"Failed to parse organization file: {len(issues)} invalid field(s)",
            issues,
        )

    warnings = []
    if snapshot.format_version != FORMAT_VERSION:
        warnings.append(
            f"State version mismatch: expected {FORMAT_VERSION}, got {snapshot.format_version}"
        )
        logger.warning(warnings[-1])

    return SnapshotLoadResult(ok=True, snapshot=snapshot, warnings=warnings)
