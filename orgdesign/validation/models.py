"""
Validation result models.

Every gated operation reports its verdict as a ValidationResult carrying
machine-readable errors, so callers can render feedback without parsing
messages.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field


class ErrorCategory(str, Enum):
    """Coarse error taxonomy."""
    STRUCTURAL_LIMIT = "StructuralLimit"
    STRUCTURAL_INTEGRITY = "StructuralIntegrity"
    POLICY_LIMIT = "PolicyLimit"
    POLICY_FORMAT = "PolicyFormat"
    POLICY_NAME_CONFLICT = "PolicyNameConflict"
    POLICY_PROTECTION = "PolicyProtection"
    POLICY_REFERENCE = "PolicyReference"
    PERSISTENCE_FORMAT = "PersistenceFormat"


class ValidationErrorKind(str, Enum):
    """Machine-readable validation error kinds."""
    ACCOUNT_LIMIT_EXCEEDED = "ACCOUNT_LIMIT_EXCEEDED"
    UNIT_LIMIT_EXCEEDED = "UNIT_LIMIT_EXCEEDED"
    NESTING_LIMIT_EXCEEDED = "NESTING_LIMIT_EXCEEDED"
    ORGANIZATION_MISSING = "ORGANIZATION_MISSING"
    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    ROOT_PROTECTION = "ROOT_PROTECTION"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    INVALID_NODE_NAME = "INVALID_NODE_NAME"
    INCONSISTENT_TREE = "INCONSISTENT_TREE"
    POLICY_LIMIT_EXCEEDED = "POLICY_LIMIT_EXCEEDED"
    POLICY_SIZE_EXCEEDED = "POLICY_SIZE_EXCEEDED"
    INVALID_POLICY_JSON = "INVALID_POLICY_JSON"
    EMPTY_POLICY_NAME = "EMPTY_POLICY_NAME"
    DUPLICATE_POLICY_NAME = "DUPLICATE_POLICY_NAME"
    DEFAULT_POLICY_PROTECTION = "DEFAULT_POLICY_PROTECTION"
    POLICY_NOT_ATTACHED = "POLICY_NOT_ATTACHED"
    POLICY_NOT_FOUND = "POLICY_NOT_FOUND"


_CATEGORIES: Dict[ValidationErrorKind, ErrorCategory] = {
    ValidationErrorKind.ACCOUNT_LIMIT_EXCEEDED: ErrorCategory.STRUCTURAL_LIMIT,
    ValidationErrorKind.UNIT_LIMIT_EXCEEDED: ErrorCategory.STRUCTURAL_LIMIT,
    ValidationErrorKind.NESTING_LIMIT_EXCEEDED: ErrorCategory.STRUCTURAL_LIMIT,
    ValidationErrorKind.ORGANIZATION_MISSING: ErrorCategory.STRUCTURAL_INTEGRITY,
    ValidationErrorKind.NODE_NOT_FOUND: ErrorCategory.STRUCTURAL_INTEGRITY,
    ValidationErrorKind.ROOT_PROTECTION: ErrorCategory.STRUCTURAL_INTEGRITY,
    ValidationErrorKind.CYCLE_DETECTED: ErrorCategory.STRUCTURAL_INTEGRITY,
    ValidationErrorKind.INVALID_NODE_NAME: ErrorCategory.STRUCTURAL_INTEGRITY,
    ValidationErrorKind.INCONSISTENT_TREE: ErrorCategory.STRUCTURAL_INTEGRITY,
    ValidationErrorKind.POLICY_LIMIT_EXCEEDED: ErrorCategory.POLICY_LIMIT,
    ValidationErrorKind.POLICY_SIZE_EXCEEDED: ErrorCategory.POLICY_LIMIT,
    ValidationErrorKind.INVALID_POLICY_JSON: ErrorCategory.POLICY_FORMAT,
    ValidationErrorKind.EMPTY_POLICY_NAME: ErrorCategory.POLICY_NAME_CONFLICT,
    ValidationErrorKind.DUPLICATE_POLICY_NAME: ErrorCategory.POLICY_NAME_CONFLICT,
    ValidationErrorKind.DEFAULT_POLICY_PROTECTION: ErrorCategory.POLICY_PROTECTION,
    ValidationErrorKind.POLICY_NOT_ATTACHED: ErrorCategory.POLICY_PROTECTION,
    ValidationErrorKind.POLICY_NOT_FOUND: ErrorCategory.POLICY_REFERENCE,
}


class ValidationError(BaseModel):
    """Single validation failure."""
    kind: ValidationErrorKind = Field(description="Machine-readable error kind")
    message: str = Field(description="Human-readable error message")
    node_id: Optional[str] = Field(default=None, description="Related node")
    policy_id: Optional[str] = Field(default=None, description="Related policy")
    current_count: Optional[int] = Field(default=None, description="Count that caused the violation")
    max_allowed: Optional[int] = Field(default=None, description="Configured maximum")

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self.kind]


class ValidationResult(BaseModel):
    """Outcome of a validation check."""
    is_valid: bool = Field(description="Overall validation success")
    errors: List[ValidationError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: Iterable[ValidationError], warnings: Iterable[str] = ()):
        errors = list(errors)
        return cls(is_valid=not errors, errors=errors, warnings=list(warnings))

    @classmethod
    def success(cls):
        return cls(is_valid=True)

    def has_kind(self, kind: ValidationErrorKind) -> bool:
        return any(error.kind == kind for error in self.errors)

    def has_category(self, category: ErrorCategory) -> bool:
        return any(error.category == category for error in self.errors)


class OperationResult(ValidationResult):
    """Result of a store mutation; ``subject_id`` names the created or changed entity."""
    subject_id: Optional[str] = Field(default=None)

    @classmethod
    def rejected(cls, validation: ValidationResult, subject_id: Optional[str] = None) -> "OperationResult":
        return cls(
            is_valid=False,
            errors=list(validation.errors),
            warnings=list(validation.warnings),
            subject_id=subject_id,
        )

    @classmethod
    def accepted(cls, subject_id: Optional[str] = None, warnings: Iterable[str] = ()) -> "OperationResult":
        return cls(is_valid=True, subject_id=subject_id, warnings=list(warnings))
