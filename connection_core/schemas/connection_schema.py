"""
Pydantic models describing the fields a connection asks the user for.

A ConnectionSchema is immutable. Validation is pure and collects every
violation instead of stopping at the first one, so a setup form can show all
problems in one round trip.
"""

import re
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import Limits
from ..enums import FieldKind
from ..exceptions import ValidationError


class FieldViolation(BaseModel):
    """One failed check on one field."""

    model_config = ConfigDict(frozen=True)

    field: str
    reason: str


class FieldValidator(BaseModel):
    """Base class for field validators; ``check`` returns a reason or None."""

    model_config = ConfigDict(frozen=True)

    def check(self, value: str) -> Optional[str]:
        raise NotImplementedError


class PatternValidator(FieldValidator):
    """Whole-value regular expression match."""

    pattern: str
    reason: str = "pattern"

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v):
        """Reject patterns that do not compile."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression: {e}")
        return v

    def check(self, value: str) -> Optional[str]:
        return None if re.fullmatch(self.pattern, value) else self.reason


class LengthValidator(FieldValidator):
    """Inclusive length bounds."""

    min_length: Optional[int] = Field(None, ge=0)
    max_length: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_bounds(self):
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError("min_length cannot exceed max_length")
        return self

    def check(self, value: str) -> Optional[str]:
        if self.min_length is not None and len(value) < self.min_length:
            return "too-short"
        if self.max_length is not None and len(value) > self.max_length:
            return "too-long"
        return None


class PredicateValidator(FieldValidator):
    """Custom predicate; a raising predicate counts as a failed check."""

    predicate: Callable[[str], bool]
    reason: str = Field(..., min_length=1)

    def check(self, value: str) -> Optional[str]:
        try:
            ok = self.predicate(value)
        except Exception:
            return self.reason
        return None if ok else self.reason


class SchemaField(BaseModel):
    """A single input of a connection schema."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=Limits.MAX_FIELD_NAME_LENGTH)
    kind: FieldKind = FieldKind.SECRET
    required: bool = True
    validators: Tuple[FieldValidator, ...] = ()
    title: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_secret(self) -> bool:
        return self.kind is FieldKind.SECRET


class ConnectionSchema(BaseModel):
    """Ordered, named set of fields for one auth method."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, max_length=Limits.MAX_DEFINITION_ID_LENGTH)
    fields: Tuple[SchemaField, ...] = Field(..., min_length=1)

    @field_validator("fields")
    @classmethod
    def validate_unique_names(cls, v):
        """Field names must be unique within a schema."""
        seen = set()
        duplicates = []
        for schema_field in v:
            if schema_field.name in seen:
                duplicates.append(schema_field.name)
            seen.add(schema_field.name)
        if duplicates:
            raise ValueError(f"Duplicate field names in schema: {', '.join(duplicates)}")
        return v

    @property
    def field_names(self) -> List[str]:
        return [schema_field.name for schema_field in self.fields]

    def get_field(self, name: str) -> Optional[SchemaField]:
        for schema_field in self.fields:
            if schema_field.name == name:
                return schema_field
        return None

    def validate_input(self, raw_input: Optional[Mapping[str, str]]) -> List[FieldViolation]:
        """
        Check raw user input against every field.

        Args:
            raw_input: Field name to submitted value

        Returns:
            All violations, in schema field order; empty when the input is valid
        """
        provided = raw_input or {}
        violations: List[FieldViolation] = []

        for schema_field in self.fields:
            value = provided.get(schema_field.name)

            if value is None or (isinstance(value, str) and not value.strip()):
                if schema_field.required:
                    violations.append(FieldViolation(field=schema_field.name, reason="required"))
                continue

            if not isinstance(value, str):
                violations.append(FieldViolation(field=schema_field.name, reason="not-a-string"))
                continue

            for validator in schema_field.validators:
                reason = validator.check(value)
                if reason:
                    violations.append(FieldViolation(field=schema_field.name, reason=reason))

        return violations

    def normalize(self, raw_input: Optional[Mapping[str, str]]) -> Dict[str, str]:
        """Keep declared, non-empty values only."""
        provided = raw_input or {}
        return {
            name: provided[name]
            for name in self.field_names
            if isinstance(provided.get(name), str) and provided[name].strip()
        }

    def validate_or_raise(self, raw_input: Optional[Mapping[str, str]]) -> Dict[str, str]:
        """
        Validate and return the normalized values.

        Raises:
            ValidationError: Carrying every violation
        """
        violations = self.validate_input(raw_input)
        if violations:
            raise ValidationError(
                f"Connection input failed schema '{self.id}'",
                field=violations[0].field if len(violations) == 1 else None,
                violations=violations,
                schema_id=self.id,
            )
        return self.normalize(raw_input)
