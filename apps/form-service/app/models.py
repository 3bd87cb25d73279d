import math
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

FieldType = Literal["text", "number", "textarea", "select", "radio", "checkbox", "date"]
RuleKind = Literal["required", "minLength", "maxLength", "email", "password"]

ValuesMap = Dict[str, Any]

OPTION_FIELD_TYPES = ("select", "radio")


class _WireModel(BaseModel):
    """Immutable model that reads and writes the camelCase wire keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ValidationRule(_WireModel):
    kind: RuleKind = Field(alias="type")
    # Kept as written; the editor stores text-field input as a string.
    bound: Optional[Union[int, float, str]] = Field(default=None, alias="value")
    message: str = ""

    @model_validator(mode="after")
    def _check_bound(self) -> "ValidationRule":
        if self.kind in ("minLength", "maxLength") and self.bound is None:
            raise ValueError(f"{self.kind} rule requires a bound")
        return self

    @property
    def numeric_bound(self) -> Optional[float]:
        """The bound as a number, or None when it is missing or not numeric."""
        if self.bound is None or isinstance(self.bound, bool):
            return None
        try:
            number = float(self.bound)
        except ValueError:
            return None
        return number if math.isfinite(number) else None


class SelectOption(_WireModel):
    label: str
    value: str


class DerivedSpec(_WireModel):
    is_derived: bool = Field(default=False, alias="isDerived")
    parent_fields: List[str] = Field(default_factory=list, alias="parentFields")
    formula: str = ""

    @field_validator("parent_fields")
    @classmethod
    def _dedupe_parents(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class FieldSchema(_WireModel):
    id: str = Field(min_length=1)
    type: FieldType = "text"
    label: str = ""
    required: bool = False
    default_value: Union[bool, str, List[str]] = Field(default="", alias="defaultValue")
    validation_rules: List[ValidationRule] = Field(default_factory=list, alias="validationRules")
    options: Optional[List[SelectOption]] = None
    derived: Optional[DerivedSpec] = None

    @field_validator("options")
    @classmethod
    def _unique_option_values(cls, value: Optional[List[SelectOption]]) -> Optional[List[SelectOption]]:
        if value is None:
            return value
        seen: set[str] = set()
        for option in value:
            if option.value in seen:
                raise ValueError(f"duplicate option value: {option.value!r}")
            seen.add(option.value)
        return value

    @property
    def is_derived(self) -> bool:
        return bool(self.derived and self.derived.is_derived)

    @property
    def parent_ids(self) -> List[str]:
        if not self.is_derived:
            return []
        assert self.derived is not None
        return list(self.derived.parent_fields)


class FormSchema(_WireModel):
    id: str = ""
    name: str = ""
    fields: List[FieldSchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_field_references(self) -> "FormSchema":
        seen: set[str] = set()
        for field in self.fields:
            if field.id in seen:
                raise ValueError(f"duplicate field id: {field.id!r}")
            seen.add(field.id)

        # Self references and cycles are caught by the dependency graph.
        for field in self.fields:
            missing = [parent for parent in field.parent_ids if parent not in seen]
            if missing:
                raise ValueError(
                    f"derived field {field.id!r} references unknown fields: {', '.join(missing)}"
                )
        return self

    def field_map(self) -> Dict[str, FieldSchema]:
        return {field.id: field for field in self.fields}

    def get_field(self, field_id: str) -> Optional[FieldSchema]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None


class SavedForm(_WireModel):
    id: str
    name: str
    fields: List[FieldSchema] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")

    def to_schema(self) -> FormSchema:
        return FormSchema(id=self.id, name=self.name, fields=list(self.fields))


def coerce_value(field: Optional[FieldSchema], value: Any) -> Any:
    """Normalize a raw runtime value according to the field's declared type.

    Number inputs arrive as text from the editor, so numeric strings become
    ``int``/``float`` here; blank or non-numeric text is left untouched.
    """
    if field is None or value is None:
        return value
    if isinstance(value, list):
        return [str(item) for item in value]
    if field.type == "number":
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value
        text = str(value).strip()
        if not text:
            return ""
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return value
        return number if math.isfinite(number) else value
    if isinstance(value, bool):
        return value
    return value if isinstance(value, str) else str(value)
