import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from app.models import FieldSchema, FormSchema, ValidationRule

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
DIGIT_PATTERN = re.compile(r"[0-9]")
PASSWORD_MIN_LENGTH = 8


class ValidationOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    message: Optional[str] = None


VALID = ValidationOutcome(valid=True)


def _is_blank(value: Any) -> bool:
    # An unchecked checkbox (False) and the number 0 are values, not blanks.
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list):
        return not value
    return False


def rule_passes(rule: ValidationRule, value: Any) -> bool:
    if rule.kind == "required":
        return not _is_blank(value)

    # The remaining rules only constrain text.
    if not isinstance(value, str):
        return True
    if rule.kind in ("minLength", "maxLength"):
        bound = rule.numeric_bound
        if bound is None:
            return True
        return len(value) >= bound if rule.kind == "minLength" else len(value) <= bound
    if rule.kind == "email":
        return bool(EMAIL_PATTERN.fullmatch(value))
    if rule.kind == "password":
        return len(value) >= PASSWORD_MIN_LENGTH and bool(DIGIT_PATTERN.search(value))
    return True


def validate_rule(rule: ValidationRule, value: Any) -> ValidationOutcome:
    if rule_passes(rule, value):
        return VALID
    return ValidationOutcome(valid=False, message=rule.message)


def effective_rules(field: FieldSchema) -> List[ValidationRule]:
    """Declared rules, preceded by an implicit ``required`` rule when the flag is set."""
    rules = list(field.validation_rules)
    if field.required and not any(rule.kind == "required" for rule in rules):
        label = field.label or field.id
        rules.insert(0, ValidationRule(kind="required", message=f"{label} is required"))
    return rules


def validate(field: FieldSchema, value: Any) -> ValidationOutcome:
    """Run the field's rules in order and report the first failure."""
    for rule in effective_rules(field):
        outcome = validate_rule(rule, value)
        if not outcome.valid:
            return outcome
    return VALID


def validate_form(schema: FormSchema, values: Mapping[str, Any]) -> Dict[str, ValidationOutcome]:
    return {
        field.id: validate(field, values.get(field.id))
        for field in schema.fields
        if not field.is_derived
    }


def is_submittable(outcomes: Iterable[ValidationOutcome]) -> bool:
    return all(outcome.valid for outcome in outcomes)


def error_messages(outcomes: Mapping[str, ValidationOutcome]) -> Dict[str, str]:
    return {
        field_id: outcome.message or ""
        for field_id, outcome in outcomes.items()
        if not outcome.valid
    }
