import sys
import unittest
from pathlib import Path

FORM_SERVICE_ROOT = Path(__file__).resolve().parents[1]
if str(FORM_SERVICE_ROOT) not in sys.path:
    sys.path.insert(0, str(FORM_SERVICE_ROOT))

from app.models import FieldSchema, FormSchema, ValidationRule  # noqa: E402
from app.validation import (  # noqa: E402
    effective_rules,
    error_messages,
    is_submittable,
    validate,
    validate_form,
    validate_rule,
)


def _rule(kind, message, bound=None):
    return ValidationRule(kind=kind, bound=bound, message=message)


def _field(rules, field_type="text", required=False, label="Field"):
    return FieldSchema(id="f", type=field_type, label=label, required=required, validation_rules=rules)


class RuleTests(unittest.TestCase):
    def test_min_length(self):
        rule = _rule("minLength", "too short", bound=5)
        outcome = validate_rule(rule, "abc")
        self.assertFalse(outcome.valid)
        self.assertEqual(outcome.message, "too short")
        self.assertTrue(validate_rule(rule, "abcdef").valid)

    def test_max_length(self):
        rule = _rule("maxLength", "too long", bound=3)
        self.assertTrue(validate_rule(rule, "abc").valid)
        self.assertFalse(validate_rule(rule, "abcd").valid)

    def test_length_rules_ignore_non_text(self):
        self.assertTrue(validate_rule(_rule("minLength", "short", bound=5), 3).valid)
        self.assertTrue(validate_rule(_rule("maxLength", "long", bound=1), ["a", "b"]).valid)

    def test_required(self):
        rule = _rule("required", "needed")
        for blank in (None, "", "   ", []):
            self.assertFalse(validate_rule(rule, blank).valid, blank)
        for present in ("x", 0, ["a"]):
            self.assertTrue(validate_rule(rule, present).valid, present)

    def test_required_accepts_unchecked_checkbox(self):
        self.assertTrue(validate_rule(_rule("required", "needed"), False).valid)

    def test_email(self):
        rule = _rule("email", "bad email")
        self.assertTrue(validate_rule(rule, "ada@example.com").valid)
        for bad in (
            "ada",
            "ada@example",
            "a da@example.com",
            "ada@@example.com",
            "@example.com",
            "a@b.co\n",
        ):
            self.assertFalse(validate_rule(rule, bad).valid, bad)

    def test_password(self):
        rule = _rule("password", "weak")
        self.assertTrue(validate_rule(rule, "correct1horse").valid)
        self.assertFalse(validate_rule(rule, "short1").valid)
        self.assertFalse(validate_rule(rule, "nodigitshere").valid)
        self.assertFalse(validate_rule(rule, "password٣").valid)

    def test_text_bound_is_read_as_number(self):
        rule = ValidationRule.model_validate({"type": "minLength", "value": "5", "message": "too short"})
        self.assertEqual(rule.bound, "5")
        self.assertFalse(validate_rule(rule, "abc").valid)
        self.assertTrue(validate_rule(rule, "abcde").valid)

    def test_non_numeric_bound_constrains_nothing(self):
        rule = ValidationRule.model_validate({"type": "maxLength", "value": "lots", "message": "too long"})
        self.assertTrue(validate_rule(rule, "a" * 50).valid)


class ValidateFieldTests(unittest.TestCase):
    def test_first_failing_rule_wins(self):
        field = _field(
            [
                _rule("minLength", "at least 8", bound=8),
                _rule("email", "not an email"),
            ]
        )
        self.assertEqual(validate(field, "a@b").message, "at least 8")
        self.assertEqual(validate(field, "abcdefghij").message, "not an email")
        self.assertTrue(validate(field, "ada@example.com").valid)

    def test_empty_rules_pass(self):
        self.assertTrue(validate(_field([]), "").valid)

    def test_required_flag_adds_implicit_rule(self):
        field = _field([_rule("minLength", "short", bound=2)], required=True, label="Name")
        self.assertEqual(validate(field, "").message, "Name is required")
        self.assertEqual(effective_rules(field)[0].kind, "required")

    def test_explicit_required_rule_is_not_duplicated(self):
        field = _field([_rule("required", "Please fill in")], required=True)
        self.assertEqual(len(effective_rules(field)), 1)
        self.assertEqual(validate(field, " ").message, "Please fill in")


class ValidateFormTests(unittest.TestCase):
    def setUp(self):
        self.schema = FormSchema.model_validate(
            {
                "fields": [
                    {
                        "id": "email",
                        "type": "text",
                        "label": "Email",
                        "validationRules": [{"type": "email", "message": "Bad email"}],
                    },
                    {"id": "name", "type": "text", "label": "Name", "required": True},
                    {
                        "id": "shout",
                        "type": "text",
                        "label": "Shout",
                        "required": True,
                        "derived": {"isDerived": True, "parentFields": ["name"], "formula": "name"},
                    },
                ]
            }
        )

    def test_skips_derived_fields(self):
        outcomes = validate_form(self.schema, {"email": "x", "name": ""})
        self.assertEqual(set(outcomes), {"email", "name"})
        self.assertFalse(is_submittable(outcomes.values()))
        self.assertEqual(error_messages(outcomes), {"email": "Bad email", "name": "Name is required"})

    def test_valid_form(self):
        outcomes = validate_form(self.schema, {"email": "ada@example.com", "name": "Ada"})
        self.assertTrue(is_submittable(outcomes.values()))
        self.assertEqual(error_messages(outcomes), {})

    def test_field_order_does_not_change_results(self):
        reordered = FormSchema(fields=list(reversed(self.schema.fields)))
        values = {"email": "nope", "name": ""}
        self.assertEqual(validate_form(self.schema, values), validate_form(reordered, values))


if __name__ == "__main__":
    unittest.main()
