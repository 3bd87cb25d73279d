import sys
import unittest
from datetime import date
from pathlib import Path

FORM_SERVICE_ROOT = Path(__file__).resolve().parents[1]
if str(FORM_SERVICE_ROOT) not in sys.path:
    sys.path.insert(0, str(FORM_SERVICE_ROOT))

from app.errors import FormulaError  # noqa: E402
from app.formula import evaluate, format_number, substitute_fields  # noqa: E402


class ArithmeticTests(unittest.TestCase):
    def test_operator_precedence(self):
        self.assertEqual(evaluate("2 + 3 * 4", {}), "14")

    def test_parentheses_and_division(self):
        self.assertEqual(evaluate("(1 + 2) / 2", {}), "1.5")
        self.assertEqual(evaluate("10 / 4 * 2", {}), "5")

    def test_unary_minus(self):
        self.assertEqual(evaluate("-3 + 1", {}), "-2")

    def test_leading_zeros(self):
        self.assertEqual(evaluate("007 + 0.5", {}), "7.5")

    def test_division_by_zero_fails(self):
        with self.assertRaises(FormulaError) as ctx:
            evaluate("(1+2)/0", {})
        self.assertEqual(ctx.exception.reason, "invalid expression")

    def test_unbalanced_parentheses_fail(self):
        with self.assertRaises(FormulaError):
            evaluate("(1 + 2", {})

    def test_power_is_not_part_of_the_grammar(self):
        with self.assertRaises(FormulaError):
            evaluate("2 ** 3", {})

    def test_empty_formula(self):
        self.assertEqual(evaluate("", {}), "")
        self.assertEqual(evaluate("   ", {}), "")

    def test_non_ascii_digits_are_not_arithmetic(self):
        self.assertEqual(evaluate("٣ + 1", {}), "٣ + 1")

    def test_multiline_arithmetic(self):
        self.assertEqual(evaluate("1 +\n2", {}), "3")


class SubstitutionTests(unittest.TestCase):
    def test_numbers_substituted_raw(self):
        self.assertEqual(evaluate("a + b", {"a": 2, "b": 3}), "5")

    def test_negative_values_are_parenthesized(self):
        self.assertEqual(substitute_fields("a - b", {"a": 2, "b": -3}), "2 - (-3)")
        self.assertEqual(evaluate("a - b", {"a": 2, "b": -3}), "5")

    def test_whole_tokens_only(self):
        self.assertEqual(substitute_fields("a + ab", {"a": 1, "ab": 2}), "1 + 2")

    def test_numeric_ids(self):
        values = {"1712345678901": 4, "1712345678902": 6}
        self.assertEqual(evaluate("1712345678901 * 1712345678902", values), "24")

    def test_text_values_are_quoted(self):
        self.assertEqual(substitute_fields("name", {"name": 'say "hi"'}), '"say \\"hi\\""')

    def test_booleans_and_missing(self):
        self.assertEqual(substitute_fields("a b", {"a": True, "b": None}), "true null")


class ConcatenationTests(unittest.TestCase):
    def test_joins_text(self):
        values = {"first": "Ada", "last": "Lovelace"}
        self.assertEqual(evaluate('first + " " + last', values), "Ada Lovelace")

    def test_numbers_in_text(self):
        self.assertEqual(evaluate('"Total: " + n', {"n": 2.5}), "Total: 2.5")

    def test_copy_of_text_field(self):
        self.assertEqual(evaluate("name", {"name": "Ada"}), "Ada")


class DisplayTextTests(unittest.TestCase):
    def test_unsupported_syntax_is_returned_as_text(self):
        self.assertEqual(evaluate("price * qty + tax", {}), "price * qty + tax")

    def test_code_is_never_executed(self):
        formula = "__import__('os').system('echo hi')"
        self.assertEqual(evaluate(formula, {}), formula)

    def test_text_times_number_is_display_text(self):
        self.assertEqual(evaluate("a * 2", {"a": "x"}), '"x" * 2')

    def test_too_long(self):
        with self.assertRaises(FormulaError):
            evaluate("1+" * 1500 + "1", {})


class AgeShorthandTests(unittest.TestCase):
    def test_age_from_birth_date(self):
        result = evaluate(
            "age = currentYear - birthDate",
            {"birthDate": "2000-06-01"},
            parent_types={"birthDate": "date"},
            today=date(2026, 1, 15),
        )
        self.assertEqual(result, "26")

    def test_uses_current_year_by_default(self):
        result = evaluate("age", {"dob": "2000-06-01"})
        self.assertEqual(result, str(date.today().year - 2000))

    def test_empty_date(self):
        self.assertEqual(evaluate("age", {"dob": ""}, parent_types={"dob": "date"}), "")

    def test_invalid_date(self):
        with self.assertRaises(FormulaError) as ctx:
            evaluate("age", {"dob": "not a date"}, parent_types={"dob": "date"})
        self.assertEqual(ctx.exception.reason, "invalid date")

    def test_requires_a_date_parent(self):
        result = evaluate("age", {"years": 5}, parent_types={"years": "number"})
        self.assertEqual(result, "age")

    def test_requires_single_parent(self):
        values = {"a": "2000-01-01", "b": "2001-01-01"}
        types = {"a": "date", "b": "date"}
        self.assertEqual(evaluate("age", values, parent_types=types), "age")


class FormatNumberTests(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(format_number(14), "14")
        self.assertEqual(format_number(14.0), "14")
        self.assertEqual(format_number(0.1 + 0.2), "0.30000000000000004")


if __name__ == "__main__":
    unittest.main()
