from typing import Iterable, List


class FormCoreError(Exception):
    """Base exception for the form engines."""


class CycleError(FormCoreError):
    """Raised when derived fields depend on each other in a loop."""

    def __init__(self, field_ids: Iterable[str]):
        self.field_ids: List[str] = list(field_ids)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.field_ids)}")


class FormulaError(FormCoreError):
    """Raised when a derived-field formula cannot be evaluated."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FormulaError) and other.reason == self.reason

    def __hash__(self) -> int:
        return hash(("FormulaError", self.reason))


class EditorError(FormCoreError):
    """Raised when a schema edit refers to a missing field or position."""
