import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional

from app.errors import CycleError, FormulaError
from app.formula import evaluate
from app.graph import DependencyGraph, build_graph
from app.models import FormSchema, ValuesMap, coerce_value

logger = logging.getLogger(__name__)

ERROR_SENTINEL = "Error in calculation"


@dataclass(frozen=True)
class ComputationResult:
    values: ValuesMap
    errors: Dict[str, FormulaError] = field(default_factory=dict)
    cycle: Optional[CycleError] = None

    @property
    def ok(self) -> bool:
        return self.cycle is None and not self.errors

    def error_reasons(self) -> Dict[str, str]:
        return {field_id: error.reason for field_id, error in self.errors.items()}


def initial_values(schema: FormSchema) -> ValuesMap:
    """Seed values for a freshly loaded schema: defaults of non-derived fields."""
    values: ValuesMap = {}
    for form_field in schema.fields:
        if form_field.is_derived:
            continue
        default = form_field.default_value
        values[form_field.id] = list(default) if isinstance(default, list) else default
    return values


def _visit_order(graph: DependencyGraph, changed_field_id: Optional[str]) -> Iterable[str]:
    if changed_field_id is None:
        return graph.order
    return graph.affected_by(changed_field_id)


def recompute(
    schema: FormSchema,
    graph: DependencyGraph,
    current_values: Mapping[str, Any],
    changed_field_id: Optional[str] = None,
    today: Optional[date] = None,
) -> ComputationResult:
    """Recompute derived fields in dependency order.

    With ``changed_field_id`` only the fields downstream of it are evaluated;
    otherwise every derived field is. Formula failures never raise: the field
    gets :data:`ERROR_SENTINEL` and the error is reported in ``errors``.
    """
    fields_by_id = schema.field_map()
    values: ValuesMap = dict(current_values)
    errors: Dict[str, FormulaError] = {}

    for field_id in _visit_order(graph, changed_field_id):
        form_field = fields_by_id.get(field_id)
        if form_field is None or form_field.derived is None:
            continue

        parent_values: Dict[str, Any] = {}
        parent_types: Dict[str, str] = {}
        for parent_id in graph.parents(field_id):
            parent = fields_by_id.get(parent_id)
            parent_values[parent_id] = coerce_value(parent, values.get(parent_id))
            if parent is not None:
                parent_types[parent_id] = parent.type

        try:
            values[field_id] = evaluate(
                form_field.derived.formula,
                parent_values,
                parent_types=parent_types,
                today=today,
            )
        except FormulaError as exc:
            logger.warning("Formula for field %s failed: %s", field_id, exc.reason)
            values[field_id] = ERROR_SENTINEL
            errors[field_id] = exc

    return ComputationResult(values=values, errors=errors)


def recompute_schema(
    schema: FormSchema,
    current_values: Mapping[str, Any],
    changed_field_id: Optional[str] = None,
    today: Optional[date] = None,
) -> ComputationResult:
    """Build the graph and recompute, reporting a cycle as data."""
    try:
        graph = build_graph(schema)
    except CycleError as exc:
        return ComputationResult(values=dict(current_values), cycle=exc)
    return recompute(schema, graph, current_values, changed_field_id=changed_field_id, today=today)
