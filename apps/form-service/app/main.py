import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app import editor
from app.compute import ComputationResult, initial_values, recompute
from app.errors import CycleError, EditorError
from app.graph import DependencyGraph, build_graph
from app.models import FieldSchema, FieldType, FormSchema
from app.saved_forms import SavedFormRepository
from app.validation import error_messages, is_submittable, validate_form

load_dotenv()

app = FastAPI(title="Form Designer Service")
logger = logging.getLogger(__name__)

MAX_SCHEMA_FIELDS = int(os.getenv("MAX_SCHEMA_FIELDS", "200"))

logger.info("Max schema fields: %d", MAX_SCHEMA_FIELDS)

repository = SavedFormRepository()


def _dev_routes_enabled() -> bool:
    return os.getenv("ENABLE_DEV_ROUTES", "false").lower() == "true"


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SchemaRequest(_Request):
    form: FormSchema = Field(alias="schema")


class ComputeRequest(_Request):
    form: FormSchema = Field(alias="schema")
    values: Dict[str, Any] = Field(default_factory=dict)
    changed_field_id: Optional[str] = Field(default=None, alias="changedFieldId")


class ValidateRequest(_Request):
    form: FormSchema = Field(alias="schema")
    values: Dict[str, Any] = Field(default_factory=dict)


class PreviewRequest(_Request):
    form: FormSchema = Field(alias="schema")
    values: Optional[Dict[str, Any]] = None


class SaveRequest(_Request):
    form: FormSchema = Field(alias="schema")
    name: Optional[str] = None


class EditorRequest(_Request):
    form: FormSchema = Field(alias="schema")
    field_id: Optional[str] = Field(default=None, alias="fieldId")
    field: Optional[FieldSchema] = None
    field_type: Optional[FieldType] = Field(default=None, alias="fieldType")
    changes: Dict[str, Any] = Field(default_factory=dict)
    from_index: Optional[int] = Field(default=None, alias="fromIndex")
    to_index: Optional[int] = Field(default=None, alias="toIndex")
    name: Optional[str] = None


def _check_size(schema: FormSchema) -> None:
    if len(schema.fields) > MAX_SCHEMA_FIELDS:
        logger.error("Rejected schema %s with %d fields", schema.id or "<draft>", len(schema.fields))
        raise HTTPException(status_code=413, detail="too_many_fields")


def _graph_or_422(schema: FormSchema) -> DependencyGraph:
    _check_size(schema)
    try:
        return build_graph(schema)
    except CycleError as exc:
        raise HTTPException(
            status_code=422,
            detail={"error": "cycle", "fieldIds": exc.field_ids},
        ) from exc


def _computation_payload(result: ComputationResult) -> Dict[str, Any]:
    return {"values": result.values, "errors": result.error_reasons()}


@app.get("/health")
async def health():
    return {"ok": True, "service": "form-service"}


@app.post("/graph")
def graph_endpoint(req: SchemaRequest):
    graph = _graph_or_422(req.form)
    logger.info("Dependency order for %s: %s", req.form.id or "<draft>", ", ".join(graph.order))
    return {"order": list(graph.order), "nodes": list(graph.nodes)}


@app.post("/compute")
def compute_endpoint(req: ComputeRequest):
    graph = _graph_or_422(req.form)
    result = recompute(req.form, graph, req.values, changed_field_id=req.changed_field_id)
    if result.errors:
        logger.info("Recomputed with %d formula errors", len(result.errors))
    return _computation_payload(result)


@app.post("/validate")
def validate_endpoint(req: ValidateRequest):
    _check_size(req.form)
    outcomes = validate_form(req.form, req.values)
    return {
        "valid": is_submittable(outcomes.values()),
        "results": {field_id: outcome.model_dump() for field_id, outcome in outcomes.items()},
    }


@app.post("/preview")
def preview_endpoint(req: PreviewRequest):
    graph = _graph_or_422(req.form)
    values = initial_values(req.form)
    if req.values:
        values.update(req.values)
    result = recompute(req.form, graph, values)
    outcomes = validate_form(req.form, result.values)
    payload = _computation_payload(result)
    payload["results"] = {field_id: outcome.model_dump() for field_id, outcome in outcomes.items()}
    payload["valid"] = is_submittable(outcomes.values())
    if not payload["valid"]:
        logger.info("Preview of %s has invalid fields: %s", req.form.id or "<draft>", error_messages(outcomes))
    return payload


@app.post("/forms", status_code=201)
def save_form(req: SaveRequest):
    _check_size(req.form)
    name = (req.name if req.name is not None else req.form.name).strip()
    if not name:
        raise HTTPException(status_code=400, detail="form_name_required")
    saved = repository.save(req.form, name=name)
    return saved.to_wire()


@app.get("/forms")
def list_forms():
    return [form.to_wire() for form in repository.list_forms()]


@app.get("/forms/{form_id}")
def get_form(form_id: str):
    saved = repository.get(form_id)
    if saved is None:
        raise HTTPException(status_code=404, detail="form_not_found")
    return saved.to_wire()


@app.post("/forms/{form_id}/load")
def load_form(form_id: str):
    saved = repository.get(form_id)
    if saved is None:
        raise HTTPException(status_code=404, detail="form_not_found")
    return saved.to_schema().to_wire()


def _apply_edit(op: str, req: EditorRequest) -> FormSchema:
    schema = req.form
    if op == "add":
        if req.field is not None:
            return editor.add_field(schema, req.field)
        if req.field_type is None:
            raise EditorError("add requires a field or a fieldType")
        return editor.add_field(schema, editor.new_field(req.field_type))
    if op == "update":
        if not req.field_id:
            raise EditorError("update requires a fieldId")
        return editor.update_field(schema, req.field_id, req.changes)
    if op == "delete":
        if not req.field_id:
            raise EditorError("delete requires a fieldId")
        return editor.delete_field(schema, req.field_id)
    if op == "reorder":
        if req.from_index is None or req.to_index is None:
            raise EditorError("reorder requires fromIndex and toIndex")
        return editor.reorder_fields(schema, req.from_index, req.to_index)
    if op == "rename":
        return editor.rename_form(schema, req.name or "")
    if op == "clear":
        return editor.clear_form(schema)
    raise HTTPException(status_code=404, detail="unknown_operation")


@app.post("/editor/{op}")
def editor_endpoint(op: str, req: EditorRequest):
    try:
        updated = _apply_edit(op, req)
    except EditorError as exc:
        logger.warning("Rejected %s edit: %s", op, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValidationError as exc:
        logger.warning("Edit %s produced an invalid schema: %s", op, exc)
        raise HTTPException(status_code=422, detail="invalid_schema") from exc
    _check_size(updated)
    return updated.to_wire()


@app.get("/dev/saved-forms")
def dump_saved_forms():
    if not _dev_routes_enabled():
        raise HTTPException(status_code=404, detail="Not found")
    return {"raw": repository.to_json()}
