"""Pure edits on a form schema.

Each operation takes a schema and returns a new, re-validated one; the input
is never modified.
"""

import uuid
from typing import Any, Dict, List, Mapping, Optional

from app.errors import EditorError
from app.models import (
    OPTION_FIELD_TYPES,
    DerivedSpec,
    FieldSchema,
    FieldType,
    FormSchema,
    SelectOption,
)


def new_field(field_type: FieldType, field_id: Optional[str] = None) -> FieldSchema:
    """A blank field of ``field_type`` with the editor's starting values."""
    options = [SelectOption(label="Option 1", value="option1")] if field_type in OPTION_FIELD_TYPES else None
    return FieldSchema(
        id=field_id or uuid.uuid4().hex,
        type=field_type,
        label=f"New {field_type} field",
        required=False,
        default_value=False if field_type == "checkbox" else "",
        validation_rules=[],
        options=options,
        derived=DerivedSpec(is_derived=False, parent_fields=[], formula=""),
    )


def _rebuild(schema: FormSchema, fields: List[FieldSchema], name: Optional[str] = None) -> FormSchema:
    return FormSchema(id=schema.id, name=schema.name if name is None else name, fields=fields)


def _index_of(schema: FormSchema, field_id: str) -> int:
    for index, field in enumerate(schema.fields):
        if field.id == field_id:
            return index
    raise EditorError(f"unknown field id: {field_id!r}")


def _wire_keys(changes: Mapping[str, Any]) -> Dict[str, Any]:
    aliases = {
        name: info.alias
        for name, info in FieldSchema.model_fields.items()
        if info.alias
    }
    return {aliases.get(key, key): value for key, value in changes.items()}


def add_field(schema: FormSchema, field: FieldSchema) -> FormSchema:
    return _rebuild(schema, [*schema.fields, field])


def update_field(schema: FormSchema, field_id: str, changes: Mapping[str, Any]) -> FormSchema:
    """Merge ``changes`` (wire or attribute names) into the field ``field_id``."""
    index = _index_of(schema, field_id)
    merged = {**schema.fields[index].to_wire(), **_wire_keys(changes)}
    fields = list(schema.fields)
    fields[index] = FieldSchema.model_validate(merged)
    return _rebuild(schema, fields)


def delete_field(schema: FormSchema, field_id: str) -> FormSchema:
    """Remove a field and drop it from every derived field's parent list."""
    _index_of(schema, field_id)
    fields: List[FieldSchema] = []
    for field in schema.fields:
        if field.id == field_id:
            continue
        if field.derived and field_id in field.derived.parent_fields:
            parents = [parent for parent in field.derived.parent_fields if parent != field_id]
            derived = field.derived.model_copy(update={"parent_fields": parents})
            field = field.model_copy(update={"derived": derived})
        fields.append(field)
    return _rebuild(schema, fields)


def reorder_fields(schema: FormSchema, from_index: int, to_index: int) -> FormSchema:
    count = len(schema.fields)
    if not (0 <= from_index < count and 0 <= to_index < count):
        raise EditorError(f"cannot move field {from_index} to {to_index} in a form of {count} fields")
    fields = list(schema.fields)
    moved = fields.pop(from_index)
    fields.insert(to_index, moved)
    return _rebuild(schema, fields)


def rename_form(schema: FormSchema, name: str) -> FormSchema:
    return _rebuild(schema, list(schema.fields), name=name)


def clear_form(schema: FormSchema) -> FormSchema:
    return FormSchema(id=schema.id, name="", fields=[])
