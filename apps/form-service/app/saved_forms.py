import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from app.models import FormSchema, SavedForm

logger = logging.getLogger(__name__)

_SAVED_FORM_ADAPTER = TypeAdapter(SavedForm)


def snapshot(
    schema: FormSchema,
    name: Optional[str] = None,
    form_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SavedForm:
    """Freeze ``schema`` into a timestamped saved form."""
    return SavedForm(
        id=form_id or uuid.uuid4().hex,
        name=name if name is not None else schema.name,
        fields=list(schema.fields),
        created_at=now or datetime.now(timezone.utc),
    )


def dump_saved_forms(forms: List[SavedForm]) -> str:
    return json.dumps([form.to_wire() for form in forms], ensure_ascii=False)


def load_saved_forms(raw: Optional[str]) -> List[SavedForm]:
    """Parse persisted saved forms.

    Unreadable payloads yield an empty list; records that fail validation are
    logged and skipped so one bad form does not hide the rest.
    """
    if not raw:
        return []
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        logger.error("Failed to parse saved forms: %s", exc)
        return []
    if not isinstance(payload, list):
        logger.error("Saved forms payload is %s, expected a list", type(payload).__name__)
        return []
    forms: List[SavedForm] = []
    for index, record in enumerate(payload):
        try:
            forms.append(_SAVED_FORM_ADAPTER.validate_python(record))
        except ValidationError as exc:
            logger.error("Skipping saved form at index %d: %s", index, exc)
    return forms


class SavedFormRepository:
    """In-memory saved-form collaborator behind a save/list/get interface."""

    def __init__(self, forms: Optional[List[SavedForm]] = None):
        self._forms: List[SavedForm] = list(forms or [])
        self._lock = threading.Lock()

    def save(self, schema: FormSchema, name: Optional[str] = None) -> SavedForm:
        form = snapshot(schema, name=name)
        with self._lock:
            self._forms.append(form)
        logger.info("Saved form %s (%s) with %d fields", form.id, form.name, len(form.fields))
        return form

    def list_forms(self) -> List[SavedForm]:
        with self._lock:
            return list(self._forms)

    def get(self, form_id: str) -> Optional[SavedForm]:
        with self._lock:
            for form in self._forms:
                if form.id == form_id:
                    return form
        return None

    def to_json(self) -> str:
        return dump_saved_forms(self.list_forms())
