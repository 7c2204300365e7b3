"""Envelope codec — outbound payload encoding and response decoding.

Every Bot API response is wrapped in the same envelope::

    {"ok": true, "result": ...}
    {"ok": false, "error_code": 400, "description": "...", "parameters": {...}}

:func:`decode_response` turns the raw response bytes into the typed result or
one of the :class:`~sdk.exceptions.MethodCallError` subclasses.

Outbound, :func:`build_payload` turns the keyword arguments of a method call
into a :class:`Payload`, which encodes itself either as a compact JSON body or,
as soon as any :class:`~sdk.input_file.InputFile` carries bytes, as a
``multipart/form-data`` body whose boundary comes from :mod:`urllib3`.
"""

from __future__ import annotations

import dataclasses
import json
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, TypeAdapter, ValidationError
from urllib3.filepost import choose_boundary, encode_multipart_formdata

from sdk.exceptions import OutOfServiceError, ParseError, RequestError
from sdk.input_file import ATTACH_PREFIX, InputFile
from sdk.models import Error, ResponseParameters

# ── Response decoding ────────────────────────────────────────────────────────


@lru_cache(maxsize=None)
def _adapter(result_type: Any) -> TypeAdapter:
    """Return a cached :class:`TypeAdapter` for *result_type*."""
    return TypeAdapter(result_type)


def decode_response(raw: bytes, result_type: Any = Any) -> Any:
    """Decode a response envelope and validate its ``result``.

    Raises:
        OutOfServiceError: The body is not a JSON object at all (e.g. an HTML
            maintenance page), so the service is most likely down.
        ParseError: The body looks like JSON but cannot be parsed, is not a
            valid envelope, or ``result`` does not match *result_type*.
        RequestError: The envelope reports ``ok: false``.
    """
    if not raw.lstrip().startswith(b"{"):
        raise OutOfServiceError(raw)

    try:
        envelope = json.loads(raw)
    except ValueError as exc:
        raise ParseError(raw, exc) from exc

    ok = envelope.get("ok")
    if not isinstance(ok, bool):
        raise ParseError(raw, ValueError("response envelope has no boolean 'ok' field"))

    if not ok:
        try:
            error = Error.model_validate(envelope)
        except ValidationError as exc:
            raise ParseError(raw, exc) from exc
        parameters = error.parameters or ResponseParameters()
        raise RequestError(
            description=error.description,
            error_code=error.error_code,
            migrate_to_chat_id=parameters.migrate_to_chat_id,
            retry_after=parameters.retry_after,
        )

    if "result" not in envelope:
        raise ParseError(raw, ValueError("successful response has no 'result' field"))

    try:
        return _adapter(result_type).validate_python(envelope["result"])
    except ValidationError as exc:
        raise ParseError(raw, exc) from exc


# ── Outbound payloads ────────────────────────────────────────────────────────


class _Attachments:
    """Allocates unique part names for uploaded files."""

    def __init__(self) -> None:
        self.files: Dict[str, Tuple[str, bytes]] = {}
        self._used: Set[str] = set()

    def reserve(self, name: str) -> None:
        self._used.add(name)

    def add(self, hint: str, file: InputFile) -> str:
        base = file.attach_name or hint
        name = base
        counter = 1
        while name in self._used:
            name = f"{base}{counter}"
            counter += 1
        self._used.add(name)
        self.files[name] = (file.filename or name, file.data or b"")
        return name


def _to_wire(value: Any, attachments: _Attachments, hint: str) -> Any:
    """Convert *value* to JSON-compatible data, replacing uploads by markers."""
    if isinstance(value, InputFile):
        if value.is_upload:
            return ATTACH_PREFIX + attachments.add(hint, value)
        return value.reference
    if isinstance(value, BaseModel):
        media_type = getattr(value, "type", None)
        out: Dict[str, Any] = {}
        for name, field in type(value).model_fields.items():
            item = getattr(value, name)
            if item is None:
                continue
            key = field.alias or name
            child_hint = media_type if key == "media" and isinstance(media_type, str) else key
            out[key] = _to_wire(item, attachments, child_hint)
        return out
    if isinstance(value, Mapping):
        return {
            str(key): _to_wire(item, attachments, str(key))
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (list, tuple)):
        return [_to_wire(item, attachments, hint) for item in value]
    return value


def _attach_references(value: Any, found: List[str]) -> List[str]:
    if isinstance(value, str) and value.startswith(ATTACH_PREFIX):
        found.append(value[len(ATTACH_PREFIX):])
    elif isinstance(value, dict):
        for item in value.values():
            _attach_references(item, found)
    elif isinstance(value, list):
        for item in value:
            _attach_references(item, found)
    return found


def _text_part(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


@dataclasses.dataclass
class Payload:
    """An encoded-ready method payload.

    Attributes:
        fields: JSON-compatible field values; uploads nested in structured
            values are already replaced by ``attach://<name>`` markers.
        files: Binary parts by part name, as ``(filename, data)``.
        direct_files: Names of files sent as top-level fields (no marker).
    """

    fields: Dict[str, Any]
    files: Dict[str, Tuple[str, bytes]] = dataclasses.field(default_factory=dict)
    direct_files: Set[str] = dataclasses.field(default_factory=set)

    @property
    def is_multipart(self) -> bool:
        return bool(self.files)

    def attach_references(self) -> List[str]:
        """Every ``attach://`` name referenced from the JSON fields."""
        found: List[str] = []
        for value in self.fields.values():
            _attach_references(value, found)
        return found

    def validate(self) -> None:
        """Check that markers and binary parts correspond one to one.

        Raises:
            ValueError: A marker has no part, a part has no marker, or a
                marker is referenced twice.
        """
        referenced = self.attach_references()
        if len(referenced) != len(set(referenced)):
            raise ValueError(f"attach:// names referenced more than once: {referenced}")
        expected = set(self.files) - self.direct_files
        if set(referenced) != expected:
            raise ValueError(
                f"attach:// references {sorted(referenced)} do not match uploaded parts {sorted(expected)}"
            )

    def encode(self) -> Tuple[bytes, Optional[str]]:
        """Return ``(body, boundary)``; ``boundary`` is ``None`` for JSON bodies."""
        if not self.is_multipart:
            body = json.dumps(self.fields, ensure_ascii=False, separators=(",", ":"))
            return body.encode("utf-8"), None

        self.validate()
        parts: List[Tuple[str, Any]] = [(name, _text_part(value)) for name, value in self.fields.items()]
        parts.extend((name, (filename, data)) for name, (filename, data) in self.files.items())
        boundary = choose_boundary()
        body, _content_type = encode_multipart_formdata(parts, boundary=boundary)
        return body, boundary


def build_payload(fields: Optional[Mapping[str, Any]] = None) -> Payload:
    """Build a :class:`Payload` from method arguments.

    ``None`` means "not set" and is omitted everywhere.  Pydantic models are
    dumped by alias without ``None`` fields.  A top-level upload becomes a
    binary part named after its field; an upload nested inside a structured
    value (input media, media groups) becomes ``attach://<name>``, where the
    name is the file's ``attach_name``, else the media ``type`` or the key it
    sits under, made unique with a numeric suffix.
    """
    attachments = _Attachments()
    wire: Dict[str, Any] = {}
    direct: Set[str] = set()
    items = [(key, value) for key, value in (fields or {}).items() if value is not None]

    # Top-level uploads keep their field name, so reserve those first.
    for key, value in items:
        if isinstance(value, InputFile) and value.is_upload:
            attachments.reserve(key)
            attachments.files[key] = (value.filename or key, value.data or b"")
            direct.add(key)

    for key, value in items:
        if key not in direct:
            wire[key] = _to_wire(value, attachments, key)

    return Payload(fields=wire, files=attachments.files, direct_files=direct)


def encode_json(fields: Optional[Mapping[str, Any]] = None) -> bytes:
    """Encode *fields* as a compact JSON body, omitting unset values.

    Raises:
        ValueError: If any field carries bytes to upload.
    """
    payload = build_payload(fields)
    if payload.is_multipart:
        raise ValueError("payload contains file uploads; use a multipart body")
    body, _boundary = payload.encode()
    return body
