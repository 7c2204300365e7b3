"""Tests for the envelope codec: response decoding and JSON/multipart encoding."""

import json
import sys
import os
from email.parser import BytesParser
from email.policy import HTTP
from typing import List

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sdk.envelope import Payload, build_payload, decode_response, encode_json
from sdk.exceptions import OutOfServiceError, ParseError, RequestError
from sdk.input_file import InputFile, InputMediaDocument, InputMediaPhoto
from sdk.models import BotCommand, Message, User


def _parts(body: bytes, boundary: str) -> dict:
    """Split a multipart body into ``{name: (filename, payload_bytes)}``."""
    head = f"Content-Type: multipart/form-data; boundary={boundary}\r\n\r\n".encode()
    message = BytesParser(policy=HTTP).parsebytes(head + body)
    parts = {}
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        filename = part.get_param("filename", header="content-disposition")
        parts[name] = (filename, part.get_payload(decode=True))
    return parts


# ── decode_response ──────────────────────────────────────────────────────────


class TestDecodeResponse:
    """Validate envelope classification."""

    def test_ok_result_is_validated(self) -> None:
        raw = b'{"ok":true,"result":{"id":1,"is_bot":true,"first_name":"Bot"}}'
        user = decode_response(raw, User)
        assert isinstance(user, User)
        assert user.first_name == "Bot"

    def test_ok_any_result(self) -> None:
        assert decode_response(b'{"ok":true,"result":true}') is True

    def test_list_result(self) -> None:
        raw = b'{"ok":true,"result":[{"command":"start","description":"Start"}]}'
        commands = decode_response(raw, List[BotCommand])
        assert commands == [BotCommand(command="start", description="Start")]

    def test_html_is_out_of_service(self) -> None:
        with pytest.raises(OutOfServiceError):
            decode_response(b"<html><body>502 Bad Gateway</body></html>")

    def test_empty_body_is_out_of_service(self) -> None:
        with pytest.raises(OutOfServiceError):
            decode_response(b"")

    def test_broken_json_is_parse_error(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            decode_response(b'{"ok": tru')
        assert exc_info.value.response == b'{"ok": tru'

    def test_missing_ok_is_parse_error(self) -> None:
        with pytest.raises(ParseError):
            decode_response(b'{"result": 1}')

    def test_missing_result_is_parse_error(self) -> None:
        with pytest.raises(ParseError):
            decode_response(b'{"ok": true}')

    def test_schema_mismatch_is_parse_error(self) -> None:
        with pytest.raises(ParseError):
            decode_response(b'{"ok":true,"result":{"message_id":"x"}}', Message)

    def test_request_error_fields(self) -> None:
        raw = json.dumps({
            "ok": False,
            "error_code": 400,
            "description": "Bad Request: group chat was upgraded to a supergroup chat",
            "parameters": {"migrate_to_chat_id": -1001234},
        }).encode()
        with pytest.raises(RequestError) as exc_info:
            decode_response(raw, Message)
        exc = exc_info.value
        assert exc.error_code == 400
        assert exc.migrate_to_chat_id == -1001234
        assert exc.retry_after is None
        assert "400" in str(exc)

    def test_request_error_retry_after(self) -> None:
        raw = b'{"ok":false,"error_code":429,"description":"Too Many Requests","parameters":{"retry_after":30}}'
        with pytest.raises(RequestError) as exc_info:
            decode_response(raw)
        assert exc_info.value.retry_after == 30
        assert exc_info.value.description == "Too Many Requests"

    @pytest.mark.parametrize(
        "envelope",
        [
            {"ok": False, "error_code": 429, "description": "Too Many Requests", "parameters": {"retry_after": "soon"}},
            {"ok": False, "error_code": 400, "description": "Bad", "parameters": {"migrate_to_chat_id": [1]}},
            {"ok": False, "error_code": 400, "description": "Bad", "parameters": "none"},
            {"ok": False, "error_code": 400},
        ],
    )
    def test_malformed_error_envelope_is_parse_error(self, envelope: dict) -> None:
        raw = json.dumps(envelope).encode()
        with pytest.raises(ParseError) as exc_info:
            decode_response(raw)
        assert exc_info.value.response == raw

    def test_request_error_without_parameters(self) -> None:
        with pytest.raises(RequestError) as exc_info:
            decode_response(b'{"ok":false,"error_code":401,"description":"Unauthorized"}')
        assert exc_info.value.migrate_to_chat_id is None
        assert exc_info.value.retry_after is None


# ── JSON bodies ──────────────────────────────────────────────────────────────


class TestJsonEncoding:
    """Payloads without uploads are compact JSON."""

    def test_compact_json_without_unset_fields(self) -> None:
        body, boundary = build_payload({"chat_id": 42, "text": "hi", "parse_mode": None}).encode()
        assert body == b'{"chat_id":42,"text":"hi"}'
        assert boundary is None

    def test_models_dumped_by_alias(self) -> None:
        body = encode_json({"commands": [BotCommand(command="start", description="Start")]})
        assert json.loads(body) == {"commands": [{"command": "start", "description": "Start"}]}

    def test_file_references_are_plain_strings(self) -> None:
        body = encode_json({"chat_id": 1, "photo": InputFile.from_id("AgAC-file-id")})
        assert json.loads(body) == {"chat_id": 1, "photo": "AgAC-file-id"}

    def test_unicode_kept_verbatim(self) -> None:
        assert encode_json({"text": "привет"}) == '{"text":"привет"}'.encode("utf-8")

    def test_encode_json_rejects_uploads(self) -> None:
        with pytest.raises(ValueError):
            encode_json({"photo": InputFile.from_bytes("a.jpg", b"\xff\xd8")})


# ── Multipart bodies ─────────────────────────────────────────────────────────


class TestMultipartEncoding:
    """Uploads force multipart; nested uploads are referenced via attach://."""

    def test_top_level_upload_is_named_after_field(self) -> None:
        payload = build_payload({
            "chat_id": 42,
            "photo": InputFile.from_bytes("cat.jpg", b"\xff\xd8jpeg"),
            "caption": "cat",
        })
        body, boundary = payload.encode()
        assert boundary is not None
        assert payload.attach_references() == []

        parts = _parts(body, boundary)
        assert parts["chat_id"][1] == b"42"
        assert parts["caption"][1] == b"cat"
        assert parts["photo"] == ("cat.jpg", b"\xff\xd8jpeg")

    def test_input_media_upload_round_trip(self) -> None:
        media = InputMediaPhoto(media=InputFile.from_bytes("cat.jpg", b"\x89PNGbytes"), caption="new")
        payload = build_payload({"chat_id": 1, "message_id": 2, "media": media})
        body, boundary = payload.encode()

        parts = _parts(body, boundary)
        assert set(parts) == {"chat_id", "message_id", "media", "photo"}
        assert json.loads(parts["media"][1]) == {"type": "photo", "media": "attach://photo", "caption": "new"}
        assert parts["photo"][1] == b"\x89PNGbytes"

    def test_media_group_names_are_unique(self) -> None:
        media = [
            InputMediaPhoto(media=InputFile.from_bytes("a.jpg", b"a")),
            InputMediaPhoto(media=InputFile.from_bytes("b.jpg", b"b")),
            InputMediaPhoto(media=InputFile.from_url("https://example.com/c.jpg")),
        ]
        payload = build_payload({"chat_id": 1, "media": media})
        body, boundary = payload.encode()

        assert sorted(payload.attach_references()) == ["photo", "photo1"]
        parts = _parts(body, boundary)
        described = json.loads(parts["media"][1])
        assert [item["media"] for item in described] == [
            "attach://photo",
            "attach://photo1",
            "https://example.com/c.jpg",
        ]
        assert parts["photo"][1] == b"a"
        assert parts["photo1"][1] == b"b"

    def test_nested_name_avoids_top_level_field(self) -> None:
        payload = build_payload({
            "document": InputFile.from_bytes("report.pdf", b"%PDF"),
            "media": InputMediaDocument(media=InputFile.from_bytes("other.pdf", b"%PDF-2")),
        })
        payload.validate()
        assert payload.attach_references() == ["document1"]
        assert set(payload.files) == {"document", "document1"}

    def test_explicit_attach_name(self) -> None:
        media = InputMediaPhoto(media=InputFile.from_bytes("a.jpg", b"a", attach_name="cover"))
        payload = build_payload({"media": media})
        assert payload.attach_references() == ["cover"]
        assert "cover" in payload.files

    def test_booleans_encoded_as_json_literals(self) -> None:
        body, boundary = build_payload({
            "photo": InputFile.from_bytes("a.jpg", b"a"),
            "disable_notification": True,
        }).encode()
        assert _parts(body, boundary)["disable_notification"][1] == b"true"

    def test_dangling_reference_rejected(self) -> None:
        payload = Payload(fields={"media": {"media": "attach://ghost"}}, files={"photo": ("a.jpg", b"a")})
        with pytest.raises(ValueError):
            payload.validate()

    def test_duplicate_reference_rejected(self) -> None:
        payload = Payload(
            fields={"media": [{"media": "attach://photo"}, {"media": "attach://photo"}]},
            files={"photo": ("a.jpg", b"a")},
        )
        with pytest.raises(ValueError):
            payload.validate()


# ── InputFile ────────────────────────────────────────────────────────────────


class TestInputFile:
    """Validate input file sources."""

    def test_exactly_one_source(self) -> None:
        with pytest.raises(ValueError):
            InputFile(url="https://example.com/a.jpg", file_id="abc")
        with pytest.raises(ValueError):
            InputFile()

    def test_reference_cannot_use_attach_scheme(self) -> None:
        with pytest.raises(ValueError):
            InputFile.from_url("attach://photo")

    def test_from_path(self, tmp_path) -> None:
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hello")
        file = InputFile.from_path(path)
        assert file.is_upload
        assert file.filename == "notes.txt"
        assert file.data == b"hello"

    def test_reference(self) -> None:
        assert InputFile.from_id("abc").reference == "abc"
        assert not InputFile.from_id("abc").is_upload
