"""Tests for the bot endpoints."""

from __future__ import annotations

import asyncio
import io
from types import SimpleNamespace
from typing import Any, Dict, List, Tuple

import pytest
from bson import ObjectId
from fastapi import HTTPException, UploadFile

from botdesk.api.routes import bots
from botdesk.api.schemas import BotCreateRequest, BotUpdateRequest, ChatRequest, PromptItemInput
from botdesk.services.llm import InferenceError, InferenceNotConfiguredError
from botdesk.services.storage import StorageError, StorageFileNotFound, StoredObject


class FakeBody:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self.closed = False

    def iter_chunks(self, chunk_size: int):
        for start in range(0, len(self._data), chunk_size):
            yield self._data[start:start + chunk_size]

    def close(self) -> None:
        self.closed = True


class StubStorage:
    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.fail_deletes = False

    def put_object(self, key, file_type, data, *, content_type=None):
        self.objects[(key, file_type)] = data
        return f"bots/{key}.{file_type}"

    def open_object(self, key, file_type):
        if (key, file_type) not in self.objects:
            raise StorageFileNotFound(f"Stored file bots/{key}.{file_type} does not exist")
        data = self.objects[(key, file_type)]
        return StoredObject(body=FakeBody(data), content_length=len(data))

    def delete_object(self, key, file_type):
        if self.fail_deletes:
            raise StorageError("Couldn't remove the file: AccessDenied")
        self.objects.pop((key, file_type), None)


def _collect(response) -> bytes:
    async def _read() -> bytes:
        parts: List[bytes] = []
        async for chunk in response.body_iterator:
            parts.append(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
        return b"".join(parts)

    return asyncio.run(_read())


@pytest.fixture
def storage(monkeypatch: pytest.MonkeyPatch) -> StubStorage:
    stub = StubStorage()
    monkeypatch.setattr(bots, "get_storage_service", lambda: stub)
    return stub


@pytest.fixture
def bot_id(seeded_db, subscribed_user) -> str:
    return bots.create_bot(BotCreateRequest(name="Helper"), subscribed_user, seeded_db).id


def _update_payload(db, **overrides) -> BotUpdateRequest:
    values: Dict[str, Any] = {
        "name": "Helper",
        "photo": "https://cdn.example.com/helper.png",
        "language": str(db.find_reference_by_name("languages", "swedish")["_id"]),
        "prompts": [PromptItemInput(option=str(db.find_reference_by_name("prompts", "who-are-you")["_id"]), value="You are Helper")],
        "configuration": str(db.find_reference_by_name("configurations", "default")["_id"]),
        "model": str(db.find_reference_by_name("models", "meta/llama-2-70b-chat")["_id"]),
    }
    values.update(overrides)
    return BotUpdateRequest(**values)


def test_create_bot_uses_defaults(seeded_db, subscribed_user, bot_id) -> None:
    stored = seeded_db.get_bot(subscribed_user["_id"], bot_id)

    assert stored["configuration"] == seeded_db.find_reference_by_name("configurations", "default")["_id"]
    assert stored["language"] == seeded_db.find_reference_by_name("languages", "english")["_id"]
    assert stored["prompts"][0]["value"] == "You are a helpful assistant called Helper"
    assert stored["files"] == []


def test_create_bot_rejects_duplicate_name_case_insensitively(seeded_db, subscribed_user, bot_id) -> None:
    with pytest.raises(HTTPException) as exc:
        bots.create_bot(BotCreateRequest(name="helper"), subscribed_user, seeded_db)

    assert exc.value.status_code == 409


def test_create_bot_allows_name_sharing_a_prefix(seeded_db, subscribed_user, bot_id) -> None:
    created = bots.create_bot(BotCreateRequest(name="Helper Two"), subscribed_user, seeded_db)

    assert created.id != bot_id


def test_create_bot_reports_missing_reference_data(stub_db) -> None:
    user = {"_id": ObjectId()}

    with pytest.raises(HTTPException) as exc:
        bots.create_bot(BotCreateRequest(name="Helper"), user, stub_db)

    assert exc.value.status_code == 409
    assert exc.value.detail == "Something went wrong when setting the bot configuration."


def test_list_bots_returns_summaries(seeded_db, subscribed_user, bot_id) -> None:
    summaries = bots.list_bots(subscribed_user, seeded_db)

    assert [(item.id, item.name, item.photo) for item in summaries] == [(bot_id, "Helper", None)]


def test_get_bot_returns_detail_and_catalogs(seeded_db, subscribed_user, bot_id) -> None:
    response = bots.get_bot(bot_id, subscribed_user, seeded_db)

    assert response.bot.name == "Helper"
    assert response.bot.max_tokens == 800
    assert response.bot.configuration.name == "default"
    assert response.bot.timestamp > 0
    assert {item.name for item in response.languages} == {"english", "swedish"}
    assert len(response.configurations) == 2


def test_get_bot_validates_id_and_ownership(seeded_db, subscribed_user, bot_id) -> None:
    with pytest.raises(HTTPException) as invalid:
        bots.get_bot("not-an-id", subscribed_user, seeded_db)
    with pytest.raises(HTTPException) as missing:
        bots.get_bot(str(ObjectId()), subscribed_user, seeded_db)
    stranger = {"_id": ObjectId()}
    with pytest.raises(HTTPException) as foreign:
        bots.get_bot(bot_id, stranger, seeded_db)

    assert invalid.value.status_code == 400
    assert missing.value.status_code == 404
    assert foreign.value.status_code == 404


def test_get_bot_reports_broken_configuration(seeded_db, subscribed_user, bot_id) -> None:
    seeded_db.update_bot(subscribed_user["_id"], bot_id, {"configuration": ObjectId()})

    with pytest.raises(HTTPException) as exc:
        bots.get_bot(bot_id, subscribed_user, seeded_db)

    assert exc.value.status_code == 409
    assert exc.value.detail == bots.BotConfigurationError().message


def test_update_bot_replaces_settings(seeded_db, subscribed_user, bot_id) -> None:
    response = bots.update_bot(bot_id, _update_payload(seeded_db), subscribed_user, seeded_db)

    stored = seeded_db.get_bot(subscribed_user["_id"], bot_id)
    assert response.status_code == 204
    assert stored["language"] == seeded_db.find_reference_by_name("languages", "swedish")["_id"]
    assert stored["photo"] == "https://cdn.example.com/helper.png"
    assert stored["prompts"][0]["value"] == "You are Helper"
    assert stored["maxTokens"] == 800


def test_update_bot_custom_configuration_needs_values(seeded_db, subscribed_user, bot_id) -> None:
    custom_id = str(seeded_db.find_reference_by_name("configurations", "custom")["_id"])

    with pytest.raises(HTTPException) as exc:
        bots.update_bot(bot_id, _update_payload(seeded_db, configuration=custom_id, max_tokens=100), subscribed_user, seeded_db)
    assert exc.value.status_code == 400

    bots.update_bot(
        bot_id,
        _update_payload(seeded_db, configuration=custom_id, max_tokens=100, temperature=0.2, top_p=0.3),
        subscribed_user,
        seeded_db,
    )
    detail = bots.get_bot(bot_id, subscribed_user, seeded_db).bot
    assert (detail.max_tokens, detail.temperature, detail.top_p) == (100, 0.2, 0.3)


def test_generation_parameters_use_camel_case_on_the_wire(seeded_db, subscribed_user, bot_id) -> None:
    custom_id = str(seeded_db.find_reference_by_name("configurations", "custom")["_id"])
    body = _update_payload(seeded_db, configuration=custom_id).model_dump(exclude={"max_tokens", "top_p"})
    body.update({"maxTokens": 256, "temperature": 0.5, "topP": 0.8})

    bots.update_bot(bot_id, BotUpdateRequest.model_validate(body), subscribed_user, seeded_db)

    stored = seeded_db.get_bot(subscribed_user["_id"], bot_id)
    assert (stored["maxTokens"], stored["topP"]) == (256, 0.8)

    wire = bots.get_bot(bot_id, subscribed_user, seeded_db).bot.model_dump(by_alias=True)
    assert (wire["maxTokens"], wire["temperature"], wire["topP"]) == (256, 0.5, 0.8)
    assert "max_tokens" not in wire


@pytest.mark.parametrize(
    "overrides",
    [
        {"language": "bogus"},
        {"model": str(ObjectId())},
        {"prompts": []},
        {"prompts": [PromptItemInput(option=str(ObjectId()), value="Hi")]},
    ],
)
def test_update_bot_rejects_invalid_references(seeded_db, subscribed_user, bot_id, overrides) -> None:
    with pytest.raises(HTTPException) as exc:
        bots.update_bot(bot_id, _update_payload(seeded_db, **overrides), subscribed_user, seeded_db)

    assert exc.value.status_code == 400


def test_update_bot_rejects_name_of_another_bot(seeded_db, subscribed_user, bot_id) -> None:
    bots.create_bot(BotCreateRequest(name="Other"), subscribed_user, seeded_db)

    with pytest.raises(HTTPException) as exc:
        bots.update_bot(bot_id, _update_payload(seeded_db, name="OTHER"), subscribed_user, seeded_db)

    assert exc.value.status_code == 409


def test_update_bot_missing_bot_is_not_found(seeded_db, subscribed_user) -> None:
    with pytest.raises(HTTPException) as exc:
        bots.update_bot(str(ObjectId()), _update_payload(seeded_db), subscribed_user, seeded_db)

    assert exc.value.status_code == 404


def test_delete_bot_removes_stored_files(seeded_db, subscribed_user, bot_id, storage) -> None:
    storage.objects[("k1", "txt")] = b"hello"
    seeded_db.add_bot_file(ObjectId(bot_id), {"key": "k1", "name": "notes", "type": "txt", "size": 5})

    response = bots.delete_bot(bot_id, subscribed_user, seeded_db)

    assert response.status_code == 204
    assert storage.objects == {}
    assert seeded_db.get_bot(subscribed_user["_id"], bot_id) is None


def test_delete_bot_survives_storage_failures(seeded_db, subscribed_user, bot_id, storage, caplog) -> None:
    storage.fail_deletes = True
    seeded_db.add_bot_file(ObjectId(bot_id), {"key": "k1", "name": "notes", "type": "txt", "size": 5})

    response = bots.delete_bot(bot_id, subscribed_user, seeded_db)

    assert response.status_code == 204
    assert any("was not removed" in message for message in caplog.messages)


def test_chat_streams_completion(seeded_db, subscribed_user, bot_id, monkeypatch: pytest.MonkeyPatch) -> None:
    captured: Dict[str, Any] = {}

    def _open_chat_stream(*, model, messages, parameters):
        captured.update(model=model, messages=messages, parameters=parameters)
        return [
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="Hej"))]),
            SimpleNamespace(choices=[]),
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=" där"))]),
        ]

    monkeypatch.setattr(bots, "open_chat_stream", _open_chat_stream)

    response = bots.chat_with_bot(bot_id, ChatRequest(prompt="Hello"), subscribed_user, seeded_db)

    assert response.media_type == "text/plain; charset=utf-8"
    assert _collect(response).decode("utf-8") == "Hej där"
    assert captured["model"] == "meta/llama-2-70b-chat"
    assert captured["messages"][0]["content"].endswith("Always answer in English.")
    assert captured["parameters"].max_tokens == 800


@pytest.mark.parametrize(
    "error,status_code",
    [(InferenceNotConfiguredError("no key"), 503), (InferenceError("rate limited"), 502)],
)
def test_chat_reports_inference_failures(seeded_db, subscribed_user, bot_id, monkeypatch, error, status_code) -> None:
    def _fail(**kwargs):
        raise error

    monkeypatch.setattr(bots, "open_chat_stream", _fail)

    with pytest.raises(HTTPException) as exc:
        bots.chat_with_bot(bot_id, ChatRequest(prompt="Hello"), subscribed_user, seeded_db)

    assert exc.value.status_code == status_code


def test_upload_download_and_delete_file(seeded_db, subscribed_user, bot_id, storage) -> None:
    upload = UploadFile(file=io.BytesIO(b'{"faq": []}'), filename="faq.json")

    info = asyncio.run(bots.upload_bot_file(bot_id, upload, subscribed_user, seeded_db))

    assert (info.name, info.type, info.size) == ("faq", "json", 11)
    assert info.url == f"https://api.example.com/v1/bots/{bot_id}/files/{info.id}/download"

    download = bots.download_bot_file(bot_id, info.id, subscribed_user, seeded_db)
    assert download.headers["content-disposition"] == 'attachment; filename="faq.json"'
    assert download.media_type == "application/json"
    assert _collect(download) == b'{"faq": []}'

    assert bots.delete_bot_file(bot_id, info.id, subscribed_user, seeded_db).status_code == 204
    assert storage.objects == {}
    assert seeded_db.get_bot(subscribed_user["_id"], bot_id)["files"] == []


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("заметки.txt", "attachment; filename*=utf-8''%D0%B7%D0%B0%D0%BC%D0%B5%D1%82%D0%BA%D0%B8.txt"),
        ('say "hi".txt', "attachment; filename*=utf-8''say%20%22hi%22.txt"),
    ],
)
def test_download_encodes_file_names_outside_latin1(seeded_db, subscribed_user, bot_id, storage, filename, expected) -> None:
    upload = UploadFile(file=io.BytesIO(b"hej"), filename=filename)
    info = asyncio.run(bots.upload_bot_file(bot_id, upload, subscribed_user, seeded_db))

    download = bots.download_bot_file(bot_id, info.id, subscribed_user, seeded_db)

    assert download.headers["content-disposition"] == expected
    assert _collect(download) == b"hej"


def test_file_and_bot_ids_are_matched_case_insensitively(seeded_db, subscribed_user, bot_id, storage) -> None:
    upload = UploadFile(file=io.BytesIO(b"data"), filename="notes.txt")
    info = asyncio.run(bots.upload_bot_file(bot_id, upload, subscribed_user, seeded_db))

    download = bots.download_bot_file(bot_id.upper(), info.id.upper(), subscribed_user, seeded_db)
    response = bots.update_bot(bot_id.upper(), _update_payload(seeded_db), subscribed_user, seeded_db)

    assert _collect(download) == b"data"
    assert response.status_code == 204


@pytest.mark.parametrize("filename", ["notes.pdf", "README", ".txt"])
def test_upload_rejects_unsupported_names(seeded_db, subscribed_user, bot_id, storage, filename) -> None:
    upload = UploadFile(file=io.BytesIO(b"data"), filename=filename)

    with pytest.raises(HTTPException) as exc:
        asyncio.run(bots.upload_bot_file(bot_id, upload, subscribed_user, seeded_db))

    assert exc.value.status_code == 400
    assert storage.objects == {}


def test_download_missing_file_is_not_found(seeded_db, subscribed_user, bot_id, storage) -> None:
    record = seeded_db.add_bot_file(ObjectId(bot_id), {"key": "gone", "name": "notes", "type": "txt", "size": 5})

    with pytest.raises(HTTPException) as unknown:
        bots.download_bot_file(bot_id, str(ObjectId()), subscribed_user, seeded_db)
    with pytest.raises(HTTPException) as vanished:
        bots.download_bot_file(bot_id, str(record["_id"]), subscribed_user, seeded_db)

    assert unknown.value.status_code == 404
    assert vanished.value.status_code == 404
