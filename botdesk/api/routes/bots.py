"""Bot endpoints: configuration CRUD, chat relay and knowledge files."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from fastapi.responses import StreamingResponse

from ...config import CONFIG
from ...core.bots import (
    BotConfigurationError,
    MissingReferenceData,
    build_chat_messages,
    default_prompt_value,
    file_download_url,
    load_bot_defaults,
    populate_bot,
    resolve_generation_parameters,
    resolve_model_name,
)
from ...db import BotFile, DatabaseClient, is_valid_object_id, to_object_id
from ...db.models import ConfigurationName
from ...services.llm import InferenceError, InferenceNotConfiguredError, open_chat_stream, relay_chat_stream
from ...services.storage import (
    StorageError,
    StorageFileNotFound,
    StorageNotConfiguredError,
    get_storage_service,
)
from ..dependencies import get_current_user_record, get_database, require_subscription
from ..schemas import (
    BotCreateRequest,
    BotCreateResponse,
    BotDetail,
    BotDetailResponse,
    BotFileInfo,
    BotPromptItem,
    BotSummary,
    BotUpdateRequest,
    ChatRequest,
    ConfigurationInfo,
    LanguageInfo,
    ModelInfo,
    PromptInfo,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_MEDIA_TYPES = {
    "json": "application/json",
    "txt": "text/plain",
}


def _invalid_parameters() -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid parameters.")


def _bot_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="There is no bot with that id.")


def _load_bot(db: DatabaseClient, user: Dict[str, Any], bot_id: str) -> Dict[str, Any]:
    if not is_valid_object_id(bot_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid bot id.")
    bot = db.get_bot(user["_id"], bot_id)
    if bot is None:
        raise _bot_not_found()
    return bot


def _find_file(bot: Dict[str, Any], file_id: str) -> BotFile:
    if not is_valid_object_id(file_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file id.")
    for item in bot.get("files") or []:
        if item.get("_id") == to_object_id(file_id):
            return BotFile.from_document(item)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="The file doesn't exist.")


def _media_type(file_type: str) -> str:
    known = _MEDIA_TYPES.get(file_type.lower())
    if known:
        return known
    guessed, _ = mimetypes.guess_type(f"file.{file_type}")
    return guessed or "application/octet-stream"


def _split_file_name(file_name: Optional[str]) -> Tuple[str, str]:
    if not file_name or "." not in file_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file name.")
    name, file_type = file_name.rsplit(".", 1)
    name = name.strip()
    file_type = file_type.strip().lower()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file name.")
    if file_type not in CONFIG.bot_file_types:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type.")
    return name, file_type


def _content_disposition(file_name: str) -> str:
    quoted = quote(file_name)
    if quoted != file_name:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{file_name}"'


def _storage_unavailable(exc: StorageError) -> HTTPException:
    if isinstance(exc, StorageNotConfiguredError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


# ---------------------------------------------------------------------------
# Bot configuration
# ---------------------------------------------------------------------------
@router.get("/bots", response_model=List[BotSummary], status_code=status.HTTP_200_OK)
def list_bots(
    user: Dict[str, Any] = Depends(get_current_user_record),
    db: DatabaseClient = Depends(get_database),
) -> List[BotSummary]:
    return [
        BotSummary(id=str(bot["_id"]), name=bot.get("name") or "", photo=bot.get("photo"))
        for bot in db.list_bots(user["_id"])
    ]


@router.get("/bots/{bot_id}", response_model=BotDetailResponse, status_code=status.HTTP_200_OK)
def get_bot(
    bot_id: str,
    user: Dict[str, Any] = Depends(require_subscription),
    db: DatabaseClient = Depends(get_database),
) -> BotDetailResponse:
    """Return a bot with its references resolved plus the catalogs to edit it."""

    bot = populate_bot(db, _load_bot(db, user, bot_id))
    try:
        parameters = resolve_generation_parameters(bot)
    except BotConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc

    files = [BotFile.from_document(item) for item in bot.get("files") or []]
    detail = BotDetail(
        id=str(bot["_id"]),
        name=bot.get("name") or "",
        photo=bot.get("photo"),
        language=LanguageInfo.from_document(bot["language"]) if bot.get("language") else None,
        prompts=[
            BotPromptItem(
                option=PromptInfo.from_document(item["option"]) if item.get("option") else None,
                value=item.get("value") or "",
            )
            for item in bot["prompts"]
        ],
        model=ModelInfo.from_document(bot["model"]) if bot.get("model") else None,
        configuration=ConfigurationInfo.from_document(bot["configuration"]),
        max_tokens=parameters.max_tokens,
        temperature=parameters.temperature,
        top_p=parameters.top_p,
        files=[
            BotFileInfo(
                id=item.id,
                name=item.name,
                type=item.type,
                size=item.size,
                url=file_download_url(bot["_id"], item.id),
            )
            for item in files
        ],
        timestamp=bot.get("timestamp"),
    )

    return BotDetailResponse(
        bot=detail,
        languages=[LanguageInfo.from_document(doc) for doc in db.list_reference("languages")],
        models=[ModelInfo.from_document(doc) for doc in db.list_reference("models")],
        configurations=[ConfigurationInfo.from_document(doc) for doc in db.list_reference("configurations")],
        prompts=[PromptInfo.from_document(doc) for doc in db.list_reference("prompts")],
    )


@router.post("/bots", response_model=BotCreateResponse, status_code=status.HTTP_201_CREATED)
def create_bot(
    payload: BotCreateRequest,
    user: Dict[str, Any] = Depends(require_subscription),
    db: DatabaseClient = Depends(get_database),
) -> BotCreateResponse:
    """Create a bot from the default configuration, model, prompt and language."""

    if db.find_bot_by_name(user["_id"], payload.name):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You already have a bot with that name.")

    try:
        defaults = load_bot_defaults(db)
    except MissingReferenceData as exc:
        logger.error("Default %s %r is missing from the reference data", exc.kind, exc.name)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    bot = db.create_bot(
        user_id=user["_id"],
        name=payload.name,
        language_id=defaults["language"]["_id"],
        prompts=[{"option": defaults["prompt"]["_id"], "value": default_prompt_value(payload.name)}],
        configuration_id=defaults["configuration"]["_id"],
        model_id=defaults["model"]["_id"],
    )
    return BotCreateResponse(id=str(bot["_id"]))


@router.put("/bots/{bot_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_bot(
    bot_id: str,
    payload: BotUpdateRequest,
    user: Dict[str, Any] = Depends(require_subscription),
    db: DatabaseClient = Depends(get_database),
) -> Response:
    """Replace a bot's editable settings."""

    reference_ids = [payload.language, payload.configuration, payload.model]
    if not is_valid_object_id(bot_id) or not all(is_valid_object_id(value) for value in reference_ids):
        raise _invalid_parameters()
    if not payload.prompts:
        raise _invalid_parameters()
    if any(not is_valid_object_id(item.option) or not item.value.strip() for item in payload.prompts):
        raise _invalid_parameters()

    configuration = db.get_reference("configurations", payload.configuration)
    language = db.get_reference("languages", payload.language)
    model = db.get_reference("models", payload.model)
    options = [db.get_reference("prompts", item.option) for item in payload.prompts]
    if configuration is None or language is None or model is None or any(option is None for option in options):
        raise _invalid_parameters()

    custom_values = (payload.max_tokens, payload.temperature, payload.top_p)
    if configuration.get("name") == ConfigurationName.CUSTOM.value and any(value is None for value in custom_values):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A custom configuration needs maxTokens, temperature and topP.",
        )

    duplicate = db.find_bot_by_name(user["_id"], payload.name)
    if duplicate is not None and duplicate["_id"] != to_object_id(bot_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You already have a bot with that name.")

    updates: Dict[str, Any] = {
        "name": payload.name,
        "photo": payload.photo,
        "language": language["_id"],
        "prompts": [
            {"option": option["_id"], "value": item.value}
            for option, item in zip(options, payload.prompts)
        ],
        "configuration": configuration["_id"],
        "model": model["_id"],
    }
    for field_name, value in (("maxTokens", payload.max_tokens), ("temperature", payload.temperature), ("topP", payload.top_p)):
        if value is not None:
            updates[field_name] = value

    if not db.update_bot(user["_id"], bot_id, updates):
        raise _bot_not_found()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/bots/{bot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bot(
    bot_id: str,
    user: Dict[str, Any] = Depends(require_subscription),
    db: DatabaseClient = Depends(get_database),
) -> Response:
    bot = _load_bot(db, user, bot_id)
    if not db.delete_bot(user["_id"], bot_id):
        raise _bot_not_found()

    files = [BotFile.from_document(item) for item in bot.get("files") or []]
    if files:
        storage = get_storage_service()
        for item in files:
            try:
                storage.delete_object(item.key, item.type)
            except StorageError:
                logger.warning("Stored file %s.%s of deleted bot %s was not removed", item.key, item.type, bot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Chat relay
# ---------------------------------------------------------------------------
@router.post("/bots/{bot_id}/chat", status_code=status.HTTP_200_OK)
def chat_with_bot(
    bot_id: str,
    payload: ChatRequest,
    user: Dict[str, Any] = Depends(require_subscription),
    db: DatabaseClient = Depends(get_database),
) -> StreamingResponse:
    """Stream the bot's completion for ``prompt`` as plain text."""

    bot = populate_bot(db, _load_bot(db, user, bot_id))
    try:
        parameters = resolve_generation_parameters(bot)
        model = resolve_model_name(bot)
    except BotConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc

    messages = build_chat_messages(bot, payload.prompt)
    try:
        stream = open_chat_stream(model=model, messages=messages, parameters=parameters)
    except InferenceNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except InferenceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return StreamingResponse(relay_chat_stream(stream, model=model), media_type="text/plain; charset=utf-8")


# ---------------------------------------------------------------------------
# Knowledge files
# ---------------------------------------------------------------------------
@router.post("/bots/{bot_id}/files", response_model=BotFileInfo, status_code=status.HTTP_201_CREATED)
async def upload_bot_file(
    bot_id: str,
    file: UploadFile = File(..., description="JSON or text file to attach"),
    user: Dict[str, Any] = Depends(require_subscription),
    db: DatabaseClient = Depends(get_database),
) -> BotFileInfo:
    """Store a file in the bucket and attach it to the bot."""

    name, file_type = _split_file_name(file.filename)
    bot = _load_bot(db, user, bot_id)

    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file was empty.")

    key = str(uuid.uuid4())
    try:
        get_storage_service().put_object(key, file_type, data, content_type=_media_type(file_type))
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc

    record = db.add_bot_file(bot["_id"], {"key": key, "name": name, "type": file_type, "size": len(data)})
    stored = BotFile.from_document(record)
    return BotFileInfo(
        id=stored.id,
        name=stored.name,
        type=stored.type,
        size=stored.size,
        url=file_download_url(bot["_id"], stored.id),
    )


@router.get("/bots/{bot_id}/files/{file_id}/download", status_code=status.HTTP_200_OK)
def download_bot_file(
    bot_id: str,
    file_id: str,
    user: Dict[str, Any] = Depends(require_subscription),
    db: DatabaseClient = Depends(get_database),
) -> StreamingResponse:
    bot = _load_bot(db, user, bot_id)
    stored = _find_file(bot, file_id)

    try:
        handle = get_storage_service().open_object(stored.key, stored.type)
    except StorageFileNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="The file doesn't exist.") from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc

    headers = {"Content-Disposition": _content_disposition(stored.file_name)}
    if handle.content_length is not None:
        headers["Content-Length"] = str(handle.content_length)
    return StreamingResponse(handle.iter_chunks(), media_type=_media_type(stored.type), headers=headers)


@router.delete("/bots/{bot_id}/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bot_file(
    bot_id: str,
    file_id: str,
    user: Dict[str, Any] = Depends(require_subscription),
    db: DatabaseClient = Depends(get_database),
) -> Response:
    bot = _load_bot(db, user, bot_id)
    stored = _find_file(bot, file_id)

    try:
        get_storage_service().delete_object(stored.key, stored.type)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc

    db.remove_bot_file(bot["_id"], stored.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
