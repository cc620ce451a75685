"""
Featur — Conversations API

Resolve a direct conversation, page through messages, send, mark read,
reconcile denormalized fields and stream live full-snapshot updates over a
WebSocket.
"""

from __future__ import annotations

import asyncio
import contextlib

import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from featur.api.errors import raise_for_result
from featur.database import get_db, get_session_factory
from featur.schemas.conversation import (
    ConversationCreate,
    ConversationListItem,
    ConversationResolveResponse,
    ConversationResponse,
    MarkReadRequest,
    MarkReadResponse,
    MessageCreate,
    MessageResponse,
    MessageSendResponse,
)
from featur.services.conversation_service import ConversationResolver
from featur.services.message_service import MessageDispatcher

logger = structlog.get_logger("featur.api.conversations")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_conversation_resolver: ConversationResolver | None = None
_message_dispatcher: MessageDispatcher | None = None


def _get_conversation_resolver() -> ConversationResolver:
    global _conversation_resolver
    if _conversation_resolver is None:
        _conversation_resolver = ConversationResolver()
    return _conversation_resolver


def _get_message_dispatcher() -> MessageDispatcher:
    global _message_dispatcher
    if _message_dispatcher is None:
        _message_dispatcher = MessageDispatcher()
    return _message_dispatcher


# ──────────────────────────────────────────────────────────────────────────────
# POST /: Resolve (find or create) a direct conversation
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/",
    response_model=ConversationResolveResponse,
    summary="Find or create the conversation between two users",
)
async def resolve_conversation(
    payload: ConversationCreate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await _get_conversation_resolver().get_or_create_conversation(
        payload.user_id, payload.other_user_id, db
    )
    return raise_for_result(result)


@router.get(
    "/user/{user_id}",
    response_model=list[ConversationListItem],
    summary="List a user's conversations",
)
async def list_conversations(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    return await _get_conversation_resolver().list_conversations(user_id, db)


# ──────────────────────────────────────────────────────────────────────────────
# Messages
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageResponse],
    summary="Most recent messages, newest first",
)
async def list_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    return await _get_message_dispatcher().fetch_messages(conversation_id, db, limit=limit)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageSendResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    conversation_id: str,
    payload: MessageCreate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """The message is stored even if updating the conversation preview or
    unread counter fails; ``conversation_synced`` reports that case."""
    result = await _get_message_dispatcher().send_message(
        conversation_id,
        payload.sender_id,
        payload.recipient_id,
        payload.content,
        db,
        media_url=payload.media_url,
    )
    raise_for_result(result, detail=(
        f"Conversation {conversation_id} not found."
        if result["status"] == "not_found" else None
    ))
    return result


@router.post(
    "/{conversation_id}/read",
    response_model=MarkReadResponse,
    summary="Mark a conversation read for a user",
)
async def mark_read(
    conversation_id: str,
    payload: MarkReadRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await _get_conversation_resolver().mark_as_read(
        conversation_id, payload.user_id, db
    )
    return raise_for_result(result, detail=(
        f"{payload.user_id} is not in conversation {conversation_id}."
        if result["status"] == "not_found" else None
    ))


@router.post(
    "/{conversation_id}/reconcile",
    response_model=ConversationResponse,
    summary="Rebuild preview and unread counters from the message log",
)
async def reconcile(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await _get_message_dispatcher().reconcile_conversation(conversation_id, db)
    raise_for_result(result, detail=f"Conversation {conversation_id} not found.")
    return result["conversation"]


# ──────────────────────────────────────────────────────────────────────────────
# WS /{conversation_id}/live: Full-snapshot live stream
# ──────────────────────────────────────────────────────────────────────────────

@router.websocket("/{conversation_id}/live")
async def conversation_live(
    websocket: WebSocket,
    conversation_id: str,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> None:
    """Send the full ordered message list on connect and after every change.
    Clients replace their whole view with each frame."""
    log = logger.bind(conversation_id=conversation_id)
    await websocket.accept()

    stream = _get_message_dispatcher().subscribe(conversation_id, session_factory)

    async def _pump() -> None:
        async for snapshot in stream:
            await websocket.send_json(
                {"conversation_id": conversation_id, "messages": snapshot}
            )

    pump = asyncio.create_task(_pump())
    try:
        # Inbound frames are ignored; receiving only detects the disconnect.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        log.info("live_client_disconnected")
    finally:
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump
        await stream.aclose()
