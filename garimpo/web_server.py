"""
HTTP Server for Garimpo

Thin communication layer between the browser and the chat orchestrator.
It handles routing, request validation and response streaming only; all
business logic lives in ChatOrchestrator.

The caller's identity is taken from the ``X-User-Id`` header, which an
upstream auth layer is trusted to set.
"""

from __future__ import annotations

import logging
from typing import Any

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from garimpo.chat.chat_orchestrator import ChatOrchestrator
from garimpo.history.models import (
    Conversation,
    EmptyPreferenceValueError,
    InvalidPreferenceCategoryError,
    StoredMessage,
)
from garimpo.history.repository import ConversationNotFoundError

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# Pydantic models for request validation
class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    conversation_id: str | None = Field(default=None, alias="conversationId")


class PreferenceRequest(BaseModel):
    category: str
    value: str = Field(min_length=1)


def require_user(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return x_user_id


def conversation_to_json(conversation: Conversation) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "title": conversation.title,
        "createdAt": conversation.created_at.isoformat(),
        "updatedAt": conversation.updated_at.isoformat(),
    }


def message_to_json(message: StoredMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "sender": message.sender,
        "text": message.text,
        "createdAt": message.created_at.isoformat(),
        "thoughtLog": message.metadata.get("thought_log", []),
    }


class WebServer:
    """
    Pure HTTP communication server.

    This class only handles:
    - request parsing and identity checks
    - mapping domain errors to status codes
    - streaming server-sent events
    """

    def __init__(self, orchestrator: ChatOrchestrator, config: dict[str, Any]):
        self.orchestrator = orchestrator
        self.config = config
        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create and configure FastAPI app."""
        app = FastAPI(title="Garimpo Movie Assistant")
        router = APIRouter(prefix="/api")
        orchestrator = self.orchestrator

        server_config = self.config.get("server", {})
        app.add_middleware(
            CORSMiddleware,
            allow_origins=server_config.get("cors_origins", ["*"]),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @app.get("/health")
        async def health() -> dict[str, str]:  # pyright: ignore[reportUnusedFunction]
            return {"status": "healthy"}

        @router.post("/chat")
        async def post_chat(  # pyright: ignore[reportUnusedFunction]
            body: ChatRequest, user_id: str = Depends(require_user)
        ) -> dict[str, str]:
            try:
                conversation_id = await orchestrator.handle_chat_request(
                    user_id, body.message, body.conversation_id
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e
            except ConversationNotFoundError as e:
                raise HTTPException(status_code=403, detail="Not your conversation") from e
            return {"conversationId": conversation_id}

        @router.get("/chat/stream/{conversation_id}")
        async def stream_chat(  # pyright: ignore[reportUnusedFunction]
            conversation_id: str, user_id: str = Depends(require_user)
        ) -> StreamingResponse:
            try:
                await orchestrator.ensure_owner(conversation_id, user_id)
            except ConversationNotFoundError as e:
                raise HTTPException(status_code=404, detail=str(e)) from e

            logger.info("Opening event stream for conversation %s", conversation_id)
            return StreamingResponse(
                orchestrator.start_conversation_turn(conversation_id, user_id),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        @router.get("/conversations")
        async def list_conversations(  # pyright: ignore[reportUnusedFunction]
            user_id: str = Depends(require_user),
        ) -> list[dict[str, Any]]:
            conversations = await orchestrator.list_conversations(user_id)
            return [conversation_to_json(c) for c in conversations]

        @router.get("/conversations/{conversation_id}/messages")
        async def get_messages(  # pyright: ignore[reportUnusedFunction]
            conversation_id: str, user_id: str = Depends(require_user)
        ) -> list[dict[str, Any]]:
            try:
                messages = await orchestrator.get_messages(conversation_id, user_id)
            except ConversationNotFoundError as e:
                raise HTTPException(status_code=404, detail=str(e)) from e
            return [message_to_json(m) for m in messages]

        @router.delete("/conversations/{conversation_id}")
        async def delete_conversation(  # pyright: ignore[reportUnusedFunction]
            conversation_id: str, user_id: str = Depends(require_user)
        ) -> dict[str, str]:
            try:
                await orchestrator.delete_conversation(conversation_id, user_id)
            except ConversationNotFoundError as e:
                raise HTTPException(status_code=404, detail=str(e)) from e
            return {"status": "deleted"}

        @router.get("/preferences")
        async def get_preferences(  # pyright: ignore[reportUnusedFunction]
            user_id: str = Depends(require_user),
        ) -> dict[str, Any]:
            prefs = await orchestrator.get_preferences(user_id)
            return prefs.model_dump()

        @router.post("/preferences")
        async def add_preference(  # pyright: ignore[reportUnusedFunction]
            body: PreferenceRequest, user_id: str = Depends(require_user)
        ) -> dict[str, Any]:
            try:
                prefs = await orchestrator.add_preference(user_id, body.category, body.value)
            except (InvalidPreferenceCategoryError, EmptyPreferenceValueError) as e:
                raise HTTPException(status_code=400, detail=str(e)) from e
            return prefs.model_dump()

        @router.delete("/preferences")
        async def remove_preference(  # pyright: ignore[reportUnusedFunction]
            body: PreferenceRequest, user_id: str = Depends(require_user)
        ) -> dict[str, Any]:
            try:
                prefs = await orchestrator.remove_preference(user_id, body.category, body.value)
            except (InvalidPreferenceCategoryError, EmptyPreferenceValueError) as e:
                raise HTTPException(status_code=400, detail=str(e)) from e
            return prefs.model_dump()

        app.include_router(router)
        return app

    async def start_server(self) -> None:
        """Start the HTTP server; in-flight turns are drained on shutdown."""
        server_config = self.config.get("server", {})
        host = server_config.get("host", "localhost")
        port = server_config.get("port", 8000)

        logger.info("Starting HTTP server on %s:%s", host, port)

        uvicorn_config = uvicorn.Config(self.app, host=host, port=port, log_level="info")
        server = uvicorn.Server(uvicorn_config)

        try:
            await server.serve()
        except Exception as e:
            logger.error("HTTP server error: %s", e)
            raise
        finally:
            logger.info("Shutting down HTTP server and cleaning up resources...")
            await self.orchestrator.cleanup()


async def run_web_server(orchestrator: ChatOrchestrator, config: dict[str, Any]) -> None:
    """Run the HTTP server until it is stopped."""
    server = WebServer(orchestrator, config)
    await server.start_server()
