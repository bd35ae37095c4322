"""FastAPI NDJSON adapter — thin translation layer, no business logic."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse

from cfo_agent import EngineConfig, create_engine
from cfo_agent.engine.agent import AgentEngine
from cfo_agent.engine.models import ChatRequest
from cfo_agent.engine.streaming import encode_frame, with_heartbeat

logger = logging.getLogger(__name__)


def bearer_credential(header_value: str | None) -> str | None:
    """``H-Authorization`` may carry ``Bearer <token>`` or the bare token."""
    if not header_value:
        return None
    parts = header_value.split(None, 1)
    if parts and parts[0].lower() == "bearer":
        parts = parts[1:]
    value = parts[0].strip() if parts else ""
    return value or None


def create_app(engine: AgentEngine | None = None, config: EngineConfig | None = None) -> FastAPI:
    config = config or EngineConfig.from_env()
    engine = engine or create_engine(config)
    app = FastAPI(title="CFO Agent API", version="0.1.0")

    @app.post("/chat")
    async def chat(
        body: ChatRequest,
        request: Request,
        h_authorization: str | None = Header(default=None, alias="H-Authorization"),
    ) -> StreamingResponse:
        update: dict = {"credential": bearer_credential(h_authorization)}
        if "entity_id" not in body.model_fields_set:
            update["entity_id"] = config.default_entity_id
        chat_request = body.model_copy(update=update)
        logger.info("[%s] chat entity=%s conversation=%s", chat_request.request_id,
                    chat_request.entity_id, chat_request.conversation_id)

        async def ndjson_stream():
            events = with_heartbeat(
                engine.handle(chat_request),
                interval=config.heartbeat_interval,
                request_id=chat_request.request_id,
            )
            try:
                async for event in events:
                    if await request.is_disconnected():
                        logger.info("[%s] client disconnected", chat_request.request_id)
                        break
                    yield encode_frame(event)
            finally:
                await events.aclose()

        return StreamingResponse(
            ndjson_stream(),
            media_type="application/x-ndjson",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return app


def serve() -> None:
    """Entry-point for ``cfo-agent-web`` console script."""
    import uvicorn

    config = EngineConfig.from_env()
    uvicorn.run(
        create_app(config=config),
        host="0.0.0.0",
        port=8000,
        log_level=config.log_level.lower(),
    )
