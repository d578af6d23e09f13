"""Backend HTTP API: store uploaded captures and analyze them with the vision model."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from walkpad.config import ServerSettings
from walkpad.errors import VisionError
from walkpad.image_store import CAPTURES_ROUTE, LocalImageStore
from walkpad.langfuse_logger import flush, log_generation, maybe_create_langfuse, start_trace
from walkpad.vision import VisionClient, create_openai_client

logger = logging.getLogger(__name__)


def _problem(detail: str, status: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={
            "title": "An error occurred while processing your request.",
            "status": status,
            "detail": detail,
        },
        media_type="application/problem+json",
    )


def create_app(store: LocalImageStore, vision: VisionClient, langfuse: Any = None) -> FastAPI:
    app = FastAPI(title="Walking Pad Stats")

    store.root.mkdir(parents=True, exist_ok=True)
    app.mount(CAPTURES_ROUTE, StaticFiles(directory=str(store.root)), name="captures")

    @app.get("/api/health")
    def health() -> dict:
        return {"ok": True}

    @app.get("/api/analyze")
    def analyze(image_url: str = Query(..., alias="imageUrl")) -> Response:
        trace = start_trace(
            langfuse,
            name="walkpad_analyze",
            metadata={"image_url": image_url},
            tags=["walkpad", "analyze"],
        )
        try:
            raw, meta = vision.analyze_image(image_url)
        except VisionError as exc:
            logger.warning("Chat client returned empty response for image URL: %s", image_url)
            return _problem(str(exc))
        except Exception as exc:
            logger.exception("Error analyzing image from URL: %s", image_url)
            return _problem(f"Error: {exc}")

        log_generation(
            trace,
            name="image-analysis",
            model=vision.model,
            input_payload=meta["input"],
            output_payload=meta["output"],
            usage=meta["usage"],
        )
        flush(langfuse)
        return Response(content=raw, media_type="application/json")

    @app.post("/api/upload")
    async def upload(request: Request) -> Response:
        body = await request.body()
        if not body:
            return _problem("Empty request body.", status=400)
        try:
            stored = await run_in_threadpool(store.save, body)
        except Exception as exc:
            logger.exception("Error storing upload")
            return _problem(f"Error: {exc}")
        return JSONResponse({"filename": stored.filename, "url": stored.url})

    return app


def create_app_from_settings(settings: ServerSettings) -> FastAPI:
    store = LocalImageStore(settings.capture_dir, settings.public_base_url)
    vision = VisionClient(create_openai_client(settings), model=settings.openai_model)
    langfuse = maybe_create_langfuse(
        settings.langfuse_public_key, settings.langfuse_secret_key, settings.langfuse_host
    )
    return create_app(store, vision, langfuse)
