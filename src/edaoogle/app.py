"""ASGI delivery layer for the search engine.

Routes:
    /search       HTML results page for ``?q=``
    /api/search   the same results as JSON
    /health       whether an index is published
    /metrics      Prometheus exposition
    /             static files from the web root (corpus documents under /wiki)

Usage:
    edaoogle serve --index-dir search_index --web-root www
"""

from __future__ import annotations

import asyncio
import logging

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from edaoogle.config import Settings
from edaoogle.errors import SearchUnavailableError
from edaoogle.observability import TraceContextMiddleware, get_metrics, get_metrics_content_type
from edaoogle.search.engine import SearchEngine
from edaoogle.ui.results_page import render_results_html, render_unavailable_html


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, *, engine: SearchEngine | None = None) -> Starlette:
    """Build the Starlette app around a read-only search engine."""
    settings = settings or Settings()
    engine = engine or SearchEngine(settings.resolved_index_dir())

    async def search_page(request: Request) -> Response:
        query = request.query_params.get("q", "")
        try:
            response = await asyncio.to_thread(engine.search, query)
        except SearchUnavailableError:
            return HTMLResponse(render_unavailable_html(query), status_code=503)
        return HTMLResponse(
            render_results_html(response, link_prefix=settings.wiki_prefix, limit=settings.search_results_limit)
        )

    async def search_api(request: Request) -> JSONResponse:
        query = request.query_params.get("q", "")
        try:
            response = await asyncio.to_thread(engine.search, query)
        except SearchUnavailableError as exc:
            return JSONResponse({"error": "search_unavailable", "message": str(exc)}, status_code=503)
        return JSONResponse(response.model_dump(mode="json"))

    async def health(_: Request) -> JSONResponse:
        segment = await asyncio.to_thread(engine.current_segment)
        if segment is None:
            return JSONResponse({"status": "unhealthy", "index": None}, status_code=503)
        return JSONResponse(
            {
                "status": "healthy",
                "index": {
                    "segment_id": segment.segment_id,
                    "created_at": segment.created_at.isoformat(),
                    "doc_count": segment.doc_count,
                    "posting_count": segment.posting_count,
                },
            }
        )

    async def metrics_endpoint(_: Request) -> Response:
        return Response(content=get_metrics(), media_type=get_metrics_content_type())

    routes: list[Route | Mount] = [
        Route("/search", endpoint=search_page, methods=["GET"]),
        Route("/api/search", endpoint=search_api, methods=["GET"]),
        Route("/health", endpoint=health, methods=["GET"]),
        Route("/metrics", endpoint=metrics_endpoint, methods=["GET"]),
    ]
    web_root = settings.resolved_web_root()
    if web_root.is_dir():
        routes.append(Mount("/", app=StaticFiles(directory=web_root, html=True), name="static"))
    else:
        logger.warning("Web root %s does not exist; static files are disabled", web_root)

    return Starlette(
        debug=settings.log_level == "debug",
        routes=routes,
        middleware=[Middleware(TraceContextMiddleware)],
    )
