from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from ..errors import InvalidInput
from ..observability import audit
from .deps import AppState, Guards


def create_search_router(state: AppState, guards: Guards) -> APIRouter:
    router = APIRouter(tags=["search"], dependencies=[Depends(guards.require_auth)])
    engine = state.search

    @router.get("/search")
    async def search(
        request: Request,
        q: Optional[str] = None,
        path: str = ".",
        limit: Optional[str] = None,
        timeout: Optional[str] = None,
    ):
        """Search entry names below ``path``.

        ``limit`` and ``timeout`` (ms) are clamped; junk values fall back
        to the defaults instead of failing the request.
        """
        query = (q or "").strip()
        if not query:
            raise InvalidInput('Query parameter "q" is required.', reason="search_query_missing")
        # Walking the tree blocks; keep it off the event loop.
        outcome = await run_in_threadpool(engine.search, path, query, limit, timeout)
        audit(
            request,
            "SEARCH",
            query=query,
            search_path=path,
            result_count=len(outcome.matches),
            duration_ms=outcome.elapsed_ms,
        )
        return {
            "query": query,
            "path": state.sandbox.relative(state.sandbox.resolve(path)),
            "results": [m.to_dict() for m in outcome.matches],
            "resultCount": len(outcome.matches),
            "truncated": outcome.truncated,
            "timedOut": outcome.timed_out,
            "durationMs": outcome.elapsed_ms,
        }

    return router
