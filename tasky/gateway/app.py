from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import Body, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tasky.bridge.tools import TaskBridge
from tasky.observability import (
    Metrics,
    configure_uvicorn_logging,
    get_json_logger,
    use_request_context,
)

# Failure code -> HTTP status; anything unlisted is a 500
_STATUS_BY_CODE = {
    "not_found": 404,
    "validation_error": 422,
    "unknown_operation": 400,
    "storage_error": 503,
}


class RpcRequest(BaseModel):
    operation: str
    payload: dict[str, Any] = Field(default_factory=dict)


def _respond(envelope: dict[str, Any], *, created: bool = False) -> JSONResponse:
    if envelope.get("success"):
        return JSONResponse(envelope, status_code=201 if created else 200)
    return JSONResponse(envelope, status_code=_STATUS_BY_CODE.get(envelope.get("code", ""), 500))


def create_app(bridge: TaskBridge, metrics: Metrics | None = None) -> FastAPI:
    app = FastAPI(title="tasky")
    # Configure uvicorn logging at app startup to avoid import-time side effects
    configure_uvicorn_logging()
    logger = get_json_logger("tasky.gateway")
    counters = metrics or bridge.metrics

    @app.on_event("startup")
    async def _on_startup() -> None:
        result = await bridge.engine.initialize()
        if not result.success:
            logger.error(
                "engine initialization failed",
                extra={"event": "gateway_error", "attributes": {"error": result.error}},
            )

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        logger.info("gateway shutdown", extra={"event": "gateway_shutdown", "service": "gateway"})

    @app.middleware("http")
    async def _request_context(request: Request, call_next: Any) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        started = time.perf_counter()
        with use_request_context(request_id, operation=f"{request.method} {request.url.path}"):
            response: Response = await call_next(request)
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.info(
                "gateway request",
                extra={
                    "event": "gateway_request",
                    "service": "gateway",
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
        counters.increment(
            "gateway_requests", {"method": request.method, "status": str(response.status_code)}
        )
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:  # lightweight healthcheck endpoint
        return {"status": "ok"}

    @app.post("/tasks")
    async def create_task(payload: dict[str, Any] = Body(...)) -> JSONResponse:
        return _respond(await bridge.create(payload), created=True)

    @app.get("/tasks")
    async def list_tasks(
        status: list[str] | None = Query(default=None),
        tags: list[str] | None = Query(default=None),
        search: str | None = None,
        due_date_from: str | None = Query(default=None, alias="dueDateFrom"),
        due_date_to: str | None = Query(default=None, alias="dueDateTo"),
        has_files: bool | None = Query(default=None, alias="hasFiles"),
        limit: int | None = None,
        offset: int | None = None,
    ) -> JSONResponse:
        filters = {
            "status": status,
            "tags": tags,
            "search": search,
            "dueDateFrom": due_date_from,
            "dueDateTo": due_date_to,
            "hasFiles": has_files,
            "limit": limit,
            "offset": offset,
        }
        present = {k: v for k, v in filters.items() if v is not None}
        return _respond(await bridge.list_tasks(present))

    @app.get("/tasks/{task_id}")
    async def get_task(task_id: str) -> JSONResponse:
        return _respond(await bridge.get({"id": task_id}))

    @app.patch("/tasks/{task_id}")
    async def update_task(task_id: str, updates: dict[str, Any] = Body(...)) -> JSONResponse:
        return _respond(await bridge.update({"id": task_id, "updates": updates}))

    @app.delete("/tasks/{task_id}")
    async def delete_task(task_id: str) -> JSONResponse:
        return _respond(await bridge.delete({"id": task_id}))

    @app.post("/tasks/{task_id}/execute")
    async def execute_task(
        task_id: str, payload: dict[str, Any] | None = Body(default=None)
    ) -> JSONResponse:
        return _respond(await bridge.execute({**(payload or {}), "id": task_id}))

    @app.post("/tasks/{task_id}/archive")
    async def archive_task(task_id: str) -> JSONResponse:
        return _respond(await bridge.archive({"id": task_id}))

    @app.get("/stats")
    async def stats() -> JSONResponse:
        return _respond(await bridge.stats())

    @app.get("/analytics")
    async def analytics() -> JSONResponse:
        return _respond(await bridge.analytics())

    @app.get("/insights")
    async def insights() -> JSONResponse:
        return _respond(await bridge.insights())

    @app.post("/rpc")
    async def rpc(request: RpcRequest) -> JSONResponse:
        return _respond(await bridge.handle(request.operation, request.payload))

    @app.get("/metrics")
    async def metrics_snapshot() -> dict[str, Any]:
        return {"metrics": counters.snapshot()}

    return app


__all__ = ["create_app"]
