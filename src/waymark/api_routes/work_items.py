"""Work item CRUD, bug metadata, timeline and event route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from waymark.api_routes.common import (
    _error_response,
    _lifecycle_error_response,
    _optional_str,
    _parse_json_body,
    _parse_pagination,
    _safe_int,
    _validate_actor,
)
from waymark.core import WaymarkDB
from waymark.errors import LifecycleError

logger = logging.getLogger(__name__)

_BOOL_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})

# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------


def create_router() -> APIRouter:
    """Build the APIRouter for work item, timeline and event endpoints.

    NOTE: All handlers are intentionally async despite doing synchronous
    SQLite I/O. This serializes DB access on the event loop thread,
    avoiding concurrent multi-thread access to the shared DB connection.
    """
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from waymark.api import _get_db

    router = APIRouter()

    @router.get("/work-items")
    async def api_list_work_items(request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        params = request.query_params
        page = _parse_pagination(params)
        if isinstance(page, JSONResponse):
            return page
        limit, offset = page
        work_item_type = params.get("type")
        if work_item_type is not None:
            try:
                db.phases.get_workflow(work_item_type)
            except LifecycleError as e:
                return _lifecycle_error_response(e)
        include_archived = params.get("include_archived", "").strip().lower() in _BOOL_TRUE_VALUES
        items = db.list_work_items(
            type=work_item_type,
            phase=params.get("phase"),
            include_archived=include_archived,
            limit=limit,
            offset=offset,
        )
        return JSONResponse([i.to_dict() for i in items])

    @router.post("/work-items")
    async def api_create_work_item(request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        name = body.get("name")
        if not isinstance(name, str) or not name.strip():
            return _error_response("name is required and must be a non-empty string", "VALIDATION_ERROR", 400, {"fields": ["name"]})
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        purpose, err = _optional_str(body, "purpose")
        if err:
            return err
        work_item_type = body.get("type", "feature")
        if not isinstance(work_item_type, str):
            return _error_response("type must be a string", "VALIDATION_ERROR", 400, {"fields": ["type"]})
        review_enabled = body.get("review_enabled")
        if review_enabled is not None and not isinstance(review_enabled, bool):
            return _error_response("review_enabled must be a boolean", "VALIDATION_ERROR", 400, {"fields": ["review_enabled"]})
        try:
            item = db.create_work_item(
                name,
                type=work_item_type,
                purpose=purpose or "",
                fields=body.get("fields"),
                bug_metadata=body.get("bug_metadata"),
                review_enabled=review_enabled,
                actor=actor,
            )
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict(), status_code=201)

    @router.get("/work-items/{work_item_id}")
    async def api_work_item_detail(work_item_id: str, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Work item with its allowed next phases and timeline."""
        try:
            item = db.get_work_item(work_item_id)
            timeline = db.list_timeline_items(work_item_id)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        result: dict[str, Any] = {
            **item.to_dict(),
            "allowed_transitions": db.phases.allowed_targets(item.type, item.phase),
            "timeline_items": [t.to_dict() for t in timeline],
        }
        return JSONResponse(result)

    @router.patch("/work-items/{work_item_id}")
    async def api_update_work_item(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        name, err = _optional_str(body, "name")
        if err:
            return err
        purpose, err = _optional_str(body, "purpose")
        if err:
            return err
        try:
            item = db.update_work_item(
                work_item_id,
                name=name,
                purpose=purpose,
                fields=body.get("fields"),
                actor=actor,
            )
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict())

    @router.delete("/work-items/{work_item_id}")
    async def api_delete_work_item(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        actor, actor_err = _validate_actor(request.query_params.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            db.delete_work_item(work_item_id, actor=actor)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse({"deleted": work_item_id})

    @router.patch("/work-items/{work_item_id}/bug")
    async def api_update_bug_metadata(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Partial update of triage/investigation/fix; returns the item and its advance check."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            item = db.update_bug_metadata(
                work_item_id,
                triage=body.get("triage"),
                investigation=body.get("investigation"),
                fix=body.get("fix"),
                actor=actor,
            )
            check = db.check_bug_advance(work_item_id)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse({"work_item": item.to_dict(), "advance": check})

    @router.get("/work-items/{work_item_id}/timeline")
    async def api_list_timeline(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        try:
            entries = db.list_timeline_items(work_item_id, horizon=request.query_params.get("horizon"))
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse([t.to_dict() for t in entries])

    @router.post("/work-items/{work_item_id}/timeline")
    async def api_add_timeline(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        title = body.get("title")
        if not isinstance(title, str):
            return _error_response("title is required and must be a string", "VALIDATION_ERROR", 400, {"fields": ["title"]})
        try:
            entry = db.add_timeline_item(
                work_item_id,
                title,
                horizon=body.get("horizon", "near_term"),
                status=body.get("status", "not_started"),
                difficulty=body.get("difficulty", "medium"),
                actor=actor,
            )
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(entry.to_dict(), status_code=201)

    @router.patch("/timeline/{item_id}")
    async def api_update_timeline(item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        values: dict[str, str | None] = {}
        for key in ("title", "horizon", "status", "difficulty"):
            value, err = _optional_str(body, key)
            if err:
                return err
            values[key] = value
        try:
            entry = db.update_timeline_item(item_id, actor=actor, **values)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(entry.to_dict())

    @router.delete("/timeline/{item_id}")
    async def api_remove_timeline(item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        actor, actor_err = _validate_actor(request.query_params.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            db.remove_timeline_item(item_id, actor=actor)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse({"removed": item_id})

    @router.get("/work-items/{work_item_id}/events")
    async def api_work_item_events(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        limit = _safe_int(request.query_params.get("limit", "50"), "limit", min_value=1)
        if isinstance(limit, JSONResponse):
            return limit
        try:
            events = db.get_work_item_events(work_item_id, limit=limit)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(events)

    @router.get("/events")
    async def api_recent_events(request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        limit = _safe_int(request.query_params.get("limit", "20"), "limit", min_value=1)
        if isinstance(limit, JSONResponse):
            return limit
        return JSONResponse(db.get_recent_events(limit=limit))

    return router
