"""Phase movement, readiness and workflow route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from waymark.api_routes.common import (
    _error_response,
    _lifecycle_error_response,
    _optional_str,
    _parse_json_body,
    _safe_int,
    _validate_actor,
)
from waymark.core import WaymarkDB
from waymark.errors import LifecycleError
from waymark.readiness import ReadinessInput, compute_readiness

logger = logging.getLogger(__name__)


def create_router() -> APIRouter:
    """Build the APIRouter for transitions, readiness and workflow tables."""
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from waymark.api import _get_db

    router = APIRouter()

    @router.post("/work-items/{work_item_id}/transition")
    async def api_transition(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Body: ``{"target_phase", "expected_current_phase"?, "actor"?}``."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        target = body.get("target_phase")
        if not isinstance(target, str) or not target:
            return _error_response(
                "target_phase is required and must be a string", "VALIDATION_ERROR", 400, {"fields": ["target_phase"]}
            )
        expected, err = _optional_str(body, "expected_current_phase")
        if err:
            return err
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            item = db.transition_phase(work_item_id, target, expected_current_phase=expected, actor=actor)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict())

    @router.post("/work-items/{work_item_id}/upgrade")
    async def api_upgrade(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Advance to the next phase; 422 with the missing fields when not ready."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        expected, err = _optional_str(body, "expected_current_phase")
        if err:
            return err
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            item = db.upgrade_phase(work_item_id, expected_current_phase=expected, actor=actor)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict())

    @router.get("/work-items/{work_item_id}/readiness")
    async def api_readiness(work_item_id: str, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        try:
            report = db.compute_readiness(work_item_id)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(report)

    @router.post("/readiness")
    async def api_readiness_snapshot(request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Readiness for a caller-supplied snapshot; nothing is read or written."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        counts: list[int] = []
        for key in ("timeline_item_count", "completed_timeline_count"):
            value = _safe_int(str(body.get(key, 0)), key, min_value=0)
            if isinstance(value, JSONResponse):
                return value
            counts.append(value)
        try:
            report = compute_readiness(
                ReadinessInput.from_snapshot(body),
                timeline_item_count=counts[0],
                completed_timeline_count=counts[1],
                registry=db.phases,
            )
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(report)

    @router.post("/work-items/{work_item_id}/reject")
    async def api_reject_concept(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Body: ``{"reason", "archive"?, "actor"?}``."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        reason = body.get("reason")
        if not isinstance(reason, str):
            return _error_response("reason is required and must be a string", "VALIDATION_ERROR", 400, {"fields": ["reason"]})
        archive = body.get("archive", False)
        if not isinstance(archive, bool):
            return _error_response("archive must be a boolean", "VALIDATION_ERROR", 400, {"fields": ["archive"]})
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            item = db.reject_concept(work_item_id, reason, archive=archive, actor=actor)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict())

    @router.get("/workflows")
    async def api_workflows(db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([wf.to_dict() for wf in db.phases.list_workflows()])

    @router.get("/workflows/{work_item_type}")
    async def api_workflow_detail(work_item_type: str, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        try:
            wf = db.phases.get_workflow(work_item_type)
        except LifecycleError as e:
            return _error_response(e.message, "NOT_FOUND", 404, {"kind": "not_found", "fields": ["type"]})
        return JSONResponse(wf.to_dict())

    return router
