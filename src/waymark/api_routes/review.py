"""Review gate route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from waymark.api_routes.common import (
    _error_response,
    _lifecycle_error_response,
    _optional_str,
    _parse_json_body,
    _validate_actor,
    _validate_role,
)
from waymark.core import WaymarkDB
from waymark.errors import LifecycleError
from waymark.review import REVIEW_ACTIONS


def create_router() -> APIRouter:
    """Build the APIRouter for review actions and the review toggle."""
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from waymark.api import _get_db

    router = APIRouter()

    @router.post("/work-items/{work_item_id}/review")
    async def api_review_action(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Body: ``{"action": request|approve|reject|cancel, "reason"?, "role", "actor"?}``."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        action = body.get("action")
        if action not in REVIEW_ACTIONS:
            return _error_response(
                f"action must be one of: {', '.join(REVIEW_ACTIONS)}",
                "VALIDATION_ERROR",
                400,
                {"kind": "validation", "fields": ["action"]},
            )
        role, role_err = _validate_role(body.get("role"))
        if role_err:
            return role_err
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        reason, err = _optional_str(body, "reason")
        if err:
            return err
        try:
            if action == "request":
                item = db.request_review(work_item_id, actor=actor, actor_role=role)
            elif action == "approve":
                item = db.approve_review(work_item_id, actor=actor, actor_role=role)
            elif action == "reject":
                item = db.reject_review(work_item_id, reason or "", actor=actor, actor_role=role)
            else:
                item = db.cancel_review(work_item_id, actor=actor, actor_role=role)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict())

    @router.patch("/work-items/{work_item_id}/review")
    async def api_review_toggle(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Body: ``{"enabled": bool, "role", "actor"?}``."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        enabled = body.get("enabled")
        if not isinstance(enabled, bool):
            return _error_response("enabled must be a boolean", "VALIDATION_ERROR", 400, {"fields": ["enabled"]})
        role, role_err = _validate_role(body.get("role"))
        if role_err:
            return role_err
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            item = db.set_review_enabled(work_item_id, enabled, actor=actor, actor_role=role)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict())

    return router
