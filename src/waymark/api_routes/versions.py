"""Enhancement, version chain and concept promotion route handlers."""

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
)
from waymark.core import WaymarkDB
from waymark.errors import LifecycleError


def create_router() -> APIRouter:
    """Build the APIRouter for version chain endpoints."""
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from waymark.api import _get_db

    router = APIRouter()

    @router.post("/work-items/{work_item_id}/enhance")
    async def api_enhance(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Body: ``{"version_notes", "name"?, "actor"?}``. Returns the new version."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        notes = body.get("version_notes")
        if not isinstance(notes, str):
            return _error_response(
                "version_notes is required and must be a string", "VALIDATION_ERROR", 400, {"fields": ["version_notes"]}
            )
        name, err = _optional_str(body, "name")
        if err:
            return err
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            item = db.enhance_work_item(work_item_id, notes, name=name, actor=actor)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict(), status_code=201)

    @router.get("/work-items/{work_item_id}/versions")
    async def api_versions(work_item_id: str, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        try:
            chain = db.build_version_chain(work_item_id)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(chain)

    @router.post("/work-items/{work_item_id}/promote")
    async def api_promote(work_item_id: str, request: Request, db: WaymarkDB = Depends(_get_db)) -> JSONResponse:
        """Body: ``{"name"?, "purpose"?, "actor"?}``. Returns the new feature."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        name, err = _optional_str(body, "name")
        if err:
            return err
        purpose, err = _optional_str(body, "purpose")
        if err:
            return err
        actor, actor_err = _validate_actor(body.get("actor", "api"))
        if actor_err:
            return actor_err
        try:
            item = db.promote_concept(work_item_id, name=name, purpose=purpose, actor=actor)
        except LifecycleError as e:
            return _lifecycle_error_response(e)
        return JSONResponse(item.to_dict(), status_code=201)

    return router
