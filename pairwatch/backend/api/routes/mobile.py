"""
api/routes/mobile.py

GET    /mobile-info?netype=<type> — remember the caller's connectivity type
DELETE /mobile-info               — forget it

Entries live in the fast-path cache under the caller's address with no
TTL; the correlation engine reads them when merging destination totals.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ...storage import KeyValueCache
from ..serializers import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mobile-info", tags=["mobile"])


def _get_cache(request: Request) -> KeyValueCache:
    return request.app.state.cache


def _client_address(request: Request) -> str:
    return request.client.host if request.client else ""


@router.get("", response_model=MessageResponse)
def set_mobile_info(
    request: Request,
    netype: str | None = None,
    cache: KeyValueCache = Depends(_get_cache),
):
    if not netype:
        return JSONResponse(
            status_code=400,
            content={"error": "Missing 'netype' query parameter"},
        )
    try:
        cache.set(_client_address(request), netype)
    except Exception as exc:
        logger.error("Failed to store netype for %s: %s", _client_address(request), exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to store Netype in cache"},
        )
    return MessageResponse(message="OK")


@router.delete("", response_model=MessageResponse)
def delete_mobile_info(
    request: Request,
    cache: KeyValueCache = Depends(_get_cache),
):
    try:
        cache.delete(_client_address(request))
    except Exception as exc:
        logger.error("Failed to delete netype for %s: %s", _client_address(request), exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to delete Netype in cache"},
        )
    return MessageResponse(message="OK")
