from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from persistence.content import PRIVATE_SECTIONS, SECTIONS
from persistence.health import ConnectionStatus, probe_connection
from persistence.kv_cell import KVCache

router = APIRouter(tags=["site"])
logger = logging.getLogger(__name__)


def get_kv(request: Request) -> KVCache:
    return request.app.state.kv


async def _section_view(kv: KVCache, name: str) -> Any:
    section = SECTIONS[name]
    return section.public_view(await kv.get(name))


@router.get("/api/site")
async def site_content(request: Request) -> dict[str, Any]:
    kv = get_kv(request)
    return {name: await _section_view(kv, name) for name in SECTIONS if name not in PRIVATE_SECTIONS}


@router.get("/api/sections/{name}")
async def section_content(name: str, request: Request) -> Any:
    if name not in SECTIONS or name in PRIVATE_SECTIONS:
        raise HTTPException(status_code=404, detail=f"unknown section: {name}")
    return await _section_view(get_kv(request), name)


@router.get("/api/status")
async def connection_status(request: Request) -> ConnectionStatus:
    return await probe_connection(request.app.state.documents, request.app.state.settings)
