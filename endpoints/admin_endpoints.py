from __future__ import annotations

import asyncio
import binascii
import dataclasses
import logging
import time
from typing import Any

import httpx
import jwt
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from persistence.blob_store import BlobUploadError
from persistence.content import SECTIONS, Section, SiteSettings, new_record_id
from persistence.interfaces import ReadStatus, StoreNotConfiguredError
from persistence.kv_cell import KVCache
from persistence.uploads import IMAGE_POLICY, PDF_POLICY, UploadPolicy, UploadRejected, upload_file
from settings import Settings

router = APIRouter(tags=["admin"])
logger = logging.getLogger(__name__)

ADMIN_COOKIE_NAME = "admin_session"
ADMIN_ISSUER = "site-admin"
ADMIN_SCOPES = ["site.admin"]


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _kv(request: Request) -> KVCache:
    return request.app.state.kv


def _mask_token(token: str, *, head: int = 16, tail: int = 8) -> str:
    if len(token) <= head + tail + 3:
        return token
    return f"{token[:head]}...{token[-tail:]}"


# -------------------------------------------------------------------
# Admin session (plaintext credential check, signed cookie)
# -------------------------------------------------------------------
def _issue_admin_token(settings: Settings, username: str) -> str:
    now = int(time.time())
    payload = {
        "iss": ADMIN_ISSUER,
        "sub": username,
        "iat": now,
        "exp": now + settings.admin_session_ttl,
        "scp": ADMIN_SCOPES,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)
    logger.debug("ISSUED ADMIN SESSION (masked): %s", _mask_token(token))
    return token


def _admin_from_request(request: Request) -> str | None:
    token = request.cookies.get(ADMIN_COOKIE_NAME)
    if not token:
        return None
    settings = _settings(request)
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg], issuer=ADMIN_ISSUER)
    except jwt.PyJWTError as e:
        logger.info("ADMIN SESSION rejected: %r", e)
        return None
    sub = claims.get("sub")
    return sub if isinstance(sub, str) and sub else None


async def require_admin(request: Request) -> str:
    username = _admin_from_request(request)
    if username is None:
        raise HTTPException(status_code=401, detail="admin login required")
    return username


@router.post("/admin/login")
async def admin_login(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
) -> JSONResponse:
    section = SECTIONS["siteSettings"]
    site_settings: SiteSettings = section.coerce(await _kv(request).get(section.key))

    if username != site_settings.adminUsername or password != site_settings.adminPassword:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    settings = _settings(request)
    resp = JSONResponse({"username": username})
    resp.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=_issue_admin_token(settings, username),
        max_age=settings.admin_session_ttl,
        httponly=True,
        samesite="lax",
        secure=False,
        path="/",
    )
    return resp


@router.post("/admin/logout")
async def admin_logout() -> JSONResponse:
    resp = JSONResponse({"ok": True})
    resp.delete_cookie(key=ADMIN_COOKIE_NAME, path="/")
    return resp


# -------------------------------------------------------------------
# Section editing
# -------------------------------------------------------------------
@router.put("/api/sections/{name}", dependencies=[Depends(require_admin)])
async def update_section(name: str, request: Request, wait: bool = False) -> JSONResponse:
    section = SECTIONS.get(name)
    if section is None:
        raise HTTPException(status_code=404, detail=f"unknown section: {name}")

    body = await _json_body(request)
    try:
        value = section.validate(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from e

    task = _kv(request).write(name, section.dump(value))
    return await _write_response({"key": name}, task, wait)


@router.post("/api/sections/{name}/items", dependencies=[Depends(require_admin)])
async def add_section_item(name: str, request: Request, wait: bool = False) -> JSONResponse:
    """Append one record to a list section; the server assigns its id."""
    section = _list_section(name)
    body = await _json_body(request)
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="request body must be a JSON object")
    try:
        item = section.item_model.model_validate({**body, "id": new_record_id()})
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from e

    kv = _kv(request)
    await kv.get(name)
    task = kv.write(name, lambda current: section.dump(section.coerce(current) + [item]))
    return await _write_response({"key": name, "item": item.model_dump(mode="json")}, task, wait)


@router.delete("/api/sections/{name}/items/{item_id}", dependencies=[Depends(require_admin)])
async def remove_section_item(name: str, item_id: str, request: Request, wait: bool = False) -> JSONResponse:
    section = _list_section(name)
    kv = _kv(request)
    if not any(r.id == item_id for r in section.coerce(await kv.get(name))):
        raise HTTPException(status_code=404, detail=f"no item {item_id} in {name}")

    task = kv.write(name, lambda current: section.dump([r for r in section.coerce(current) if r.id != item_id]))
    return await _write_response({"key": name, "removed": item_id}, task, wait)


def _list_section(name: str) -> Section:
    section = SECTIONS.get(name)
    if section is None or section.item_model is None:
        raise HTTPException(status_code=404, detail=f"unknown list section: {name}")
    return section


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="request body is not valid JSON") from e


async def _write_response(payload: dict[str, Any], task: asyncio.Task[bool], wait: bool) -> JSONResponse:
    if not wait:
        return JSONResponse({**payload, "saved": None}, status_code=202)
    saved = await task
    return JSONResponse({**payload, "saved": saved}, status_code=200 if saved else 502)


# -------------------------------------------------------------------
# Raw key-value access
# -------------------------------------------------------------------
@router.get("/api/kv", dependencies=[Depends(require_admin)])
async def list_keys(request: Request) -> dict[str, Any]:
    return {"keys": await _kv(request).store.list_keys()}


@router.get("/api/kv/{key}", dependencies=[Depends(require_admin)])
async def read_key(key: str, request: Request) -> dict[str, Any]:
    result = await _kv(request).store.fetch(key)
    if result.status is ReadStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail=f"no value for key: {key}")
    if result.status is ReadStatus.TRANSPORT_ERROR:
        raise HTTPException(status_code=502, detail="document store unavailable")
    return {"key": key, "value": result.value}


@router.delete("/api/kv/{key}", dependencies=[Depends(require_admin)])
async def delete_key(key: str, request: Request) -> dict[str, Any]:
    if not await _kv(request).delete(key):
        raise HTTPException(status_code=502, detail="document store unavailable")
    return {"key": key, "deleted": True}


# -------------------------------------------------------------------
# Uploads
# -------------------------------------------------------------------
async def _handle_upload(request: Request, file: UploadFile, folder: str | None, policy: UploadPolicy) -> dict[str, str]:
    policy = dataclasses.replace(policy, max_size_mb=_settings(request).max_upload_mb)
    data = await file.read()
    try:
        url = await upload_file(
            request.app.state.blobs,
            policy,
            data=data,
            filename=file.filename or "upload",
            content_type=file.content_type,
            folder=folder or None,
        )
    except UploadRejected as e:
        raise HTTPException(status_code=413 if e.reason == "too_large" else 415, detail=str(e)) from e
    except StoreNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except BlobUploadError as e:
        raise HTTPException(status_code=502, detail=f"upload failed: {e.status_code} {e.body}") from e
    except httpx.HTTPError as e:
        logger.error("UPLOAD %s: transport failure: %r", file.filename, e)
        raise HTTPException(status_code=502, detail="upload failed: blob storage unreachable") from e
    except binascii.Error as e:
        logger.error("UPLOAD %s: storage key is not valid base64", file.filename)
        raise HTTPException(status_code=502, detail="upload failed: storage authorization error") from e
    return {"url": url}


@router.post("/api/uploads/image", dependencies=[Depends(require_admin)])
async def upload_image(
    request: Request,
    file: UploadFile = File(...),
    folder: str | None = Form(None),
) -> dict[str, str]:
    return await _handle_upload(request, file, folder, IMAGE_POLICY)


@router.post("/api/uploads/file", dependencies=[Depends(require_admin)])
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    folder: str | None = Form(None),
) -> dict[str, str]:
    return await _handle_upload(request, file, folder, PDF_POLICY)
