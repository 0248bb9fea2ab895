"""Saved-map file endpoints, scoped to the calling account.

Identity is asserted by the upstream authenticator through two headers:

    X-User-Email  account the request acts for (required, else 401)
    X-User-Role   student | teacher | admin (admin routes need admin/teacher)

File names may contain "/", so the name is always the final, path-typed
segment of a route.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from loguru import logger
from pydantic import BaseModel

from mapsketch.config import settings
from mapsketch.errors import InvalidFileNameError
from mapsketch.persistence import validate_file_name
from mapsketch_server.storage import FileStore

router = APIRouter(tags=["files"])


# ---------------------------------------------------------------------------
# Request models and dependencies
# ---------------------------------------------------------------------------

class SaveRequest(BaseModel):
    """Store a document under a name."""
    fileName: Optional[str] = None
    geojsonData: Any = None


@dataclass
class Identity:
    email: str
    role: str


def get_identity(
    x_user_email: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Identity:
    """Caller identity from the authenticator headers."""
    email = (x_user_email or "").strip()
    if not email:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Identity(email=email, role=(x_user_role or "student").strip().lower())


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.role not in settings.admin_roles:
        raise HTTPException(status_code=403, detail="Admin or teacher role required")
    return identity


def get_store(request: Request) -> FileStore:
    return request.app.state.file_store


def _decode(content: Any, file_name: str) -> Any:
    """Stored content as JSON; string rows are parsed first."""
    if isinstance(content, str):
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Stored file '{file_name}' is not valid JSON: {e}")
            raise HTTPException(status_code=500, detail="Stored file has an invalid format")
    return content


# ---------------------------------------------------------------------------
# Account routes
# ---------------------------------------------------------------------------

@router.post("/save")
def save_file(
    body: SaveRequest,
    identity: Identity = Depends(get_identity),
    store: FileStore = Depends(get_store),
):
    """Create or overwrite one of the caller's files."""
    if not body.fileName or body.geojsonData is None:
        raise HTTPException(status_code=400, detail="fileName and geojsonData are required")
    try:
        name = validate_file_name(body.fileName)
    except InvalidFileNameError as e:
        logger.warning(f"Rejected file name from {identity.email}: {body.fileName!r}")
        raise HTTPException(status_code=400, detail=str(e))

    store.save(identity.email, name, body.geojsonData)
    return {"message": "File saved"}


@router.get("/load/{file_name:path}")
def load_file(
    file_name: str,
    identity: Identity = Depends(get_identity),
    store: FileStore = Depends(get_store),
):
    """Return one of the caller's files."""
    content = store.load(identity.email, file_name)
    if content is None:
        raise HTTPException(status_code=404, detail="File not found")
    return _decode(content, file_name)


@router.get("/files")
def list_files(
    identity: Identity = Depends(get_identity),
    store: FileStore = Depends(get_store),
):
    """Names of the caller's files."""
    return [row["file_name"] for row in store.list_files(identity.email)]


@router.delete("/delete/{file_name:path}")
def delete_file(
    file_name: str,
    identity: Identity = Depends(get_identity),
    store: FileStore = Depends(get_store),
):
    if not store.delete(identity.email, file_name):
        raise HTTPException(status_code=404, detail="File not found")
    return {"message": "File deleted"}


# ---------------------------------------------------------------------------
# Admin / teacher routes
# ---------------------------------------------------------------------------

@router.get("/admin/files")
def list_all_files(
    identity: Identity = Depends(require_admin),
    store: FileStore = Depends(get_store),
):
    """Every account's files, newest first."""
    files = store.list_all()
    logger.info(f"{identity.email} listed {len(files)} files across accounts")
    return files


@router.get("/admin/load/{email}/{file_name:path}")
def load_any_file(
    email: str,
    file_name: str,
    identity: Identity = Depends(require_admin),
    store: FileStore = Depends(get_store),
):
    """Return another account's file."""
    if not store.has_account(email):
        raise HTTPException(status_code=404, detail="User not found")
    content = store.load(email, file_name)
    if content is None:
        raise HTTPException(status_code=404, detail="File not found")
    logger.info(f"{identity.email} loaded '{file_name}' of {email}")
    return _decode(content, file_name)
