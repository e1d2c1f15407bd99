# app/core/security.py
# Dependencias de autorización para los endpoints de administración.

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth import verify_admin_token
from app.core.errors import api_error
from app.db import get_db
from app.models import AdminRoleEnum, Wedding

_bearer = HTTPBearer(auto_error=False)


@dataclass
class AdminContext:
    admin_id: str
    role: AdminRoleEnum
    wedding_id: Optional[str] = None  # Solo wedding_admin.


def require_admin(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> AdminContext:
    if credentials is None or not credentials.credentials:
        raise api_error(401, "UNAUTHORIZED", "Missing bearer token")
    payload = verify_admin_token(credentials.credentials)
    if payload is None:
        raise api_error(401, "UNAUTHORIZED", "Invalid or expired token")
    return AdminContext(
        admin_id=payload["sub"],
        role=AdminRoleEnum(payload["role"]),
        wedding_id=payload.get("wedding_id"),
    )


def ensure_wedding_access(db: Session, admin: AdminContext, wedding_id: str) -> Wedding:
    """La boda existe y el admin puede gestionarla; si no, 404/403."""
    wedding = db.get(Wedding, wedding_id)
    if wedding is None:
        raise api_error(404, "NOT_FOUND", "Wedding not found")
    if admin.role == AdminRoleEnum.wedding_admin and admin.wedding_id != wedding_id:
        raise api_error(403, "FORBIDDEN", "You do not have access to this wedding")
    if admin.role == AdminRoleEnum.planner and wedding.planner_id != admin.admin_id:
        raise api_error(403, "FORBIDDEN", "You do not have access to this wedding")
    return wedding


def wedding_access(
    wedding_id: str,
    admin: AdminContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AdminContext:
    """Dependencia para rutas con {wedding_id} en el path."""
    ensure_wedding_access(db, admin, wedding_id)
    return admin
