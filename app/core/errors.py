# app/core/errors.py
# Errores HTTP con payload estándar {code, message, details?}.

from typing import Any, Optional

from fastapi import HTTPException


def api_error(status_code: int, code: str, message: str, details: Optional[Any] = None) -> HTTPException:
    """Construye la HTTPException que usan los routers (se lanza con `raise`)."""
    detail = {"code": code, "message": message}
    if details is not None:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)
