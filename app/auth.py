# app/auth.py  # Tokens JWT de las personas administradoras (wedding admins y planners).

# =================================================================================
# 🔐 MÓDULO DE AUTENTICACIÓN (JWT)
# ---------------------------------------------------------------------------------
# - Firma y verifica los JWT de administración con python-jose.
# - Claims: sub (id del admin), role (wedding_admin | planner), wedding_id (solo
#   para wedding_admin), type='admin', iat, exp.
# - Los invitados NO usan JWT: entran con su magic token (ver app/magic_link.py).
# =================================================================================

import os                                                     # Acceso a variables de entorno (.env).
from datetime import datetime, timedelta                      # Emisión/expiración.
from typing import Any, Dict, Optional                        # Tipado.

from jose import JWTError, jwt                                # Implementación de JWT (python-jose).

from app.models import AdminRoleEnum                          # Roles admitidos.

# ⚙️ Configuración de seguridad (desde .env con defaults de desarrollo)
SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret")            # Clave de firma (valor real en producción).
ALGORITHM = os.getenv("ALGORITHM", "HS256")                   # Algoritmo de firmado.
ADMIN_TOKEN_EXPIRE_MINUTES = int(os.getenv("ADMIN_TOKEN_EXPIRE_MINUTES", "720"))  # 12 h por defecto.
TOKEN_TYPE = "admin"                                          # Valor del claim 'type'.

if not SECRET_KEY:                                            # Fail-fast si queda vacío.
    raise ValueError("SECRET_KEY no está configurado.")
if not ALGORITHM:
    raise ValueError("ALGORITHM no está configurado.")


def _utcnow() -> datetime:
    return datetime.utcnow()


def create_admin_token(                                       # Emite el JWT de un admin.
    admin_id: str,                                            # Id de WeddingAdmin o WeddingPlanner.
    role: AdminRoleEnum | str,                                # Rol del sujeto.
    wedding_id: Optional[str] = None,                         # Boda del wedding_admin (None para planners).
    expires_minutes: Optional[int] = None,                    # Override de expiración (tests, scripts).
) -> str:
    role = AdminRoleEnum(role)                                # Valida el rol (ValueError si no existe).
    if role == AdminRoleEnum.wedding_admin and not wedding_id:  # Un wedding_admin siempre va ligado a su boda.
        raise ValueError("wedding_admin tokens require wedding_id")
    now = _utcnow()
    exp = now + timedelta(minutes=expires_minutes if expires_minutes is not None else ADMIN_TOKEN_EXPIRE_MINUTES)
    payload: Dict[str, Any] = {
        "sub": admin_id,
        "role": role.value,
        "type": TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if wedding_id:
        payload["wedding_id"] = wedding_id
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_admin_token(token: str) -> Dict[str, Any]:         # Lanza JWTError/ValueError si no es válido.
    """Decodifica y verifica firma, expiración, tipo y rol del token."""
    data = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])  # Verifica firma y 'exp'.
    if data.get("type") != TOKEN_TYPE:                        # Solo tokens de administración.
        raise ValueError("Invalid token type for admin token")
    if not data.get("sub"):
        raise ValueError("Admin token without subject")
    AdminRoleEnum(data.get("role"))                           # Rol desconocido → ValueError.
    return data


def verify_admin_token(token: str) -> Optional[Dict[str, Any]]:  # Variante que no lanza.
    try:
        return decode_admin_token(token)
    except (JWTError, ValueError):
        return None
