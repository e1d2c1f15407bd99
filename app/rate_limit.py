# app/rate_limit.py                                                               # Ruta del archivo.

# =================================================================================
# 🚦 Rate limit con almacén intercambiable
# ---------------------------------------------------------------------------------
# - RateLimiter aplica una ventana deslizante sobre un RateLimitStore.
# - MemoryRateLimitStore: deque de timestamps por clave (single-process).
# - En multiinstancia se inyecta otro store (Redis, etc.) sin tocar las rutas:
#   basta con sobreescribir la dependencia `get_rate_limiter`.
# =================================================================================

import os                                                                         # Límites desde env.
import threading                                                                  # Lock del store en memoria.
import time                                                                       # Timestamps con time.time().
from collections import deque                                                     # Pops eficientes por la izquierda.
from typing import Deque, Dict, Optional, Protocol, Tuple                         # Tipado.

from fastapi import Depends, Request                                              # Dependencia y clave (IP + ruta).
from loguru import logger                                                         # Logger del proyecto.

from app.core.errors import api_error                                             # Error estándar {code, message}.


class RateLimitStore(Protocol):                                                   # Contrato del almacén.
    def hit(self, key: str, max_req: int, window_s: int, now: float) -> Tuple[bool, int]:
        """Registra un intento si cabe en la ventana. Devuelve (permitido, usados)."""
        ...

    def reset(self, key: Optional[str] = None) -> None:
        ...


class MemoryRateLimitStore:
    """Ventana deslizante en memoria: clave → deque de timestamps (segundos)."""

    SWEEP_EVERY = 256                                                             # Cada cuántos hits se barren claves inactivas.

    def __init__(self):
        self._buckets: Dict[str, Deque[float]] = {}                               # Estado por clave.
        self._lock = threading.Lock()                                             # uvicorn atiende sync handlers en hilos.
        self._hits = 0

    def _sweep(self, cutoff: float) -> None:
        """Elimina las claves cuyo último intento quedó fuera de la ventana."""
        stale = [k for k, b in self._buckets.items() if not b or b[-1] <= cutoff]
        for k in stale:
            del self._buckets[k]

    def __len__(self) -> int:
        return len(self._buckets)

    def hit(self, key: str, max_req: int, window_s: int, now: float) -> Tuple[bool, int]:
        with self._lock:
            cutoff = now - window_s                                               # Límite inferior de la ventana.
            self._hits += 1
            if self._hits % self.SWEEP_EVERY == 0:
                self._sweep(cutoff)
            bucket = self._buckets.setdefault(key, deque())                       # Obtiene o crea el deque.
            while bucket and bucket[0] <= cutoff:                                 # Purga timestamps viejos.
                bucket.popleft()
            if len(bucket) >= max_req:                                            # Ventana llena...
                return False, len(bucket)                                         # ...deniega sin registrar.
            bucket.append(now)                                                    # Registra el intento actual.
            return True, len(bucket)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)


class RateLimiter:
    """Limitador inyectable: `is_allowed(key)` contra `max_req` por `window_s` segundos."""

    def __init__(self, store: RateLimitStore, max_req: int, window_s: int):
        self.store = store
        self.max_req = max_req
        self.window_s = window_s

    def is_allowed(self, key: str) -> bool:
        if self.max_req <= 0:                                                     # Límite 0 o negativo: sin límite.
            return True
        allowed, used = self.store.hit(key, self.max_req, self.window_s, time.time())
        if not allowed:
            logger.warning("Rate limit hit for key='{}' ({}/{} in {}s)", key, used, self.max_req, self.window_s)
        return allowed


def get_limits_from_env(prefix: str, default_max: int, default_window: int) -> Tuple[int, int]:
    """Lee {prefix}_MAX y {prefix}_WINDOW (segundos); defaults si faltan o no son enteros."""
    try:
        max_req = int(os.getenv(f"{prefix}_MAX", str(default_max)))
        window = int(os.getenv(f"{prefix}_WINDOW", str(default_window)))
    except ValueError:
        max_req, window = default_max, default_window
    return max_req, window


# 🔌 Instancia por defecto para las rutas de invitados
_RSVP_MAX, _RSVP_WINDOW = get_limits_from_env("RSVP_RATE", 30, 60)               # 30 peticiones/min por IP y endpoint.
_default_limiter = RateLimiter(MemoryRateLimitStore(), _RSVP_MAX, _RSVP_WINDOW)


def get_rate_limiter() -> RateLimiter:                                            # Dependencia sobreescribible.
    return _default_limiter


def client_key(request: Request) -> str:
    """IP + plantilla de la ruta (/api/guest/{token}), nunca el path concreto con el token."""
    ip = request.client.host if request.client else "unknown"
    route = request.scope.get("route")
    template = getattr(route, "path", None) or request.url.path
    return f"{ip}:{template}"


def enforce_rate_limit(request: Request, limiter: RateLimiter) -> None:
    """Lanza 429 RATE_LIMITED si la clave (IP + endpoint) agotó su ventana."""
    if not limiter.is_allowed(client_key(request)):
        raise api_error(429, "RATE_LIMITED", "Too many requests. Please try again later.")


def rate_limited(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
    """Dependencia FastAPI para las rutas públicas de invitados."""
    enforce_rate_limit(request, limiter)
