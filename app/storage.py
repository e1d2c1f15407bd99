# app/storage.py
# =================================================================================
# 🗄️ Almacenamiento de ficheros (fotos de la galería)
# ---------------------------------------------------------------------------------
# Disco local bajo MEDIA_ROOT; la URL pública es MEDIA_BASE_URL + clave.
# =================================================================================

import os
import uuid
from pathlib import Path
from typing import Optional

from loguru import logger


def media_root() -> Path:
    root = Path(os.getenv("MEDIA_ROOT", "media"))
    root.mkdir(parents=True, exist_ok=True)
    return root


def media_base_url() -> str:
    return os.getenv("MEDIA_BASE_URL", "/media").rstrip("/")


def generate_unique_filename(original: str) -> str:
    """'foto.jpg' → '<uuid>-foto.jpg'."""
    name = os.path.basename(original or "file") or "file"
    return f"{uuid.uuid4().hex}-{name}"


def _resolve(storage_key: str) -> Path:
    root = media_root().resolve()
    path = (root / storage_key).resolve()
    if root not in path.parents:
        raise ValueError(f"Invalid storage key: {storage_key}")
    return path


def save_file(storage_key: str, data: bytes, content_type: Optional[str] = None) -> str:
    """Guarda `data` bajo `storage_key` y devuelve su URL pública."""
    path = _resolve(storage_key)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    logger.info("Fichero guardado | key={} bytes={} tipo={}", storage_key, len(data), content_type or "-")
    return f"{media_base_url()}/{storage_key}"


def delete_file(storage_key: str) -> None:
    path = _resolve(storage_key)
    if path.exists():
        path.unlink()
