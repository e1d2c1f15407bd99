# app/main.py                                                                                   # Punto de entrada de la API.

# ================================================================
# 🧱 MODO MANTENIMIENTO (Control temporal desde variable de entorno)
# ================================================================

import os

# Si la variable MAINTENANCE_MODE=1 está activa, se crea una app mínima
if os.getenv("MAINTENANCE_MODE") == "1":
    from fastapi import FastAPI
    from fastapi.responses import JSONResponse
    from loguru import logger

    app = FastAPI(title="API en mantenimiento")

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    async def maintenance_page(path: str):
        """Responde a cualquier ruta y método con mensaje neutro de mantenimiento."""
        return JSONResponse(
            status_code=503,
            content={
                "status": "offline",
                "message": "🌙 El sistema está en mantenimiento. Vuelve más tarde."
            }
        )

    logger.warning("🚧 API arrancada en MODO MANTENIMIENTO. Todos los endpoints reales están desactivados.")
else:
    # =================================================================================
    # 🧠 NÚCLEO DE LA APLICACIÓN API (FastAPI)
    # ---------------------------------------------------------------------------------
    # - Crea la instancia de FastAPI y configura CORS
    # - Arranca/para la cola de tareas en segundo plano
    # - Registra routers (guest, enlaces cortos, admin, webhooks) y sirve /media
    # =================================================================================

    from pathlib import Path                                                                        # Rutas de archivos.

    from dotenv import load_dotenv                                                                  # Variables desde .env.
    from fastapi import FastAPI                                                                     # Aplicación.
    from fastapi.middleware.cors import CORSMiddleware                                              # Orígenes permitidos.
    from fastapi.staticfiles import StaticFiles                                                     # Fotos de la galería.
    from loguru import logger                                                                       # Trazas de arranque.

    env_path = Path('.') / '.env'                                                                   # .env del directorio actual.
    load_dotenv(dotenv_path=env_path)                                                               # Carga antes de importar módulos que leen env.

    logger.info(                                                                                    # Variables clave de proveedores.
        "[BOOT] DRY_RUN={} | EMAIL_FROM={} | SG_KEY_SET={} | TWILIO_SET={} | AI={}",
        os.getenv("DRY_RUN", "1"),
        os.getenv("EMAIL_FROM"),
        "yes" if os.getenv("SENDGRID_API_KEY") else "no",
        "yes" if os.getenv("TWILIO_ACCOUNT_SID") and os.getenv("TWILIO_AUTH_TOKEN") else "no",
        os.getenv("AI_PROVIDER") or ("openai" if os.getenv("OPENAI_API_KEY") else "gemini" if os.getenv("GEMINI_API_KEY") else "none"),
    )

    from app.background import background_queue                                                    # Cola de efectos best-effort.
    from app.db import log_db_path_on_startup                                                       # Traza de la BD real.
    from app.routers import admin, guest, webhooks                                                  # Routers de la aplicación.
    from app.storage import media_base_url, media_root                                              # Almacenamiento local.

    app = FastAPI(
        title="Wedding Guest Communications API",
        description="Magic links, envíos multicanal, webhooks de WhatsApp y timeline de invitados",
        version="1.0.0",
    )

    cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]      # Lista separada por comas.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or [
            os.getenv("APP_URL", "http://localhost:3000"),
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # El esquema lo gestiona Alembic (alembic upgrade head); aquí no se hace create_all.

    @app.on_event("startup")
    def _startup() -> None:
        log_db_path_on_startup()
        background_queue.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        background_queue.join()                                                                     # Vacía tareas pendientes (tracking, confirmaciones).
        background_queue.stop()

    app.include_router(guest.router)                                                                # /api/guest/...
    app.include_router(guest.short_router)                                                          # /inv/{initials}/{code}
    app.include_router(admin.router)                                                                # /api/admin/weddings/{id}/...
    app.include_router(webhooks.router)                                                             # /api/webhooks/...

    if media_base_url().startswith("/"):                                                            # Solo si las URLs apuntan a esta API.
        app.mount(media_base_url(), StaticFiles(directory=str(media_root())), name="media")
