# reminder_scheduler.py                                                                  # Nombre del archivo.

# ====================================================================================== # Separador visual.
# ⏰ SCHEDULER DE RECORDATORIOS AUTOMÁTICOS                                               # Título descriptivo.
# -------------------------------------------------------------------------------------- # Descripción.
# - Job diario: por cada boda con RSVP abierto decide si toca recordatorio y lo envía   # Función principal.
#   por el canal preferido de cada familia (reminder_type='automatic').                 #
# - La frecuencia sube al acercarse la fecha límite de cada boda.                       #
# - Lock de proceso, alertas por webhook y config por .env.                             # Extras.
# ====================================================================================== # Cierre encabezado.

import os                                                                                # Variables de entorno y lockfile.
from datetime import datetime                                                            # Fechas.
from typing import Optional                                                              # Tipado.
from zoneinfo import ZoneInfo                                                            # Timezone nativo (PEP 615).

from apscheduler.schedulers.blocking import BlockingScheduler                            # Scheduler en modo blocking.
from dotenv import load_dotenv                                                           # Carga variables desde .env.
from loguru import logger                                                                # Logger principal.
from sqlalchemy import func                                                              # MAX(timestamp).

# Carga .env lo antes posible (antes de importar app.db).                                # Comentario.
load_dotenv()

from app.background import background_queue                                              # Tracking en segundo plano.
from app.db import SessionLocal                                                          # Sesión de BD.
from app.mailer import send_alert_webhook                                                # Alertas a admin.
from app.models import EventTypeEnum, TrackingEvent, Wedding                             # Modelos.
from app.notifications.reminders import ReminderCutoffPassedError, send_reminders        # Orquestador de recordatorios.

# -------------------------------------------------------------------------------------- # Zona horaria y timing del job desde .env.
EVENT_TZ_NAME = os.getenv("SCHED_TZ", "Europe/Madrid")                                    # TZ configurable.
EVENT_TIMEZONE = ZoneInfo(EVENT_TZ_NAME)                                                  # Objeto timezone.


def _env_int(name: str, default: int) -> int:                                             # Helper para leer enteros de entorno.
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


SCHED_HOUR = _env_int("SCHED_HOUR", 9)                                                    # Hora local (0-23).
SCHED_MINUTE = _env_int("SCHED_MINUTE", 0)                                                # Minuto (0-59).

# -------------------------------------------------------------------------------------- # Lockfile para evitar instancias concurrentes.
LOCKFILE_PATH = os.getenv("SCHED_LOCKFILE", "scheduler.lock")                             # Ruta del lockfile.


def acquire_lock() -> bool:                                                               # Intenta crear lockfile exclusivo.
    try:
        fd = os.open(LOCKFILE_PATH, os.O_CREAT | os.O_EXCL | os.O_WRONLY)                 # O_EXCL: falla si ya existe.
        os.write(fd, str(os.getpid()).encode("utf-8"))                                    # Escribe el PID dentro.
        os.close(fd)
        logger.info("Lock adquirido ({}). PID={}", LOCKFILE_PATH, os.getpid())
        return True
    except FileExistsError:
        logger.error("Ya hay un scheduler en ejecución (lock: {}).", LOCKFILE_PATH)
        return False


def release_lock() -> None:                                                               # Elimina lockfile si existe.
    try:
        os.remove(LOCKFILE_PATH)
        logger.info("Lock liberado.")
    except FileNotFoundError:
        pass

# -------------------------------------------------------------------------------------- # Lógica de frecuencia de envío.
def should_send_reminder(today: datetime, last_sent_at: Optional[datetime], deadline: datetime) -> bool:
    """
    Incrementa frecuencia al acercarse la fecha límite.
    >60 días: cada 15 días, 31-60: cada 7 días, 0-30: cada 2 días.
    """
    days_left = (deadline.date() - today.date()).days                                    # Días restantes hasta la fecha límite.
    if days_left < 0:                                                                     # Fecha límite pasada...
        return False                                                                      # ...no se envía nada.
    if last_sent_at is None:                                                              # Si nunca se envió...
        return True                                                                       # ...envía ahora mismo.

    if days_left > 60:
        frequency_days = 15
    elif days_left > 30:
        frequency_days = 7
    else:
        frequency_days = 2

    days_since_last = (today.date() - last_sent_at.date()).days                           # Días desde el último envío.
    return days_since_last >= frequency_days


def last_reminder_at(db, wedding_id: str) -> Optional[datetime]:                          # Último REMINDER_SENT de la boda.
    return (
        db.query(func.max(TrackingEvent.timestamp))
        .filter(
            TrackingEvent.wedding_id == wedding_id,
            TrackingEvent.event_type == EventTypeEnum.REMINDER_SENT,
        )
        .scalar()
    )

# -------------------------------------------------------------------------------------- # Job principal del scheduler.
def send_pending_reminders_job(now: Optional[datetime] = None) -> dict:
    """
    Recorre las bodas con RSVP abierto y envía recordatorios si toca.
    Devuelve el resumen {weddings, sent, failed, skipped} y alerta si hubo errores.
    """
    now = now or datetime.utcnow()                                                        # Fechas de BD en UTC naive.
    logger.info("Iniciando job de envío de recordatorios...")

    summary = {"weddings": 0, "sent": 0, "failed": 0, "skipped": 0}
    db = SessionLocal()
    try:
        weddings = db.query(Wedding).filter(Wedding.rsvp_cutoff_date >= now).all()        # Solo bodas con RSVP abierto.
        for wedding in weddings:
            if not should_send_reminder(now, last_reminder_at(db, wedding.id), wedding.rsvp_cutoff_date):
                summary["skipped"] += 1
                continue
            try:
                result = send_reminders(db, wedding.id, channel="PREFERRED", reminder_type="automatic")
            except ReminderCutoffPassedError:
                summary["skipped"] += 1
                continue
            summary["weddings"] += 1
            summary["sent"] += result.sent_count
            summary["failed"] += result.failed_count
        background_queue.join()                                                           # Espera al tracking antes de cerrar.
    except Exception as e:
        logger.exception("Error catastrófico durante el job: {}", e)
        db.rollback()
        send_alert_webhook(
            "⚠️ Scheduler de recordatorios: fallo crítico",
            f"Ocurrió una excepción en el job de recordatorios.\n\nDetalle: {e}",
        )
    finally:
        db.close()

    logger.info(
        "Job finalizado. Bodas: {}, Enviados: {}, Fallidos: {}, Omitidas: {}",
        summary["weddings"], summary["sent"], summary["failed"], summary["skipped"],
    )
    if summary["failed"] > 0:
        send_alert_webhook(
            "⚠️ Scheduler: errores de envío en recordatorios",
            f"Se registraron {summary['failed']} errores de envío en la última corrida.\n"
            f"Enviados: {summary['sent']} • Bodas: {summary['weddings']}.",
        )
    return summary

# -------------------------------------------------------------------------------------- # Punto de entrada.
if __name__ == "__main__":
    os.makedirs("logs", exist_ok=True)                                                    # Carpeta de logs.
    logger.add("logs/scheduler_{time}.log", rotation="1 week", retention="4 weeks", level="INFO")

    if not acquire_lock():
        raise SystemExit(1)

    try:
        logger.info("Inicializando el scheduler de recordatorios...")
        background_queue.start()

        scheduler = BlockingScheduler(
            timezone=EVENT_TIMEZONE,
            job_defaults={
                "coalesce": True,                                                         # Si se acumulan ejecuciones, una sola.
                "max_instances": 1,                                                       # No correr dos jobs en paralelo.
                "misfire_grace_time": 3600,                                               # 1 hora de gracia.
            },
        )
        scheduler.add_job(send_pending_reminders_job, "cron", hour=SCHED_HOUR, minute=SCHED_MINUTE)

        logger.info("Scheduler configurado → {:02d}:{:02d} {}", SCHED_HOUR, SCHED_MINUTE, EVENT_TZ_NAME)
        scheduler.start()                                                                 # Bloquea el hilo.
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler detenido por el usuario.")
    finally:
        background_queue.stop()
        release_lock()
