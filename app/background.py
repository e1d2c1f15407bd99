# app/background.py
# =================================================================================
# 🧵 Cola de tareas best-effort
# ---------------------------------------------------------------------------------
# - Efectos secundarios no críticos (tracking, email de confirmación) se encolan
#   aquí y los procesa un hilo worker, fuera del ciclo request/response.
# - Cada fallo se registra con la etiqueta de la tarea y nunca llega al llamante.
# - BACKGROUND_INLINE=1 ejecuta las tareas en el acto (tests, scripts).
# =================================================================================

import os
import queue
import threading
from typing import Any, Callable, Optional, Tuple

from loguru import logger

_STOP = object()  # Centinela de parada del worker.


def _inline_from_env() -> bool:
    return os.getenv("BACKGROUND_INLINE", "0").strip().lower() in ("1", "true", "yes")


class BackgroundQueue:
    """Cola FIFO con un hilo worker; `submit` nunca lanza."""

    def __init__(self, inline: Optional[bool] = None, name: str = "background-queue"):
        self.inline = _inline_from_env() if inline is None else inline
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    # --- ciclo de vida ---
    def start(self) -> None:
        if self.inline:
            return
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
            logger.info("Background worker iniciado ({})", self.name)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread and thread.is_alive():
            self._queue.put(_STOP)
            thread.join(timeout)
            logger.info("Background worker detenido ({})", self.name)

    def join(self) -> None:
        """Espera a que se vacíe la cola (útil al cerrar y en scripts)."""
        if not self.inline:
            self._queue.join()

    # --- envío de tareas ---
    def submit(self, fn: Callable[..., Any], *args: Any, label: Optional[str] = None, **kwargs: Any) -> None:
        task = (fn, args, kwargs, label or getattr(fn, "__name__", "task"))
        if self.inline:
            self._execute(task)
            return
        if not (self._thread and self._thread.is_alive()):
            self.start()
        self._queue.put(task)

    def _run(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                self._execute(task)
            finally:
                self._queue.task_done()

    @staticmethod
    def _execute(task: Tuple[Callable[..., Any], tuple, dict, str]) -> None:
        fn, args, kwargs, label = task
        try:
            fn(*args, **kwargs)
        except Exception as e:
            logger.exception("Tarea en segundo plano fallida [{}]: {}", label, e)


background_queue = BackgroundQueue()


def submit(fn: Callable[..., Any], *args: Any, label: Optional[str] = None, **kwargs: Any) -> None:
    """Atajo sobre la cola global."""
    background_queue.submit(fn, *args, label=label, **kwargs)
