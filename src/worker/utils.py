import logging
import signal
import threading
from pathlib import Path

from src.config import settings

logger = logging.getLogger("AnalyticsWorker.Utils")

# Set once a shutdown signal arrives; the main loop finishes its batch and exits
_shutdown = threading.Event()

def setup_signal_handlers():
    """Set up signal handlers for graceful shutdown."""
    def handle_shutdown(sig, frame):
        if not _shutdown.is_set():
            logger.info(f"Shutdown signal {sig} received. Finishing current batch...")
            _shutdown.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

def request_shutdown():
    _shutdown.set()

def is_shutdown_requested() -> bool:
    return _shutdown.is_set()

def wait_for_shutdown(timeout: float) -> bool:
    """Sleep up to timeout seconds, waking early on shutdown. True if shutting down."""
    return _shutdown.wait(timeout)

def touch_healthcheck_file():
    """Signals that the worker is alive and processing."""
    try:
        Path(settings.WORKER_HEALTHCHECK_FILE_PATH).touch()
    except OSError as e:
        logger.warning(f"Could not touch healthcheck file: {e}")
