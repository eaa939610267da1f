# src/taskbell/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the background worker on its own thread/event loop (optional),
- the application loop with the foreground scheduler,
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state, start_services, stop_services, sync_worker
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.models import PermissionState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    # keep noisy libs readable
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("plyer").setLevel(logging.WARNING)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)
    start_services(state)

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        if settings.console_enabled:
            if state.gate.state is PermissionState.DEFAULT:
                # One prompt at start-up; /permission can ask again later in a new session.
                state.run(state.gate.request_permission(), timeout=None)
                sync_worker(state)
            run_console_loop(state)
            stop_main.set()
        else:
            try:
                signal.signal(signal.SIGINT, _handle_signal)
                signal.signal(signal.SIGTERM, _handle_signal)
            except Exception:
                # Some platforms may not support SIGTERM, etc.
                logger.debug("Signal handlers not installed.", exc_info=True)
            logger.info("Console disabled. Running reminders in the background. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        stop_services(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
