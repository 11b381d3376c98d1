"""
Background loop that ends crop sessions once their TTL has passed.

Sessions also expire lazily when touched; the loop makes sure abandoned ones
release their image and entity lock even if nobody comes back to them.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from backend.dependencies import get_session_manager
from photo_pipeline.pipeline import PhotoSessionManager

logger = logging.getLogger(__name__)


def sweep_once(manager: Optional[PhotoSessionManager] = None) -> int:
    """Expire sessions past their TTL once. Returns how many were closed."""
    manager = manager or get_session_manager()
    expired = manager.sweep_expired()
    if expired:
        logger.info("Expired %d photo sessions", expired)
    return expired


def run_loop(
    stop_event: threading.Event,
    *,
    manager: Optional[PhotoSessionManager] = None,
    interval_seconds: float = 60.0,
) -> None:
    """
    Sweep every `interval_seconds` until `stop_event` is set.
    """
    while not stop_event.is_set():
        try:
            sweep_once(manager)
        except Exception:
            logger.exception("Photo session sweep failed")
        stop_event.wait(interval_seconds)


def start_sweeper(
    interval_seconds: float, manager: Optional[PhotoSessionManager] = None
) -> tuple[threading.Thread, threading.Event]:
    stop_event = threading.Event()
    thread = threading.Thread(
        target=run_loop,
        args=(stop_event,),
        kwargs={"manager": manager, "interval_seconds": interval_seconds},
        name="photo-session-sweeper",
        daemon=True,
    )
    thread.start()
    return thread, stop_event
