"""
Single-threaded serving loop.

HTTP requests and thumbnail jobs share one thread: each iteration handles at
most one pending request, then advances the active thumbnail job by one slice.
While a job is active the socket is polled without waiting, so a request is
never delayed by more than one job slice; when idle the loop blocks in select
for up to POLL_INTERVAL seconds.
"""

import logging
import signal
from threading import Event

from flask import Flask
from werkzeug.serving import make_server

from meshfolio.core.jobs import ThumbnailScheduler

logger = logging.getLogger(__name__)

shutdown = Event()


def signal_handler(sig, frame):
    logger.info("Shutdown signal received")
    shutdown.set()


def serve(
    app: Flask,
    scheduler: ThumbnailScheduler,
    host: str = '0.0.0.0',
    port: int = 8888,
    poll_interval: float = 0.25
):
    """Serve app and drive scheduler until SIGINT/SIGTERM."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    server = make_server(host, port, app, threaded=False)
    logger.info(f"Serving on http://{host}:{server.port} (queue capacity {scheduler.queue.capacity})")

    try:
        while not shutdown.is_set():
            pending_work = scheduler.busy or len(scheduler.queue) > 0
            server.timeout = 0 if pending_work else poll_interval
            server.handle_request()
            try:
                scheduler.dequeue_and_run_one_step()
            except Exception:
                # Last-resort guard; stage errors are already contained per job
                logger.exception("Thumbnail scheduler step failed")
    finally:
        server.server_close()
        logger.info("Server stopped")
