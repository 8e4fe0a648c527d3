"""Centralized logging for script-panel.

Library logging conventions (Python logging HOWTO):
- Attach a NullHandler to the library root logger
- Leave every other handler to the embedding application
- Read the level from the SCRIPT_PANEL_LOG_LEVEL env var
- Offer configure_logging() for the CLI entry point

CLI output format:
    WARNING [2026-02-25 10:02:54] script_panel.supervisor - message

Non-blocking logging:
    The supervisor logs from the same event loop that pumps run output
    to subscribers.  Records emitted by the CLI therefore go through a
    bounded QueueHandler, and a QueueListener daemon thread writes them
    with click.echo(err=True).  A full queue or a saturated stderr drops
    the record; the event loop never waits on the terminal.

Run ids:
    A full run_id lets its holder follow that run's event stream, so
    modules log run_ref(run_id) instead of the id itself.

References:
- https://docs.python.org/3/howto/logging.html#configuring-logging-for-a-library
- https://docs.python.org/3/library/logging.handlers.html#queuehandler
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "script_panel"

# Without a handler of its own the library would fall back to the
# "last resort" stderr handler in applications that never configure logging
logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

# SCRIPT_PANEL_LOG_LEVEL accepts level names ("DEBUG", "WARNING", ...)
_env_level = os.environ.get("SCRIPT_PANEL_LOG_LEVEL", "").strip().upper()
_env_level_value = logging.getLevelNamesMapping().get(_env_level)
if _env_level_value:  # excludes NOTSET (0) and missing keys (None)
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level_value)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Room for a burst of per-run records (accepted, started, terminating,
# finished) across many concurrent runs; bounded so memory stays flat
# when stderr stops draining.
_QUEUE_CAPACITY = 4096

# Number of run_id characters that may appear in logs.
_RUN_REF_LENGTH = 8


class _ClickHandler(logging.Handler):
    """Writes formatted records to stderr via click.echo, dimmed.

    Only the QueueListener thread calls emit().  click.echo() strips the
    ANSI styling when stderr is not a terminal, so piped CLI output stays
    plain text.
    """

    def __init__(self) -> None:
        super().__init__()
        self.formatter = logging.Formatter(fmt=_FMT, datefmt=_DATEFMT)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            click.echo(click.style(msg, dim=True), err=True)
        except BlockingIOError:
            pass  # Stderr buffer full -- drop
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _NonBlockingHandler(logging.handlers.QueueHandler):
    """Queue-backed handler that drops records instead of blocking the caller.

    enqueue() uses put_nowait() on a queue of _QUEUE_CAPACITY records; the
    listener started here hands them to _ClickHandler.  close() stops the
    listener after it has written what was already queued.
    """

    def __init__(self) -> None:
        q: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(q)
        self._listener = logging.handlers.QueueListener(q, _ClickHandler(), respect_handler_level=False)
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        """Pass the record through; the queue never leaves this process."""
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    Every script_panel module calls this with __name__, so all of them sit
    under LIBRARY_LOGGER_NAME and share its level and handlers.
    """
    return logging.getLogger(name)


def run_ref(run_id: str) -> str:
    """Shortened run_id that is safe to write to logs."""
    return f"{run_id[:_RUN_REF_LENGTH]}…"


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Configure library logging for CLI / application entry points.

    Installs one _NonBlockingHandler on the library logger; repeated calls
    only change the level.  Applications that attach their own handlers and
    never call this keep full control of where records go.

    Args:
        level: Log level (e.g. logging.DEBUG, "WARNING"). Overrides env var.
        quiet: If True, set level to ERROR so only failures are shown.
               Takes precedence over level.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _NonBlockingHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_NonBlockingHandler())

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        # setLevel() raises ValueError for unknown level names
        lib_logger.setLevel(level)
