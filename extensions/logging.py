from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional
from contextvars import ContextVar

# Per-task context: which listing is this asyncio task processing right now?
_CURRENT_LISTING: ContextVar[Optional[str]] = ContextVar("_CURRENT_LISTING", default=None)

CONSOLE_FORMAT = "%(levelname)s: [%(listing)s] %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(listing)s] %(message)s"


class _ListingFilter(logging.Filter):
    """
    Stamp every record with the listing of the task that emitted it, so
    interleaved output from concurrent tasks stays attributable.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        if not hasattr(record, "listing"):
            record.listing = _CURRENT_LISTING.get() or "-"
        return True


class LoggingExtension:
    def __init__(
        self,
        log_file: Optional[Path] = None,
        *,
        global_level: int = logging.INFO,
        file_level: Optional[int] = None,  # default to global_level if None
    ) -> None:
        self.log_file = log_file
        self.global_level = global_level
        self.file_level = file_level if file_level is not None else global_level
        self._filter = _ListingFilter()
        self._handlers: list[logging.Handler] = []

        # Console formatter/handler on root
        self._install_console(self.global_level)
        if log_file is not None:
            self._install_file(log_file, self.file_level)

        # Make root permissive; rely on handler levels to filter.
        logging.getLogger().setLevel(logging.DEBUG)

    # ---------------- Handlers ----------------

    def _install_console(self, level: int) -> None:
        root = logging.getLogger()
        # Remove any default handlers (e.g., from basicConfig)
        for h in list(root.handlers):
            root.removeHandler(h)

        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.addFilter(self._filter)
        ch.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root.addHandler(ch)
        self._handlers.append(ch)

    def _install_file(self, path: Path, level: int) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, mode="a", encoding="utf-8")
        fh.setLevel(level)
        fh.addFilter(self._filter)
        fh.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logging.getLogger().addHandler(fh)
        self._handlers.append(fh)

    # ---------------- Context helpers ----------------

    @staticmethod
    def set_listing_context(listing: str):
        """
        Tag every log record emitted from the current asyncio task with
        `listing`. Returns a token you must reset when done.
        """
        return _CURRENT_LISTING.set(str(listing))

    @staticmethod
    def reset_listing_context(token) -> None:
        try:
            _CURRENT_LISTING.reset(token)
        except ValueError:
            # token created in another context; nothing to undo here
            pass

    @staticmethod
    def current_listing() -> Optional[str]:
        return _CURRENT_LISTING.get()

    # ---------------- Cleanup ----------------

    def close(self) -> None:
        root = logging.getLogger()
        for h in self._handlers:
            root.removeHandler(h)
            try:
                h.flush()
                h.close()
            except OSError:
                pass
        self._handlers.clear()
