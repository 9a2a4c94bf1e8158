from __future__ import annotations

import asyncio
import csv
import io
import logging
from pathlib import Path
from typing import IO, Mapping, Optional, Sequence

from scraper.errors import SinkError
from scraper.fields import HEADERS
from scraper.models import row_values

logger = logging.getLogger(__name__)


def format_header(headers: Sequence[str]) -> str:
    return ",".join(headers) + "\n"


def format_row(values: Sequence[object]) -> str:
    """
    One CSV line: every value quoted, embedded quotes doubled, None as an
    empty field.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(["" if v is None else str(v) for v in values])
    return buf.getvalue()


class CsvSink:
    """
    Append-only CSV output shared by every task of a run. The header is written
    once by `open()`; each `append()` lands as one whole line.
    """

    def __init__(self, path: Path, headers: Sequence[str] = HEADERS, *, encoding: str = "utf-8"):
        self.path = Path(path)
        self.headers = tuple(headers)
        self.encoding = encoding
        self.rows_written = 0
        self._fh: Optional[IO[str]] = None
        self._lock = asyncio.Lock()

    def open(self) -> "CsvSink":
        if self._fh is not None:
            return self
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("w", encoding=self.encoding, newline="")
            self._fh.write(format_header(self.headers))
            self._fh.flush()
        except OSError as e:
            raise SinkError(f"cannot open {self.path}: {e}") from e
        logger.info("Output file: %s", self.path)
        return self

    async def append(self, row: Mapping[str, str]) -> None:
        line = format_row(row_values(row, self.headers))
        async with self._lock:
            if self._fh is None:
                raise SinkError(f"sink {self.path} is not open")
            try:
                self._fh.write(line)
                self._fh.flush()
            except OSError as e:
                raise SinkError(f"write to {self.path} failed: {e}") from e
            self.rows_written += 1

    def close(self) -> None:
        if self._fh is None:
            return
        try:
            self._fh.close()
        finally:
            self._fh = None
        logger.debug("Closed %s after %d row(s)", self.path, self.rows_written)
