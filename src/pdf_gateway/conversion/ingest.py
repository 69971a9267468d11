"""Streaming ingestion of the multipart `file` part into a workspace.

The request body is pushed through python-multipart's incremental parser
one network chunk at a time, so an upload never sits in memory as a whole.
Parser callbacks only record events; the async loop in `ingest` drains them
after every chunk and performs the file writes off the event loop.
"""

import asyncio
import logging
import re
from pathlib import Path, PurePath
from typing import AsyncIterable, BinaryIO

from python_multipart import MultipartParser
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header

from .errors import InvalidUpload, NoFileUploaded, PayloadTooLarge, UploadInterrupted, UploadStorageError
from .interfaces import UploadedFile, Workspace

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "document"
FILE_FIELD = "file"
NAME_MAX = 255

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_filename(raw: str | None) -> str:
    """Reduce a client-supplied name to a bare, non-empty basename.

    Both "/" and "\\" are treated as separators so Windows-style paths lose
    their directories too. Anything unusable falls back to "document".
    """
    name = _CONTROL_CHARS.sub("", raw or "")
    name = re.split(r"[/\\]", name)[-1].strip()
    if len(name.encode("utf-8")) > NAME_MAX:
        name = _truncate(name)
    if name in {"", ".", ".."}:
        return DEFAULT_FILENAME
    return name


def _truncate(name: str) -> str:
    """Shorten the stem so the UTF-8 name fits NAME_MAX, keeping a short suffix."""
    suffix = PurePath(name).suffix
    if len(suffix.encode("utf-8")) > 16:
        suffix = ""
    stem = name[: len(name) - len(suffix)] if suffix else name
    budget = NAME_MAX - len(suffix.encode("utf-8"))
    stem = stem.encode("utf-8")[:budget].decode("utf-8", errors="ignore").strip()
    return stem + suffix if stem else ""


class _PartEvents:
    """Collects python-multipart callbacks as (kind, payload) events."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []
        self._headers: list[tuple[bytes, bytes]] = []
        self._field = b""
        self._value = b""

    def callbacks(self) -> dict[str, object]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
        }

    def on_part_begin(self) -> None:
        self._headers = []

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._value += data[start:end]

    def on_header_end(self) -> None:
        self._headers.append((self._field.lower(), self._value))
        self._field = b""
        self._value = b""

    def on_headers_finished(self) -> None:
        self.events.append(("headers", dict(self._headers)))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("data", data[start:end]))

    def on_part_end(self) -> None:
        self.events.append(("end", None))

    def drain(self) -> list[tuple[str, object]]:
        events, self.events = self.events, []
        return events


def _field_name_and_filename(headers: dict[bytes, bytes]) -> tuple[str | None, str | None]:
    disposition = headers.get(b"content-disposition")
    if disposition is None:
        return None, None
    _, options = parse_options_header(disposition)
    name = options.get(b"name")
    filename = options.get(b"filename")
    return (
        name.decode("utf-8", errors="replace") if name is not None else None,
        filename.decode("utf-8", errors="replace") if filename is not None else None,
    )


class MultipartFileIngestor:
    """Writes the first multipart part named `file` into a workspace.

    Later parts, including further `file` parts, are never read. The received
    byte count is checked against `max_body_bytes` as it streams in, which
    covers bodies sent without a Content-Length header.
    """

    def __init__(self, *, max_body_bytes: int, field_name: str = FILE_FIELD) -> None:
        self._max_body_bytes = max_body_bytes
        self._field_name = field_name

    async def ingest(self, content_type: str | None, chunks: AsyncIterable[bytes], workspace: Workspace) -> UploadedFile:
        ctype, params = parse_options_header(content_type or "")
        boundary = params.get(b"boundary")
        if ctype.lower() != b"multipart/form-data" or not boundary:
            raise InvalidUpload(f"unsupported content type {content_type!r}")

        events = _PartEvents()
        parser = MultipartParser(boundary, events.callbacks())

        target: Path | None = None
        out: BinaryIO | None = None
        filename = DEFAULT_FILENAME
        size_bytes = 0
        received = 0
        try:
            async for chunk in chunks:
                received += len(chunk)
                if received > self._max_body_bytes:
                    raise PayloadTooLarge(f"body exceeds {self._max_body_bytes} bytes")
                parser.write(chunk)
                for kind, payload in events.drain():
                    if kind == "headers" and target is None:
                        name, raw_filename = _field_name_and_filename(payload)  # type: ignore[arg-type]
                        if name != self._field_name:
                            continue
                        filename = sanitize_filename(raw_filename)
                        target = workspace.input_dir / filename
                        try:
                            out = target.open("wb")
                        except OSError as e:
                            target = None
                            raise UploadStorageError(f"failed to create {workspace.input_dir / filename}: {e}") from e
                    elif kind == "data" and out is not None:
                        data = bytes(payload)  # type: ignore[arg-type]
                        try:
                            await asyncio.to_thread(out.write, data)
                        except OSError as e:
                            raise UploadInterrupted(f"failed to write chunk: {e}") from e
                        size_bytes += len(data)
                    elif kind == "end" and out is not None:
                        try:
                            await asyncio.to_thread(out.flush)
                        except OSError as e:
                            raise UploadStorageError(f"failed to flush {target}: {e}") from e
                        out.close()
                        out = None
                        assert target is not None
                        return UploadedFile(filename=filename, path=target, size_bytes=size_bytes)
            parser.finalize()
        except MultipartParseError as e:
            self._discard(out, target)
            raise InvalidUpload(f"malformed multipart body: {e}") from e
        except BaseException:
            self._discard(out, target)
            raise

        if target is not None:
            # Body ended while the file part was still open.
            self._discard(out, target)
            raise UploadInterrupted("body ended inside the file part")
        raise NoFileUploaded(f"no part named {self._field_name!r}")

    @staticmethod
    def _discard(out: BinaryIO | None, target: Path | None) -> None:
        if out is not None:
            out.close()
        if target is not None:
            try:
                target.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to discard partial upload {target}: {e}")
