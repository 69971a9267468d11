import asyncio
import logging
from pathlib import Path
from typing import AsyncIterable

from .errors import ConversionError, ConverterFailed, OutputNotFound, OutputReadFailed, WorkspaceError
from .ingest import MultipartFileIngestor
from .interfaces import ConversionResult, ConverterGateway, Workspace, WorkspaceGateway

logger = logging.getLogger(__name__)

PDF_EXTENSION = ".pdf"


def resolve_output(workspace: Workspace, extension: str = PDF_EXTENSION) -> Path:
    """Return the first regular file directly inside the workspace with the given suffix.

    The engine picks its own output basename, so the artifact is found by
    extension rather than predicted from the input name. Order follows the
    filesystem; a workspace holds at most one produced artifact.
    """
    for entry in workspace.root.iterdir():
        if entry.suffix == extension and entry.is_file():
            return entry
    raise OutputNotFound(f"no {extension} file in {workspace.root}")


class ConversionService:
    """Core domain service running one upload-to-PDF conversion per call.

    This service is framework-agnostic. It sequences ingestion, the engine
    run, output discovery and the final read, and owns the workspace for the
    duration of the call: the workspace is destroyed exactly once on every
    exit path, including cancellation.
    """

    def __init__(
        self,
        workspaces: WorkspaceGateway,
        converter: ConverterGateway,
        *,
        max_body_bytes: int,
    ) -> None:
        self._workspaces = workspaces
        self._converter = converter
        self._ingestor = MultipartFileIngestor(max_body_bytes=max_body_bytes)

    async def convert_upload(self, content_type: str | None, chunks: AsyncIterable[bytes]) -> ConversionResult:
        try:
            workspace = await asyncio.to_thread(self._workspaces.create)
        except WorkspaceError as e:
            logger.error(f"Failed to create work dir: {e}")
            raise
        stage = "ingesting"
        try:
            upload = await self._ingestor.ingest(content_type, chunks, workspace)

            stage = "converting"
            logger.info(f"Converting file: {upload.path} ({upload.size_bytes} bytes)")
            workspace.profile_dir.mkdir(exist_ok=True)
            outcome = await self._converter.convert(upload.path, workspace.root, workspace.profile_dir)
            if outcome.returncode != 0:
                raise ConverterFailed(f"engine exited with {outcome.returncode}: stderr: {outcome.stderr.strip()}")

            stage = "resolving"
            pdf_path = await asyncio.to_thread(resolve_output, workspace)

            stage = "reading"
            try:
                content = await asyncio.to_thread(pdf_path.read_bytes)
            except OSError as e:
                raise OutputReadFailed(f"failed to read {pdf_path}: {e}") from e
            return ConversionResult(filename=pdf_path.name, content=content)
        except ConversionError as e:
            logger.error(f"Conversion failed while {stage} in {workspace.root}: {type(e).__name__}: {e}")
            raise
        except OSError as e:
            logger.error(f"Conversion failed while {stage} in {workspace.root}: {e}")
            raise ConversionError(str(e)) from e
        finally:
            # Shielded so a cancelled request still removes its workspace.
            await asyncio.shield(asyncio.to_thread(self._workspaces.destroy, workspace))
