import asyncio
import hmac
import logging
import shutil
import uuid
from pathlib import Path

from .errors import ConversionTimedOut, ConverterLaunchFailed, WorkspaceError
from .interfaces import ConverterGateway, ProcessOutcome, SecurityGateway, Workspace, WorkspaceGateway

logger = logging.getLogger(__name__)


class LocalWorkspaces(WorkspaceGateway):
    def __init__(self, work_root: str | Path) -> None:
        self._base = Path(work_root).resolve()

    def create(self) -> Workspace:
        # Directory name comes from the generated id only, never from the client.
        request_id = str(uuid.uuid4())
        workspace = Workspace(request_id=request_id, root=self._base / request_id)
        try:
            workspace.root.mkdir(parents=True)
            workspace.input_dir.mkdir()
        except OSError as e:
            raise WorkspaceError(f"failed to create workspace {workspace.root}: {e}") from e
        return workspace

    def destroy(self, workspace: Workspace) -> None:
        """Remove the workspace tree. Never raises; safe to call more than once."""
        if workspace.root.parent != self._base:
            logger.error(f"Refusing to remove {workspace.root}: not under {self._base}")
            return
        try:
            shutil.rmtree(workspace.root)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove workspace {workspace.root}: {e}")


class SharedSecretSecurity(SecurityGateway):
    def __init__(self, api_key: str | None) -> None:
        self._api_key = api_key

    @property
    def enabled(self) -> bool:
        return self._api_key is not None

    def verify(self, presented: str | None) -> bool:
        if self._api_key is None:
            return True
        if presented is None:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), self._api_key.encode("utf-8"))


class LibreOfficeConverter(ConverterGateway):
    def __init__(self, binary: str = "libreoffice", *, timeout_sec: float | None = None) -> None:
        self._binary = binary
        self._timeout_sec = timeout_sec

    def command(self, input_path: Path, output_dir: Path, profile_dir: Path) -> list[str]:
        # A private UserInstallation keeps concurrent runs off the shared profile lock.
        return [
            self._binary,
            "--headless",
            "--nodefault",
            "--nofirststartwizard",
            "--nolockcheck",
            "--nologo",
            "--norestore",
            "--convert-to",
            "pdf",
            "--outdir",
            str(output_dir),
            f"-env:UserInstallation={profile_dir.resolve().as_uri()}",
            str(input_path),
        ]

    async def convert(self, input_path: Path, output_dir: Path, profile_dir: Path) -> ProcessOutcome:
        cmd = self.command(input_path, output_dir, profile_dir)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ConverterLaunchFailed(f"could not start {self._binary}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_sec)
        except asyncio.TimeoutError as e:
            await self._terminate(proc)
            raise ConversionTimedOut(f"{self._binary} exceeded {self._timeout_sec}s") from e
        except asyncio.CancelledError:
            # The engine must be gone before the caller removes the workspace.
            await asyncio.shield(self._terminate(proc))
            raise
        return ProcessOutcome(
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    @staticmethod
    async def _terminate(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
