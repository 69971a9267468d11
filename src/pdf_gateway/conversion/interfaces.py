from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class Workspace:
    request_id: str
    root: Path

    @property
    def input_dir(self) -> Path:
        # Uploads live here, out of reach of the output scan and the profile path.
        return self.root / "input"

    @property
    def profile_dir(self) -> Path:
        return self.root / "user"


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    path: Path
    size_bytes: int


@dataclass(frozen=True)
class ProcessOutcome:
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class ConversionResult:
    filename: str
    content: bytes


class ConverterGateway(Protocol):
    async def convert(self, input_path: Path, output_dir: Path, profile_dir: Path) -> ProcessOutcome:
        """Convert the input file to PDF, writing the artifact into output_dir.
        Cancelling the call must stop the engine before it returns.
        """


class WorkspaceGateway(Protocol):
    def create(self) -> Workspace:
        ...

    def destroy(self, workspace: Workspace) -> None:
        ...


class SecurityGateway(Protocol):
    @property
    def enabled(self) -> bool:
        ...

    def verify(self, presented: str | None) -> bool:
        ...
