import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024


def _optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read once at startup and never mutated."""

    api_key: str | None = None
    work_root: Path = Path("/tmp/convert")
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    converter_binary: str = "libreoffice"
    convert_timeout_sec: float | None = None
    version: str = "0.1.0"

    @classmethod
    def from_env(cls) -> "Settings":
        timeout = _optional("CONVERT_TIMEOUT_SEC")
        return cls(
            api_key=_optional("API_KEY"),
            work_root=Path(os.getenv("WORK_ROOT", "/tmp/convert")).resolve(),
            max_body_bytes=int(os.getenv("MAX_BODY_BYTES", str(DEFAULT_MAX_BODY_BYTES))),
            converter_binary=os.getenv("CONVERTER_BINARY", "libreoffice"),
            convert_timeout_sec=float(timeout) if timeout is not None else None,
            version=os.getenv("PDF_GATEWAY_VERSION", "0.1.0"),
        )
