"""
Pytest configuration and fixtures for PDF Gateway tests.
"""

import os
import stat
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from pdf_gateway.config import Settings
from pdf_gateway.conversion.adapters import LocalWorkspaces
from pdf_gateway.conversion.interfaces import ProcessOutcome
from pdf_gateway.webapi import create_app

BOUNDARY = "pdfgatewaytestboundary"
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


class FakeConverter:
    """Stands in for LibreOffice: writes a PDF next to the input and reports an exit status."""

    def __init__(self, *, returncode=0, output_name=None, content=PDF_BYTES, stderr="", echo_input=False):
        self.returncode = returncode
        self.output_name = output_name
        self.content = content
        self.stderr = stderr
        self.echo_input = echo_input
        self.calls = []

    async def convert(self, input_path, output_dir, profile_dir):
        self.calls.append((input_path, output_dir, profile_dir))
        if self.returncode == 0 and self.content is not None:
            name = self.output_name or f"{input_path.stem}.pdf"
            body = self.content + input_path.read_bytes() if self.echo_input else self.content
            (output_dir / name).write_bytes(body)
        return ProcessOutcome(returncode=self.returncode, stdout="", stderr=self.stderr)


def build_multipart(parts, boundary=BOUNDARY) -> bytes:
    """Encode (field name, filename or None, data) tuples as a multipart/form-data body."""
    out = b""
    for name, filename, data in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        out += (
            f"--{boundary}\r\n"
            f"Content-Disposition: {disposition}\r\n"
            f"Content-Type: application/octet-stream\r\n\r\n"
        ).encode("utf-8")
        out += data + b"\r\n"
    out += f"--{boundary}--\r\n".encode("utf-8")
    return out


async def iter_chunks(data: bytes, size: int = 7):
    for i in range(0, len(data), size):
        yield data[i:i + size]


@pytest.fixture
def multipart():
    return build_multipart


@pytest.fixture
def content_type():
    return f"multipart/form-data; boundary={BOUNDARY}"


@pytest.fixture
def chunks():
    return iter_chunks


@pytest.fixture
def work_root(tmp_path):
    root = tmp_path / "convert"
    root.mkdir()
    return root


@pytest.fixture
def workspaces(work_root):
    return LocalWorkspaces(work_root)


@pytest.fixture
def converter():
    return FakeConverter()


@pytest.fixture
def make_client(work_root, converter):
    """Build a TestClient around a fresh app; keyword arguments override Settings fields."""

    def _make(*, converter_override=None, **overrides):
        settings = Settings(work_root=work_root, **overrides)
        app = create_app(settings, converter=converter_override or converter)
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def fake_engine(tmp_path):
    """A shell script that honours the LibreOffice command line well enough to emit a PDF."""
    if os.name == "nt":
        pytest.skip("requires a POSIX shell")
    script = tmp_path / "fake-soffice"
    script.write_text(
        "#!/bin/sh\n"
        'outdir=""\n'
        'input=""\n'
        'while [ $# -gt 0 ]; do\n'
        '  case "$1" in\n'
        '    --outdir) outdir="$2"; shift 2 ;;\n'
        '    --convert-to) shift 2 ;;\n'
        '    -*) shift ;;\n'
        '    *) input="$1"; shift ;;\n'
        '  esac\n'
        'done\n'
        'name=$(basename "$input")\n'
        "printf '%%PDF-1.4\\n%%%%EOF\\n' > \"$outdir/${name%.*}.pdf\"\n"
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


@pytest.fixture
def shell_script(tmp_path):
    """Write an executable /bin/sh script with the given body and return its path."""
    if os.name == "nt":
        pytest.skip("requires a POSIX shell")

    def _write(name: str, body: str) -> Path:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
        return path

    return _write
