import logging
import os
from importlib import resources
from typing import AsyncIterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import HTMLResponse, Response
from starlette.requests import ClientDisconnect

from pdf_gateway.config import Settings
from pdf_gateway.conversion import ConversionError, ConversionService, ConverterGateway, SecurityGateway, WorkspaceGateway
from pdf_gateway.conversion.adapters import LibreOfficeConverter, LocalWorkspaces, SharedSecretSecurity
from pdf_gateway.conversion.errors import UploadInterrupted

logger = logging.getLogger(__name__)

router = APIRouter()


def content_disposition(filename: str) -> str:
    """Build an attachment Content-Disposition value for the given filename.

    Double quotes are backslash-escaped so the name cannot terminate the
    quoted parameter early. Names outside Latin-1 get an ASCII fallback plus
    an RFC 5987 `filename*` parameter.
    """
    escaped = filename.replace('"', '\\"')
    try:
        escaped.encode("latin-1")
    except UnicodeEncodeError:
        fallback = escaped.encode("ascii", errors="replace").decode("ascii")
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"
    return f'attachment; filename="{escaped}"'


def require_api_key(request: Request, x_api_key: str | None = Header(None)) -> None:
    security: SecurityGateway = request.app.state.security
    if not security.verify(x_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"code": "unauthorized", "message": "Unauthorized"})


def enforce_body_limit(request: Request) -> None:
    # Declared oversize bodies are refused before a workspace exists; bodies
    # without a Content-Length are counted during ingestion instead.
    settings: Settings = request.app.state.settings
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > settings.max_body_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail={"code": "payload_too_large", "message": "Payload too large"},
        )


async def _body_chunks(request: Request) -> AsyncIterator[bytes]:
    try:
        async for chunk in request.stream():
            if chunk:
                yield chunk
    except ClientDisconnect as e:
        raise UploadInterrupted("client disconnected during upload") from e


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def index(request: Request) -> HTMLResponse:
    return HTMLResponse(request.app.state.index_html)


@router.api_route("/health", methods=["GET", "HEAD"])
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@router.post("/convert", dependencies=[Depends(require_api_key), Depends(enforce_body_limit)])
async def convert(request: Request) -> Response:
    """Convert an uploaded document to PDF.

    Accepts multipart/form-data with a required part named "file". Only the
    first such part is used. Returns the PDF as an attachment; failures carry
    a generic code and message, never engine output or server paths.
    """
    service: ConversionService = request.app.state.service
    try:
        result = await service.convert_upload(request.headers.get("content-type"), _body_chunks(request))
    except ConversionError as e:
        raise HTTPException(status_code=e.status_code, detail={"code": e.code, "message": e.message})

    headers = {"Content-Disposition": content_disposition(result.filename)}
    return Response(content=result.content, media_type="application/pdf", headers=headers)


def create_app(
    settings: Settings | None = None,
    *,
    converter: ConverterGateway | None = None,
    workspaces: WorkspaceGateway | None = None,
) -> FastAPI:
    """Build the ASGI application around an immutable Settings value.

    `converter` and `workspaces` default to LibreOffice and a local directory
    under `settings.work_root`; tests pass doubles instead.
    """
    settings = settings or Settings.from_env()
    security = SharedSecretSecurity(settings.api_key)
    if security.enabled:
        logger.info("API Key authentication enabled")
    else:
        logger.info("No API Key set, authentication disabled")

    if workspaces is None:
        workspaces = LocalWorkspaces(settings.work_root)
    if converter is None:
        converter = LibreOfficeConverter(settings.converter_binary, timeout_sec=settings.convert_timeout_sec)

    app = FastAPI(
        title="PDF Gateway",
        version=settings.version,
        description="Converts uploaded office documents to PDF with a headless LibreOffice.",
    )
    app.state.settings = settings
    app.state.security = security
    app.state.service = ConversionService(workspaces, converter, max_body_bytes=settings.max_body_bytes)
    app.state.index_html = resources.files("pdf_gateway").joinpath("static/index.html").read_text(encoding="utf-8")
    app.include_router(router)
    return app


def run() -> None:
    """Run the ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:3000). Set PORT env var to override.
    """
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))
    reload = os.getenv("RELOAD", "false").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("pdf_gateway.webapi:create_app", factory=True, host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
