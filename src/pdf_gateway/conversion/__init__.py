"""
Domain layer for document-to-PDF conversion.
Provides interfaces (gateways) and a service to orchestrate one conversion
per request, abstracting the workspace filesystem and the external engine so
front-ends (HTTP or others) can use the same core logic.
"""

from .errors import ConversionError
from .ingest import MultipartFileIngestor, sanitize_filename
from .interfaces import ConversionResult, ConverterGateway, ProcessOutcome, SecurityGateway, Workspace, WorkspaceGateway
from .service import ConversionService, resolve_output
