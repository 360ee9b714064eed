"""webpage_preview package."""

from .errors import (
    CaptureUnavailable,
    InputError,
    PreviewError,
    ResponseTooLarge,
    SerializationError,
    UpstreamHttpError,
    UpstreamUnreachable,
)
from .models import (
    EditableElementRef,
    EditState,
    ElementKind,
    ExportArtifact,
    ExportFormat,
    FetchRequest,
    LoadState,
    PreviewConfig,
    RenderSession,
    RewrittenDocument,
)

__all__ = [
    "CaptureUnavailable",
    "EditableElementRef",
    "EditState",
    "ElementKind",
    "ExportArtifact",
    "ExportFormat",
    "FetchRequest",
    "InputError",
    "LoadState",
    "PreviewConfig",
    "PreviewError",
    "RenderSession",
    "ResponseTooLarge",
    "RewrittenDocument",
    "SerializationError",
    "UpstreamHttpError",
    "UpstreamUnreachable",
]
