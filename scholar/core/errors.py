"""Error taxonomy shared by the completion, PDF and discovery layers."""


class ScholarError(Exception):
    """Base class for all scholar-desk errors."""


# ── Completion ───────────────────────────────────────────────────────


class NoModelConfigured(ScholarError):
    """No AI model matched the request (no explicit id and no default)."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message or "No AI model available. Please configure one in AI settings."
        )


class ProviderNotImplemented(ScholarError):
    """The model's provider has no working completion backend."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Provider {provider} is not implemented yet.")


class ProviderRequestFailed(ScholarError):
    """The provider answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class EmptyCompletion(ScholarError):
    """The provider answered successfully but returned no choices."""

    def __init__(self, message: str = "No content in API response"):
        super().__init__(message)


# ── PDF pipeline ─────────────────────────────────────────────────────


class PdfExtractionError(ScholarError):
    """The PDF could not be opened or read."""


class NoTextContent(PdfExtractionError):
    """The PDF opened fine but has no extractable text."""

    def __init__(self, message: str = "No text content found in PDF"):
        super().__init__(message)


class MetadataParseFailure(ScholarError):
    """A completion did not contain a decodable JSON object."""


class PipelineFailure(ScholarError):
    """A completion call inside the metadata pipeline raised."""


# ── Discovery ────────────────────────────────────────────────────────


class DiscoveryError(ScholarError):
    """The paper discovery service failed or returned an error envelope."""
