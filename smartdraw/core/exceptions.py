from typing import Optional


class ProviderConfigError(ValueError):
    """Provider configuration is missing fields or names an unknown provider."""


class TransportError(RuntimeError):
    """The provider could not be reached or answered with a non-2xx status."""

    def __init__(self, status_code: Optional[int], body: str, provider: str = ""):
        self.status_code = status_code
        self.body = body
        self.provider = provider
        prefix = f"{provider} API error" if provider else "API error"
        if status_code is None:
            super().__init__(f"{prefix}: {body}")
        else:
            super().__init__(f"{prefix}: {status_code} {body}")


class StructuredOutputError(ValueError):
    """Model output could not be turned into the expected structure."""


class NoJSONContentError(StructuredOutputError):
    """Model output contains no JSON-like content at all."""


class UnrepairableJSONError(StructuredOutputError):
    """Model output looks like JSON but neither repair pass made it parseable."""


class InvalidMindmapError(StructuredOutputError):
    """Parsed JSON does not describe a valid mind map tree."""
