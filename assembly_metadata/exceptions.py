"""
Exceptions raised while extracting assembly metadata.

NotFoundError and InvalidModuleError abort an extraction. AttributeDecodeError
is recoverable: the extractor collects it as a warning and carries on.
"""

from typing import Optional


class ExtractionError(Exception):
    """Base class for all extraction failures."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class NotFoundError(ExtractionError):
    """The path does not exist, is not a regular file, or cannot be read."""


class InvalidModuleError(ExtractionError):
    """The file is not a .NET module or lacks its identity metadata."""


class AttributeDecodeError(ExtractionError):
    """A recognized custom attribute could not be decoded."""

    def __init__(self, message: str, path: Optional[str] = None,
                 attribute: Optional[str] = None):
        super().__init__(message, path)
        self.attribute = attribute
