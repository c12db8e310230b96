from __future__ import annotations


class ExtractionError(Exception):
    """Base class for document-level extraction failures."""


class MalformedInputError(ExtractionError):
    """The document yielded no usable tokens, or the token source failed."""

    def __init__(self, message: str, entity_id: str | None = None) -> None:
        super().__init__(message)
        self.entity_id = entity_id


class RuleConfigError(ExtractionError):
    """A rule file or the reference dataset is invalid."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path
