from typing import Optional


class CoverLetterError(Exception):
    """Base class for failures the authoring workflow reports to the user."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.details or self.message


class FormStoreError(CoverLetterError):
    pass


class CreditLedgerError(CoverLetterError):
    pass


class GenerationError(CoverLetterError):
    pass


class AnalysisFormatError(CoverLetterError):
    pass
