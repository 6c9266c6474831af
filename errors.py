from __future__ import annotations

from typing import Dict, Optional


class SurveyAppError(Exception):
    # Base class for expected, user-facing failures.
    pass


class FieldValidationError(SurveyAppError):
    # One or more submission fields failed validation; all of them are in `errors`.
    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("Validation failed: " + ", ".join(sorted(self.errors)))


class SurveyNotFoundError(SurveyAppError):
    pass


class SurveyInactiveError(SurveyAppError):
    # Raised before field validation when the target survey is not accepting submissions.
    def __init__(self, survey_id: str):
        self.survey_id = survey_id
        super().__init__("Survey is not active")


class DuplicateInvoiceError(SurveyAppError):
    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__("This invoice number has already been submitted")


class SchemaMutationValidationError(SurveyAppError):
    # Question set rejected before any write; `errors` maps question index to message.
    def __init__(self, message: str, errors: Optional[Dict[int, str]] = None):
        self.errors = dict(errors or {})
        super().__init__(message)


class StoreError(SurveyAppError):
    # Opaque persistence failure. Not retried.
    pass
