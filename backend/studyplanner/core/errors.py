"""Error taxonomy shared by the generation gateway and its routes.

Every failure leaves the service as ``{"error": message, "code": CODE}``
with the status code carried by the exception class.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class StudyPlannerError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(StudyPlannerError):
    """Missing/invalid request fields, unsupported file type or oversize file."""

    code = "VALIDATION_ERROR"
    status_code = 400


class ExtractionEmpty(StudyPlannerError):
    code = "EXTRACTION_EMPTY"
    status_code = 400


class UpstreamGenerationError(StudyPlannerError):
    """The model call failed or came back empty."""

    code = "UPSTREAM_GENERATION_ERROR"
    status_code = 500


class MalformedModelOutput(StudyPlannerError):
    """The model answered, but not with the JSON object we asked for.

    Never retried: a schema miss is a prompt defect, not a transient fault.
    """

    code = "MALFORMED_MODEL_OUTPUT"
    status_code = 500
