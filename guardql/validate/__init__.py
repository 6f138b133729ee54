"""GuardQL validation: request checks, probing, repair and fallback."""
from guardql.validate.diagnosis import Diagnosis, ErrorClass, classify
from guardql.validate.fallback import SafeFallbackBuilder
from guardql.validate.fuzzy import FuzzyIdentifierRepair
from guardql.validate.loop import (
    LoopState,
    ValidationLoop,
    ValidationOutcome,
    ValidationStatus,
    probe_form,
)
from guardql.validate.request_validator import RequestValidator, parse_request

__all__ = [
    "Diagnosis",
    "ErrorClass",
    "FuzzyIdentifierRepair",
    "LoopState",
    "RequestValidator",
    "SafeFallbackBuilder",
    "ValidationLoop",
    "ValidationOutcome",
    "ValidationStatus",
    "classify",
    "parse_request",
    "probe_form",
]
