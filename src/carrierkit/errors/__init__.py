"""Error classification and the carrier error-code catalog."""

from carrierkit.errors.catalog import (
    ERROR_CATALOG,
    CarrierErrorCode,
    ErrorInfo,
    Language,
    get_error_info,
)
from carrierkit.errors.classifier import ErrorClassifier, envelope_context

__all__ = [
    "ERROR_CATALOG",
    "CarrierErrorCode",
    "ErrorClassifier",
    "ErrorInfo",
    "Language",
    "envelope_context",
    "get_error_info",
]
