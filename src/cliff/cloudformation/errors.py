"""
Error kinds for CloudFormation calls and the classifier that produces them.
"""

import logging
import xml.etree.ElementTree as ET
from typing import Any, Optional, Tuple, Union

from botocore.exceptions import ClientError
from botocore.parsers import ResponseParserError

logger = logging.getLogger(__name__)

THROTTLING_CODES = ("Throttling", "ThrottlingException")
VALIDATION_CODES = ("ValidationError",)
LIMIT_EXCEEDED_CODES = ("LimitExceeded", "LimitExceededException")


class CliffError(Exception):
    """Base class for every error cliff reports."""


class ThrottlingError(CliffError):
    """The service rejected the request because of rate limits."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CliffError):
    """The service rejected the request as invalid."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class LimitExceededError(CliffError):
    """A change set quota was hit, usually while a prior delete settles."""

    def __init__(self, detail: Any = None):
        super().__init__(str(detail) if detail is not None else "limit exceeded")
        self.detail = detail


class ServiceError(CliffError):
    """A service error with a code cliff has no special handling for."""

    def __init__(self, operation: str, detail: Any):
        super().__init__(str(detail))
        self.operation = operation
        self.detail = detail


class UnclassifiedError(CliffError):
    """A failure whose payload could not be understood."""

    def __init__(self, detail: Any):
        super().__init__(str(detail))
        self.detail = detail


class DifferConfigurationError(CliffError):
    """The configured external diff command is unusable."""

    def __init__(self, tool: str):
        super().__init__(f"Invalid differ tool {tool!r}")
        self.tool = tool


class PollingError(CliffError):
    """Describing or deleting a change set failed."""

    def __init__(self, operation: str, detail: Any):
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class RawResponseError(Exception):
    """A remote failure that only carries the raw response payload."""

    def __init__(self, body: Union[bytes, str], status_code: Optional[int] = None):
        super().__init__(f"unparsed error response (status {status_code})")
        self.body = body
        self.status_code = status_code


def parse_error_body(body: Union[bytes, str]) -> Optional[Tuple[str, str]]:
    """Parse a query-protocol error envelope into ``(code, message)``.

    Returns None when the body is not a well formed envelope.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None

    error = root if root.tag == "Error" else root.find("Error")
    if error is None:
        return None

    code = error.findtext("Code")
    if code is None:
        return None
    return code, error.findtext("Message") or ""


def _raw_body(error: Exception) -> Optional[Union[bytes, str]]:
    """Recover the unparsed payload carried by a transport level error."""
    if isinstance(error, RawResponseError):
        return error.body
    if isinstance(error, ResponseParserError):
        # botocore appends the payload it failed to parse after the first line
        _, _, body = str(error).partition("\n")
        return body or None
    return None


def classify(error: Exception, operation: str) -> CliffError:
    """Turn a raw failure from a CloudFormation call into a cliff error."""
    if isinstance(error, CliffError):
        return error

    if isinstance(error, ClientError):
        details = error.response.get("Error", {})
        code = details.get("Code", "")
        message = details.get("Message", "")

        if code in LIMIT_EXCEEDED_CODES:
            return LimitExceededError(message or error)
        if code in THROTTLING_CODES:
            return ThrottlingError(message)
        if code in VALIDATION_CODES:
            return ValidationError(message)

        logger.debug(f"unmatched error code {code}")
        return ServiceError(operation, error)

    body = _raw_body(error)
    if body is None:
        return UnclassifiedError(error)

    parsed = parse_error_body(body)
    if parsed is None:
        return UnclassifiedError(body)

    code, message = parsed
    if code in THROTTLING_CODES:
        return ThrottlingError(message)
    if code in VALIDATION_CODES:
        return ValidationError(message)

    logger.debug(f"unmatched error code {code}")
    return ServiceError(operation, error)
