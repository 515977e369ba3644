"""
Error taxonomy and normalization for Zoho calls.

Every failure that reaches the event boundary is reduced to an ErrorInfo
``{message, fullResponse}`` pair. Raw exceptions only ever cross it embedded
as diagnostic payload (a traceback string in ``fullResponse``).
"""

import re
import traceback
from dataclasses import dataclass
from typing import Any

import httpx

NETWORK_ERROR_MESSAGE = "Network Error: No response received from Zoho API."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."
HTML_ERROR_FALLBACK_TITLE = "HTML Error Page Received"

_TITLE_PATTERN = re.compile(r"<title>(.*?)</title>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Normalized failure as shown to the client."""

    message: str
    full_response: Any = None

    def to_dict(self) -> dict:
        return {"message": self.message, "fullResponse": self.full_response}


class ZohoDeskError(Exception):
    """Base exception for anything that went wrong talking to Zoho."""

    def __init__(
        self,
        message: str,
        full_response: Any = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.full_response = full_response
        self.status_code = status_code

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(self.message, self.full_response)


class ZohoNetworkError(ZohoDeskError):
    """No response was received (connect failure, timeout, reset)."""


class ZohoHttpError(ZohoDeskError):
    """Zoho answered with a non-2xx status."""


class ZohoMalformedResponseError(ZohoHttpError):
    """Zoho (or something in front of it) answered with a non-JSON page."""


class ZohoOAuthError(ZohoDeskError):
    """The refresh-token exchange failed."""

    def __init__(
        self,
        message: str,
        full_response: Any = None,
        status_code: int | None = None,
        error_code: str | None = None,
    ):
        super().__init__(message, full_response=full_response, status_code=status_code)
        self.error_code = error_code


class ProfileValidationError(ZohoDeskError):
    """Profile missing or lacking a required field; raised before any network call."""


class VerificationError(ZohoDeskError):
    """A verification lookup failed. Always absorbed by the verification worker."""


def response_body(response: httpx.Response) -> Any:
    """Decoded JSON body, falling back to raw text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def html_title(body: str) -> str | None:
    """Title of an HTML error page, or None when the body is not HTML."""
    if "<title>" not in body.lower():
        return None
    match = _TITLE_PATTERN.search(body)
    return match.group(1).strip() if match else HTML_ERROR_FALLBACK_TITLE


def error_from_response(response: httpx.Response) -> ZohoHttpError:
    """Map a non-2xx Zoho response onto the error taxonomy."""
    body = response_body(response)
    status_code = response.status_code

    if isinstance(body, dict) and body.get("message"):
        return ZohoHttpError(str(body["message"]), full_response=body, status_code=status_code)

    if isinstance(body, str):
        title = html_title(body)
        if title is not None:
            return ZohoMalformedResponseError(
                f"Zoho Server Error: {title}", full_response=body, status_code=status_code
            )

    return ZohoHttpError(
        f"HTTP Error {status_code}: {response.reason_phrase}",
        full_response=body or response.reason_phrase,
        status_code=status_code,
    )


def malformed_success_error(response: httpx.Response) -> ZohoMalformedResponseError:
    """A 2xx whose body could not be decoded as JSON."""
    title = html_title(response.text)
    message = (
        f"Zoho Server Error: {title}"
        if title is not None
        else "Invalid response format received from Zoho API."
    )
    return ZohoMalformedResponseError(
        message, full_response=response.text, status_code=response.status_code
    )


def error_from_transport(exc: httpx.RequestError) -> ZohoNetworkError:
    return ZohoNetworkError(NETWORK_ERROR_MESSAGE, full_response=str(exc) or type(exc).__name__)


def parse_error(exc: BaseException) -> ErrorInfo:
    """Reduce any exception to the ``{message, fullResponse}`` shape."""
    if isinstance(exc, ZohoDeskError):
        return exc.to_info()
    if isinstance(exc, httpx.HTTPStatusError):
        return error_from_response(exc.response).to_info()
    if isinstance(exc, httpx.RequestError):
        return error_from_transport(exc).to_info()

    return ErrorInfo(
        message=str(exc) or UNKNOWN_ERROR_MESSAGE,
        full_response="".join(traceback.format_exception(exc)),
    )
