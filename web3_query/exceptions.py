import builtins
import json
from typing import Any


class Web3QueryError(Exception):
    """Base class for every error raised by the query client."""


class ValidationError(Web3QueryError):
    """Caller supplied malformed or unsupported input. Never retried."""


class CredentialError(Web3QueryError):
    """The API key could not be located or the credential file is malformed."""


class APIError(Web3QueryError):
    """
    The remote service answered with a 4xx/5xx status.

    Attributes:
        status_code (int): HTTP status returned by the service.
        response (Any): Parsed JSON body, or the raw text when it was not JSON.
    """

    def __init__(self, status_code: int, response: Any) -> None:
        self.status_code = status_code
        self.response = response
        if isinstance(response, str):
            detail = response
        else:
            detail = json.dumps(response, default=str)
        super().__init__(f"API Error {status_code}: {detail}")

    @property
    def is_rate_limit(self) -> bool:
        return self.status_code == 429


class TimeoutError(Web3QueryError, builtins.TimeoutError):  # noqa: A001
    """The request exceeded its deadline and was aborted."""
