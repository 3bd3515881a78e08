"""
Shared HTTP transport for registrar adapters
One httpx.AsyncClient per adapter, status-code mapping and read retries
"""

from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from src.registrars.exceptions import (
    APIError,
    AuthenticationError,
    ConflictError,
    DomainNotAvailableError,
    DomainNotFoundError,
    InsufficientFundsError,
    InvalidResponseError,
    NetworkError,
    RateLimitError,
    RETRYABLE_ERRORS,
    ServerError,
    ValidationError
)
from src.utils.logger import get_logger


logger = get_logger(__name__)

# (method, endpoint) -> extra headers, evaluated for every request
RequestSigner = Callable[[str, str], Dict[str, str]]


class HttpTransport:
    """
    Thin async HTTP layer owned by a single registrar adapter.

    Every call returns the raw ``httpx.Response`` (or decoded JSON) for a
    2xx answer and raises an ``APIError`` subclass otherwise. Retries are
    opt-in through ``read_json`` / ``read_text`` so billed operations are
    never repeated.
    """

    def __init__(
        self,
        provider: str,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[httpx.Auth] = None,
        signer: Optional[RequestSigner] = None,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_wait_min: float = 2.0,
        retry_wait_max: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            provider: Provider name used in log and error messages
            base_url: API root, including any version prefix
            headers: Static headers (API keys, bearer tokens, content type)
            auth: Optional httpx auth (Basic auth providers)
            signer: Optional per-request header factory (HMAC providers)
            timeout: Per-request timeout in seconds
            retry_attempts: Attempts made by the read helpers
            retry_wait_min: Minimum exponential backoff between read attempts
            retry_wait_max: Maximum exponential backoff between read attempts
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.signer = signer
        self.retry_attempts = retry_attempts
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers or {},
            auth=auth,
            timeout=timeout,
            transport=transport
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Any = None,
        content: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        ok_statuses: Tuple[int, ...] = ()
    ) -> httpx.Response:
        """
        Make an HTTP request and map error statuses to exceptions.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            endpoint: Path below the base URL (e.g. '/v1/domains/available')
            params: Query parameters
            json_data: JSON body
            content: Raw body (XML/SOAP providers)
            headers: Extra per-request headers
            ok_statuses: Non-2xx statuses the caller wants to inspect itself

        Returns:
            The httpx response

        Raises:
            APIError subclasses based on the failure
        """
        request_headers = dict(headers or {})
        if self.signer:
            request_headers.update(self.signer(method, endpoint))

        logger.debug(f"{self.provider}: {method} {self.base_url}{endpoint}")
        if params:
            logger.debug(f"Params: {params}")

        try:
            response = await self.client.request(
                method,
                endpoint,
                params=params,
                json=json_data,
                content=content,
                headers=request_headers
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"{self.provider} request timed out: {e}")
        except httpx.TransportError as e:
            raise NetworkError(f"{self.provider} connection error: {e}")

        if response.is_success or response.status_code in ok_statuses:
            return response

        self._raise_for_status(response)

    async def request_json(self, method: str, endpoint: str, **kwargs) -> Any:
        """Request and decode a JSON body ({} for empty responses)"""
        response = await self.request(method, endpoint, **kwargs)
        return self.decode_json(response)

    async def read_json(self, endpoint: str, **kwargs) -> Any:
        """GET a JSON resource, retrying transient failures"""
        async for attempt in self._read_retrying():
            with attempt:
                return await self.request_json("GET", endpoint, **kwargs)

    async def read_text(self, method: str, endpoint: str, **kwargs) -> str:
        """
        Read-only call returning the body as text, retrying transient failures.
        Used by XML providers whose queries are POSTed.
        """
        async for attempt in self._read_retrying():
            with attempt:
                response = await self.request(method, endpoint, **kwargs)
                return response.text

    async def request_text(self, method: str, endpoint: str, **kwargs) -> str:
        response = await self.request(method, endpoint, **kwargs)
        return response.text

    def _read_retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=self.retry_wait_min, max=self.retry_wait_max),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True
        )

    def decode_json(self, response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise InvalidResponseError(
                f"{self.provider} returned a non-JSON body",
                status_code=response.status_code,
                response_data={"body": response.text[:500]}
            )

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        error_data = parse_error_response(response)
        message = error_data.get("message") or response.reason_phrase or "Unknown error"
        code = error_data.get("code")
        kwargs = {"status_code": status, "response_data": error_data, "error_code": code}

        if status in (400, 422):
            if status == 422 and "avail" in message.lower():
                raise DomainNotAvailableError(message, **kwargs)
            raise ValidationError(message, **kwargs)
        if status in (401, 403):
            raise AuthenticationError(
                message if status == 403 else f"Authentication failed. Check your {self.provider} credentials.",
                **kwargs
            )
        if status == 402:
            raise InsufficientFundsError(message, **kwargs)
        if status == 404:
            raise DomainNotFoundError(message, **kwargs)
        if status == 409:
            raise ConflictError(message, **kwargs)
        if status == 429:
            raise RateLimitError("API rate limit exceeded. Please wait before retrying.", **kwargs)
        if 500 <= status < 600:
            raise ServerError(f"{self.provider} server error: {message}", **kwargs)
        raise APIError(f"Unexpected error: {message}", **kwargs)


def parse_error_response(response: httpx.Response) -> Dict[str, Any]:
    """
    Extract ``message`` and ``code`` from the common vendor error shapes:
    ``{"message", "code"}``, ``{"error": "..."}``, ``{"error": {"message"}}``
    and Cloudflare style ``{"errors": [{"code", "message"}]}``.
    """
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text or "Unknown error", "code": None}

    if not isinstance(data, dict):
        return {"message": str(data), "code": None}

    message = data.get("message")
    code = data.get("code")

    error = data.get("error")
    if isinstance(error, dict):
        message = message or error.get("message")
        code = code or error.get("code")
    elif isinstance(error, str):
        message = message or error

    errors = data.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict):
            message = message or first.get("message")
            code = code or first.get("code")
        else:
            message = message or str(first)

    result = dict(data)
    result["message"] = message
    result["code"] = str(code) if code is not None else None
    return result
