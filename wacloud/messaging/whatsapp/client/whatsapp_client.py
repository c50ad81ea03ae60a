"""
WhatsApp Cloud API REST client.

Thin aiohttp wrapper around the Graph API: one request per call, with an
explicit bounded retry loop for timeout-class failures and rate limiting.
HTTP 429 surfaces as RateLimitError and every other non-2xx response as
ProviderError carrying the provider's error code and message.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import aiohttp

from wacloud.core.config.models import DEFAULT_API_VERSION
from wacloud.core.exceptions import ProviderError, RateLimitError
from wacloud.core.logging.logger import get_logger

DEFAULT_BASE_URL = "https://graph.facebook.com/"
DEFAULT_RETRY_AFTER = 60.0


def parse_retry_after(value: str | None) -> float:
    """Seconds from a Retry-After header, defaulting to 60."""
    try:
        return max(float(value), 0.0) if value is not None else DEFAULT_RETRY_AFTER
    except ValueError:
        return DEFAULT_RETRY_AFTER


class WhatsAppUrlBuilder:
    """Builds URLs for WhatsApp Cloud API endpoints."""

    def __init__(self, base_url: str, api_version: str, phone_number_id: str):
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.phone_number_id = phone_number_id

    def get_messages_url(self) -> str:
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"

    def get_media_url(self, media_id: str | None = None) -> str:
        """Media upload URL, or the metadata URL of one media object."""
        if media_id:
            return f"{self.base_url}/{self.api_version}/{media_id}"
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/media"

    def get_endpoint_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{self.api_version}/{endpoint.lstrip('/')}"


class WhatsAppFormDataBuilder:
    """Builds form data for WhatsApp multipart requests."""

    @staticmethod
    def build_form_data(
        payload: dict[str, Any], files: dict[str, tuple[str, bytes, str]]
    ) -> aiohttp.FormData:
        """Build FormData for multipart/form-data requests.

        Args:
            payload: Data fields to include in the form
            files: {field_name: (filename, content_bytes, content_type)}

        Raises:
            ValueError: If file format is invalid
        """
        form = aiohttp.FormData()

        # Data fields go first; the media endpoint expects them before the file
        for key, value in (payload or {}).items():
            form.add_field(key, str(value))

        for field_name, file_info in files.items():
            if not (isinstance(file_info, tuple) and len(file_info) == 3):
                raise ValueError(
                    f"Invalid file format for field '{field_name}'. "
                    f"Expected tuple (filename, content, content_type)"
                )
            filename, content, content_type = file_info
            form.add_field(
                field_name, content, filename=filename, content_type=content_type
            )

        return form


class WhatsAppClient:
    """
    WhatsApp Cloud API client for one business phone number.

    The aiohttp session is injected and owned by the caller (the
    WhatsAppCloud facade or a FastAPI lifespan). It may be attached after
    construction but must be set before the first request.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None,
        access_token: str,
        phone_number_id: str,
        api_version: str = DEFAULT_API_VERSION,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout: float = 30.0,
        max_retries: int = 3,
    ):
        self.session = session
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.max_retries = max(1, max_retries)
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)
        self.last_activity: datetime | None = None
        self.logger = get_logger(__name__)

        self.url_builder = WhatsAppUrlBuilder(base_url, api_version, phone_number_id)
        self.form_builder = WhatsAppFormDataBuilder()

        self.logger.debug(
            f"WhatsApp client initialized for phone_id: {phone_number_id}, "
            f"api_version: {api_version}"
        )

    def _get_headers(self, include_content_type: bool = True) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        if include_content_type:
            headers["Content-Type"] = "application/json"
        return headers

    def _require_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise RuntimeError(
                "WhatsAppClient has no HTTP session; call WhatsAppCloud.start() first"
            )
        return self.session

    async def _backoff(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        payload: dict[str, Any] | None = None,
        *,
        params: dict[str, Any] | None = None,
        files: dict[str, tuple[str, bytes, str]] | None = None,
        custom_url: str | None = None,
    ) -> dict[str, Any]:
        """
        Send one API request, retrying timeouts and rate limits.

        Attempt n (1-based) that times out waits 2**n seconds before the next
        attempt; a 429 waits for the provider's Retry-After. After
        ``max_retries`` attempts the last error is raised.

        Args:
            endpoint: Path under the versioned base URL, e.g. "<phone_id>/messages"
            method: HTTP method
            payload: JSON body (or form fields when ``files`` is given)
            params: Query parameters
            files: Multipart files as (filename, content, content_type)
            custom_url: Absolute URL overriding ``endpoint``

        Returns:
            Decoded JSON response ({} for an empty body)

        Raises:
            RateLimitError: Still rate limited after the last attempt
            ProviderError: Non-2xx response other than 429
            asyncio.TimeoutError: Still timing out after the last attempt
            aiohttp.ClientError: Connection-level failures (not retried)
        """
        url = custom_url or self.url_builder.get_endpoint_url(endpoint)
        method = method.upper()

        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._send_once(method, url, payload, params, files)
            except RateLimitError as e:
                if attempt >= self.max_retries:
                    self.logger.warning(
                        f"Rate limited on {method} {url}; giving up after {attempt} attempt(s)"
                    )
                    raise
                delay = e.retry_after
            except (asyncio.TimeoutError, aiohttp.ServerTimeoutError):
                if attempt >= self.max_retries:
                    self.logger.warning(
                        f"Timeout on {method} {url}; giving up after {attempt} attempt(s)"
                    )
                    raise
                delay = float(2**attempt)

            self.logger.info(
                f"Retrying {method} {url} in {delay}s "
                f"(attempt {attempt + 1}/{self.max_retries})"
            )
            await self._backoff(delay)

    async def _send_once(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None,
        params: dict[str, Any] | None,
        files: dict[str, tuple[str, bytes, str]] | None,
    ) -> dict[str, Any]:
        session = self._require_session()
        self.last_activity = datetime.now(UTC)
        kwargs: dict[str, Any] = {"params": params, "timeout": self.timeout}

        if files:
            # aiohttp sets the multipart Content-Type with its boundary
            kwargs["headers"] = self._get_headers(include_content_type=False)
            kwargs["data"] = self.form_builder.build_form_data(payload or {}, files)
        else:
            kwargs["headers"] = self._get_headers()
            if payload is not None:
                kwargs["json"] = payload

        self.logger.debug(f"{method} {url} payload: {payload}")

        async with session.request(method, url, **kwargs) as response:
            if response.status >= 400:
                await self._raise_for_status(response, url)
            data = await response.json(content_type=None)
            self.logger.debug(f"Response: {data}")
            return data if isinstance(data, dict) else {}

    async def _raise_for_status(self, response: aiohttp.ClientResponse, url: str):
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            body = {"raw": await response.text()}

        if response.status == 429:
            raise RateLimitError(
                parse_retry_after(response.headers.get("Retry-After")), details=body
            )

        error = body.get("error") if isinstance(body, dict) else None
        error = error if isinstance(error, dict) else {}
        message = error.get("message") or f"HTTP {response.status}: {response.reason}"

        if response.status == 401:
            self.logger.error(
                f"🚨 WhatsApp access token expired or invalid for phone_id "
                f"{self.phone_number_id} (401 Unauthorized): {message}"
            )
        else:
            self.logger.error(f"HTTP error {response.status} for {url}: {message}")

        raise ProviderError(
            response.status, message, provider_code=error.get("code"), details=body
        )

    async def post_request(
        self,
        payload: dict[str, Any],
        custom_url: str | None = None,
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> dict[str, Any]:
        """POST to the messages endpoint (or ``custom_url``)."""
        return await self.request(
            "",
            "POST",
            payload,
            files=files,
            custom_url=custom_url or self.url_builder.get_messages_url(),
        )

    async def get_request(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return await self.request(endpoint, "GET", params=params)

    async def upload_media(
        self, content: bytes, mime_type: str, filename: str = "upload"
    ) -> dict[str, Any]:
        """
        Upload media bytes for later sending by id.

        Returns:
            Provider response, e.g. {"id": "<media id>"}
        """
        return await self.post_request(
            {"messaging_product": "whatsapp", "type": mime_type},
            custom_url=self.url_builder.get_media_url(),
            files={"file": (filename, content, mime_type)},
        )

    async def download_media(self, url: str) -> bytes:
        """Download media bytes from a provider media URL."""
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._require_session().get(
                    url,
                    headers=self._get_headers(include_content_type=False),
                    timeout=self.timeout,
                ) as response:
                    if response.status >= 400:
                        await self._raise_for_status(response, url)
                    return await response.read()
            except (asyncio.TimeoutError, aiohttp.ServerTimeoutError):
                if attempt >= self.max_retries:
                    self.logger.warning(f"Media download timed out: {url}")
                    raise
                await self._backoff(float(2**attempt))
