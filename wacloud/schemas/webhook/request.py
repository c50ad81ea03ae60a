"""
Host-agnostic HTTP request model.

Host adapters translate their framework's request object into a
UniversalRequest; the dispatcher never touches framework types.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wacloud.schemas.core.types import WRITE_METHODS

HeaderInput = Mapping[str, Any] | Iterable[tuple[str, Any]]


def normalize_headers(headers: HeaderInput) -> dict[str, list[str]]:
    """Lower-case header names and collect repeated headers into lists."""
    items = headers.items() if isinstance(headers, Mapping) else headers
    normalized: dict[str, list[str]] = {}
    for name, value in items:
        if value is None:
            continue
        values = value if isinstance(value, list | tuple) else [value]
        bucket = normalized.setdefault(str(name).lower(), [])
        for v in values:
            bucket.append(v.decode("latin-1") if isinstance(v, bytes) else str(v))
    return normalized


class UniversalRequest(BaseModel):
    """
    Framework-independent view of an incoming webhook HTTP request.

    ``raw_body`` carries the exact wire bytes; signature verification hashes
    these when available instead of a re-serialization of ``body``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    method: str | None = Field(default=None, description="HTTP method")
    url: str | None = Field(default=None, description="Request URL or path")
    headers: dict[str, list[str]] | None = Field(
        default=None, description="Case-insensitive multi-map (keys lower-cased)"
    )
    body: Any = Field(default=None, description="Parsed body, if the host parsed it")
    query: dict[str, Any] | None = Field(default=None, description="Query parameters")
    raw_body: bytes | None = Field(default=None, description="Exact request bytes")
    framework: str | None = Field(
        default=None, description="Name of the host adapter that built the request"
    )

    @field_validator("method")
    @classmethod
    def _upper_method(cls, v: str | None) -> str | None:
        return v.upper() if v else v

    @field_validator("headers", mode="before")
    @classmethod
    def _normalize_headers(cls, v: Any) -> Any:
        if v is None:
            return None
        return normalize_headers(v)

    @field_validator("raw_body", mode="before")
    @classmethod
    def _encode_raw_body(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.encode("utf-8")
        if isinstance(v, bytearray | memoryview):
            return bytes(v)
        return v

    @property
    def is_write_method(self) -> bool:
        return self.method in WRITE_METHODS

    @property
    def has_body_source(self) -> bool:
        """True when either a parsed body or raw bytes were captured."""
        return self.body is not None or self.raw_body is not None

    @property
    def body_size(self) -> int:
        """Size in bytes of the raw body (0 when only a parsed body exists)."""
        return len(self.raw_body) if self.raw_body is not None else 0

    def get_header(self, name: str, default: str | None = None) -> str | None:
        """Get the first value of a header (case-insensitive)."""
        values = (self.headers or {}).get(name.lower())
        return values[0] if values else default

    def get_all_headers(self, name: str) -> list[str]:
        """Get every value of a repeated header (case-insensitive)."""
        return list((self.headers or {}).get(name.lower(), []))

    def get_query(self, name: str) -> str | None:
        """Get the first value of a query parameter."""
        value = (self.query or {}).get(name)
        if isinstance(value, list | tuple):
            return str(value[0]) if value else None
        return None if value is None else str(value)
