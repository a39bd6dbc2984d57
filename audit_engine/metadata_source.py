"""Metadata Source providers: where per-locale listing metadata comes from."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import requests
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from audit_engine.config_loader import MetadataSourceConfig

logger = logging.getLogger(__name__)


class AppMetadata(BaseModel):
    """Textual listing metadata for one app in one locale."""
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    subtitle: Optional[str] = None
    description: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    def field_values(self) -> Dict[str, Optional[str]]:
        return {"title": self.title, "subtitle": self.subtitle, "description": self.description}


@dataclass(frozen=True)
class NotAvailable:
    """Metadata for a locale could not be obtained."""
    locale: str
    reason: str = "not available"


FetchResult = Union[AppMetadata, NotAvailable]


class MetadataSource(ABC):
    @abstractmethod
    def fetch_metadata(self, app_id: str, locale: str) -> FetchResult:
        """Return AppMetadata, or NotAvailable for a missing locale."""


class StaticMetadataSource(MetadataSource):
    """In-memory metadata keyed by (app_id, locale)."""

    def __init__(self, metadata: Optional[Mapping[Tuple[str, str], Union[AppMetadata, Mapping[str, Any]]]] = None):
        self._metadata: Dict[Tuple[str, str], AppMetadata] = {}
        for (app_id, locale), value in (metadata or {}).items():
            self.add(app_id, locale, value)

    def add(self, app_id: str, locale: str, metadata: Union[AppMetadata, Mapping[str, Any]]) -> None:
        if not isinstance(metadata, AppMetadata):
            metadata = AppMetadata.model_validate(metadata)
        self._metadata[(app_id, locale)] = metadata

    def fetch_metadata(self, app_id: str, locale: str) -> FetchResult:
        metadata = self._metadata.get((app_id, locale))
        if metadata is None:
            return NotAvailable(locale, f"no metadata for {app_id} in {locale}")
        return metadata


def _is_retryable_error(exc: Exception) -> bool:
    """
    Determine if an exception is retryable.

    Retries timeouts, connection errors and 5xx responses; never 4xx.
    """
    if isinstance(exc, requests.Timeout):
        return True

    if isinstance(exc, requests.HTTPError):
        response = getattr(exc, 'response', None)
        if response is not None:
            return response.status_code >= 500
        return True

    if isinstance(exc, requests.RequestException):
        response = getattr(exc, 'response', None)
        if response is not None and 400 <= response.status_code < 500:
            return False
        return True

    return False


class HttpMetadataSource(MetadataSource):
    """
    Fetches metadata from an HTTP endpoint: GET {base_url}/apps/{app_id}/metadata?locale=...

    404 and exhausted retries map to NotAvailable; other 4xx responses raise.
    """

    def __init__(
        self,
        base_url: str,
        request_timeout_seconds: int = 15,
        max_attempts: int = 3,
        retry_wait_seconds: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.request_timeout_seconds = request_timeout_seconds
        self.session = session or requests.Session()
        self._retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(retry_wait_seconds),
            retry=retry_if_exception(_is_retryable_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        logger.info(f"HttpMetadataSource initialized: base_url={self.base_url}, max_attempts={max_attempts}")

    @classmethod
    def from_config(cls, config: MetadataSourceConfig) -> "HttpMetadataSource":
        if not config.url:
            raise ValueError("metadata_source.url is not configured")
        return cls(
            config.url,
            request_timeout_seconds=config.request_timeout_seconds,
            max_attempts=config.max_attempts,
            retry_wait_seconds=config.retry_wait_seconds,
        )

    def _fetch_once(self, app_id: str, locale: str) -> Optional[Dict[str, Any]]:
        response = self.session.get(
            f"{self.base_url}/apps/{app_id}/metadata",
            params={"locale": locale},
            timeout=self.request_timeout_seconds,
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def fetch_metadata(self, app_id: str, locale: str) -> FetchResult:
        try:
            payload = self._retrying.copy()(self._fetch_once, app_id, locale)
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.warning(f"Metadata for {app_id} [{locale}] unavailable after retries: {cause}")
            return NotAvailable(locale, f"metadata source failed: {cause}")
        if payload is None:
            logger.info(f"No metadata for {app_id} [{locale}]")
            return NotAvailable(locale, f"no metadata for {app_id} in {locale}")
        return AppMetadata.model_validate(payload)
