"""
HTTP gateway for the Empolis INGEST, IAS and STORE services.

Every call is authenticated with a bearer token from the TokenManager.
Transport failures and non-2xx responses are turned into ApiError values
(an Err result) at a single point, _send(); the public operations unwrap
the result so callers see exceptions from the errors module only.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence, Union
from urllib.parse import quote

import httpx

from .auth import TokenManager
from .config import SERVICES, ApiSettings
from .errors import ApiError, NotFound, ServiceUnavailable, ValidationError
from .logging_config import log_response
from .types import FILE_PATH_KEY, ApiResult, Err, Ok, RemoteMetadata, ServiceHealth

logger = logging.getLogger(__name__)

DEFAULT_RESULT_ATTRIBUTES = ("Title", "FileName", "DownloadLink")

# Status returned by the INGEST service when a metadata edit is queued
ACCEPTED = 202

# Free-text attributes are tokenized by the index, so an exact-value query
# against them never matches. Empolis marks text attributes with a _txt suffix.
TEXT_ATTRIBUTES = frozenset({"FileName"})
TEXT_ATTRIBUTE_SUFFIX = "_txt"


def is_text_attribute(attribute: str) -> bool:
    return attribute in TEXT_ATTRIBUTES or attribute.endswith(TEXT_ATTRIBUTE_SUFFIX)


@dataclass(frozen=True)
class ExactQuery:
    """Value filter query: the attribute must equal the value exactly."""
    attribute: str
    value: str

    def to_payload(self) -> dict:
        return {"attribute": self.attribute, "value": self.value}


@dataclass(frozen=True)
class NaturalLanguageQuery:
    """Natural language query against all text attributes."""
    text: str

    def to_payload(self) -> dict:
        return {"nlq": self.text}


SearchQuery = Union[ExactQuery, NaturalLanguageQuery]


def _error_message(response: httpx.Response) -> str:
    """Pull the message out of an Empolis JSON error body, else the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        parts = [str(body[k]) for k in ("error", "message") if body.get(k)]
        if parts:
            return ": ".join(parts)
    return response.text or response.reason_phrase


class ApiGateway:
    """Typed wrapper around the Empolis REST API."""

    def __init__(self, client: httpx.AsyncClient, tokens: TokenManager, settings: ApiSettings):
        """
        Args:
            client: HTTP client whose base_url is the Empolis tenant URL
            tokens: Source of bearer tokens
            settings: API versions, project and index names
        """
        self._client = client
        self._tokens = tokens
        self._settings = settings

    def _url(self, service: str, path: str) -> str:
        return f"/api/{service}/{self._settings.version(service)}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        title: str = "response",
    ) -> ApiResult[httpx.Response]:
        """Send an authenticated request; return Ok(response) or Err(ApiError)."""
        token = await self._tokens.get_token()
        headers = {"Authorization": f"Bearer {token}"}
        try:
            if json_body is None:
                resp = await self._client.request(method, url, headers=headers)
            else:
                resp = await self._client.request(method, url, headers=headers, json=json_body)
        except httpx.TimeoutException as e:
            return Err(ApiError(None, f"Request timed out: {method} {url}: {e}"))
        except httpx.HTTPError as e:
            return Err(ApiError(None, f"Request failed: {method} {url}: {e}"))

        log_response(logger, resp, title)
        if resp.status_code == 404:
            return Err(NotFound(_error_message(resp)))
        if not resp.is_success:
            return Err(ApiError(resp.status_code, _error_message(resp)))
        return Ok(resp)

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(resp.status_code, f"Invalid JSON in response: {e}") from e

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def _service_alive(self, service: str) -> bool:
        """True if the service reports operational; any failure counts as down."""
        result = await self._send("GET", self._url(service, "alive"), title=f"{service} alive")
        if isinstance(result, Err):
            logger.error("Health check for %s failed: %s", service.upper(), result.error)
            return False
        try:
            return bool(self._json(result.value).get("operational"))
        except (ApiError, AttributeError) as e:
            logger.error("Health check for %s returned an unexpected body: %s", service.upper(), e)
            return False

    async def check_service_health(self, services: Iterable[str] = SERVICES) -> ServiceHealth:
        """
        Check all services in parallel and evaluate them together.

        Raises:
            ServiceUnavailable: Listing every service that is not operational
            AuthError: No token could be obtained
        """
        names = list(dict.fromkeys(services))
        # Wait for every probe; an AuthError from one is raised after the rest finish
        results = await asyncio.gather(
            *(self._service_alive(s) for s in names), return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        health = ServiceHealth(dict(zip(names, results)))
        if not health.operational:
            raise ServiceUnavailable(health.down)
        logger.info("All Empolis services are operational")
        return health

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    async def search(
        self,
        query: SearchQuery,
        result_attributes: Sequence[str] = DEFAULT_RESULT_ATTRIBUTES,
        max_results: int = 10,
    ) -> list[dict]:
        """
        Search the index.

        Returns:
            Matching records in ranking order; empty if nothing matches

        Raises:
            ValidationError: Exact query against a text attribute, or a
                non-positive max_results
        """
        if isinstance(query, ExactQuery) and is_text_attribute(query.attribute):
            raise ValidationError(
                f"Attribute {query.attribute!r} is a text attribute and cannot be "
                "used in an exact-value query"
            )
        if max_results < 1:
            raise ValidationError(f"max_results must be positive, got {max_results}")

        body = {
            "query": query.to_payload(),
            "maxCount": max_results,
            "resultAttributes": list(result_attributes),
        }
        url = self._url("ias", f"index/{self._settings.index}/search")
        resp = (await self._send("POST", url, json_body=body, title="search")).unwrap()
        data = self._json(resp)
        records = data.get("records") if isinstance(data, dict) else None
        return list(records or [])

    # -------------------------------------------------------------------------
    # Store / ingest metadata
    # -------------------------------------------------------------------------

    async def get_metadata(self, path: str) -> RemoteMetadata:
        """
        Fetch the metadata of a file in the store.

        Args:
            path: Store path of the file (the DownloadLink attribute)

        Raises:
            NotFound: If the path does not resolve
        """
        url = self._url("store", f"file/{quote(path.lstrip('/'), safe='/')}") + "?metadata"
        resp = (await self._send("GET", url, title="get metadata")).unwrap()
        data = self._json(resp)
        if not isinstance(data, dict):
            raise ApiError(resp.status_code, "Metadata response is not an object")
        return data

    async def edit_metadata(self, metadata: RemoteMetadata) -> int:
        """
        Replace the metadata of a file. The store and the index are updated.

        This is a complete overwrite, not a merge: fetch the current metadata
        with get_metadata(), modify it, and send all of it back.

        Returns:
            HTTP status code (202 when the edit was accepted)

        Raises:
            ValidationError: If metadata has no FilePath (no request is sent)
        """
        file_path = metadata.get(FILE_PATH_KEY) if isinstance(metadata, dict) else None
        if not isinstance(file_path, str) or not file_path.strip():
            raise ValidationError(f"Metadata must contain a non-empty '{FILE_PATH_KEY}'")

        url = self._url("ingest", f"metadata/environment/{self._settings.project}")
        resp = (await self._send("POST", url, json_body=metadata, title="edit metadata")).unwrap()
        return resp.status_code

    # -------------------------------------------------------------------------
    # Index records
    # -------------------------------------------------------------------------

    async def get_record(self, record_id: str) -> dict:
        """Fetch an index record with all its attributes."""
        url = self._url("ias", f"index/{self._settings.index}/record/{record_id}")
        resp = (await self._send("GET", url, title="get record")).unwrap()
        return self._json(resp)

    async def update_record(self, record_id: str, record: dict) -> Optional[dict]:
        """
        Replace an index record.

        Not incremental: the previous record is deleted, so ``record`` must
        hold every attribute and the content. The caller's dict is not
        modified.
        """
        body = {**record, "_recordid": record_id, "_update": True}
        url = self._url("ias", f"index/{self._settings.index}/record")
        resp = (await self._send("POST", url, json_body=body, title="update record")).unwrap()
        if not resp.content:
            return None
        return self._json(resp)
