"""
Remote Store client for Daily Forge.

Talks to the entries API over HTTP (httpx). Every operation reports a RemoteResult
instead of raising: expected absence is ``not_found``, transport errors, timeouts,
non-2xx responses and malformed payloads are ``failed``.
"""
import json
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from core.exceptions import RemoteUnavailableError
from core.logger import get_logger
from core.models import DayRecord, ReadingPlanProgress

logger = get_logger("remote_store")

ENTRIES_PATH = "/api/entries"


class ResultStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class RemoteResult:
    """Discriminated result of a remote call."""
    status: ResultStatus
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.OK

    @property
    def not_found(self) -> bool:
        return self.status == ResultStatus.NOT_FOUND

    @property
    def failed(self) -> bool:
        return self.status == ResultStatus.FAILED

    @classmethod
    def found(cls, data: Any = None) -> "RemoteResult":
        return cls(ResultStatus.OK, data=data)

    @classmethod
    def missing(cls) -> "RemoteResult":
        return cls(ResultStatus.NOT_FOUND)

    @classmethod
    def failure(cls, error: str) -> "RemoteResult":
        return cls(ResultStatus.FAILED, error=error)


def _data_content(entry: Dict[str, Any]) -> Dict[str, Any]:
    content = entry.get("data_content") or {}
    # some deployments hand back the JSON column as text
    if isinstance(content, str):
        content = json.loads(content) if content.strip() else {}
    if not isinstance(content, dict):
        raise ValueError("data_content must be an object")
    return content


class RemoteStore:
    """HTTP client for the entries API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        auth_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        lookback: Optional[int] = None
    ):
        from core.config_manager import config

        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.REMOTE_TIMEOUT_SECONDS
        self.auth_token = auth_token if auth_token is not None else config.API_TOKEN
        self.lookback = lookback or config.LATEST_PLAN_LOOKBACK
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self, user_id: str) -> Dict[str, str]:
        headers = {
            "X-User-Id": str(user_id),
            "Cache-Control": "no-cache, no-store, must-revalidate",
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def _request(self, method: str, path: str, user_id: str, **kwargs) -> Optional[httpx.Response]:
        """
        Send one request.

        Returns:
            The response, or None on 404.

        Raises:
            RemoteUnavailableError: transport error, timeout or other non-2xx status.
        """
        try:
            response = await self._get_client().request(
                method, path, headers=self._headers(user_id), **kwargs
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise RemoteUnavailableError(
                "unexpected response", endpoint=path, status_code=e.response.status_code
            ) from e
        except httpx.TimeoutException as e:
            raise RemoteUnavailableError(f"timed out after {self.timeout}s", endpoint=path) from e
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"request failed: {e}", endpoint=path) from e

    async def load(self, user_id: str, day_key: str) -> RemoteResult:
        """Fetch raw day data (camel-cased dict) for one day."""
        path = f"{ENTRIES_PATH}/{quote(day_key, safe='')}"
        try:
            response = await self._request("GET", path, user_id)
            if response is None:
                return RemoteResult.missing()
            entry = response.json().get("entry")
            if not entry:
                return RemoteResult.missing()
            content = _data_content(entry)
        except RemoteUnavailableError as e:
            logger.warning("Load failed for %s/%s: %s", user_id, day_key, e.message)
            return RemoteResult.failure(e.message)
        except (ValueError, AttributeError) as e:
            logger.warning("Malformed entry for %s/%s: %s", user_id, day_key, e)
            return RemoteResult.failure(f"malformed response: {e}")

        if not content:
            return RemoteResult.missing()
        return RemoteResult.found(content)

    async def save(self, user_id: str, day_key: str, record: DayRecord) -> RemoteResult:
        """Upsert the full record for one day."""
        body = {"date": day_key, **record.to_dict()}
        try:
            response = await self._request("POST", ENTRIES_PATH, user_id, json=body)
            if response is None:
                return RemoteResult.failure("entries endpoint not found")
            payload = response.json()
        except RemoteUnavailableError as e:
            logger.warning("Save failed for %s/%s: %s", user_id, day_key, e.message)
            return RemoteResult.failure(e.message)
        except ValueError as e:
            return RemoteResult.failure(f"malformed response: {e}")

        if isinstance(payload, dict) and payload.get("success") is False:
            return RemoteResult.failure(payload.get("error") or "save rejected")
        return RemoteResult.found(payload.get("entry") if isinstance(payload, dict) else None)

    async def latest_reading_plan(self, user_id: str) -> RemoteResult:
        """
        Find the reading plan of the most recent day that carries one.

        Independent of any day key: scans the latest ``lookback`` entries.
        """
        try:
            response = await self._request(
                "GET", ENTRIES_PATH, user_id, params={"limit": self.lookback}
            )
            if response is None:
                return RemoteResult.missing()
            entries = response.json().get("entries") or []
        except RemoteUnavailableError as e:
            logger.warning("Reading plan lookup failed for %s: %s", user_id, e.message)
            return RemoteResult.failure(e.message)
        except (ValueError, AttributeError) as e:
            return RemoteResult.failure(f"malformed response: {e}")

        latest: Optional[ReadingPlanProgress] = None
        latest_date: Optional[date] = None
        for entry in entries:
            try:
                raw_plan = _data_content(entry).get("readingPlan")
                if not raw_plan or not raw_plan.get("planId"):
                    continue
                entry_date = date.fromisoformat(str(entry.get("date_key", ""))[:10])
                plan = ReadingPlanProgress.from_dict(raw_plan)
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug("Skipping entry without a usable reading plan: %s", e)
                continue
            if latest_date is None or entry_date > latest_date:
                latest, latest_date = plan, entry_date

        if latest is None:
            return RemoteResult.missing()
        logger.info("Latest reading plan for %s: %s (day %s)", user_id, latest.plan_name, latest.current_day)
        return RemoteResult.found(latest)
