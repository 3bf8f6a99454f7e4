"""
Dial-by-Name Directory - User Directory API Client

Async client for the NetSapiens ns-api v2 user endpoints.

Pagination:
    Users are fetched with limit/start paging. A short page ends the walk;
    a hard page ceiling protects against runaway paging on API defects.

Failure policy:
    - First page fails → Failure (the caller has nothing to work with)
    - Later page fails → Ok with the users fetched so far
    Partial data is preferable to none on a live call. Nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Union
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from dialbyname.config import Settings
from dialbyname.core.types import Failure, FetchResult, Ok, RawUser

logger = logging.getLogger(__name__)

API_PATH = "/ns-api/v2/"
AUTO_ATTENDANT_PREFIX = "system-aa"


class DirectoryClient:
    """
    Paginated client over the remote user directory.

    Usage:
        client = DirectoryClient.from_settings(settings)
        result = await client.fetch_users("example.com", site="NYC")
        if isinstance(result, Ok):
            users = result.value
        await client.close()
    """

    def __init__(
        self,
        host: str,
        api_key: str,
        page_limit: int = 1000,
        max_pages: int = 100,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            host: API host name (no scheme)
            api_key: Bearer token
            page_limit: Users per page (API maximum is 1000)
            max_pages: Page ceiling per fetch
            timeout_seconds: Per-request timeout
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self._page_limit = max(1, min(page_limit, 1000))
        self._max_pages = max_pages
        self._client = httpx.AsyncClient(
            base_url=f"https://{host.strip().rstrip('/')}{API_PATH}",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "DirectoryClient":
        return cls(
            host=settings.ns_api_host,
            api_key=settings.ns_api_key,
            page_limit=settings.api_page_limit,
            max_pages=settings.api_max_pages,
            timeout_seconds=settings.api_timeout_seconds,
        )

    @property
    def page_limit(self) -> int:
        return self._page_limit

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request(self, endpoint: str, params: Optional[dict] = None) -> Union[Ok[Any], Failure]:
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.TimeoutException as e:
            logger.warning("Directory API timeout: %s (%s)", endpoint, type(e).__name__)
            return Failure(reason="timeout", detail=str(e) or type(e).__name__)
        except httpx.HTTPError as e:
            logger.warning("Directory API request error: %s (%s)", endpoint, e)
            return Failure(reason="request_error", detail=str(e))

        if response.status_code != 200:
            logger.warning(
                "Directory API request failed: %s HTTP %d", endpoint, response.status_code
            )
            return Failure(reason="http_error", detail=f"HTTP {response.status_code}")

        try:
            return Ok(response.json())
        except ValueError as e:
            logger.warning("Directory API returned invalid JSON: %s (%s)", endpoint, e)
            return Failure(reason="invalid_json", detail=str(e))

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def fetch_users(
        self,
        domain: str,
        site: Optional[str] = None,
        department: Optional[str] = None,
    ) -> FetchResult:
        """
        Fetch every user in a domain, optionally filtered by site/department.

        Returns:
            Ok(list of RawUser) or Failure if the first page failed
        """
        endpoint = f"domains/{quote(domain, safe='')}/users"
        users: List[RawUser] = []
        start = 0
        page_count = 0

        while page_count < self._max_pages:
            params = {"limit": self._page_limit, "start": start}
            if site:
                params["site"] = site
            if department:
                params["department"] = department

            result = await self._request(endpoint, params)

            if isinstance(result, Ok) and not isinstance(result.value, list):
                result = Failure(reason="unexpected_payload", detail=type(result.value).__name__)

            if isinstance(result, Failure):
                if page_count == 0:
                    return result
                logger.info(
                    "Directory page %d failed (%s), returning %d users fetched so far",
                    page_count + 1, result.reason, len(users),
                )
                break

            records = result.value
            users.extend(self._parse_records(records))
            page_count += 1

            logger.debug(
                "Directory page %d returned %d records, total users %d",
                page_count, len(records), len(users),
            )

            if len(records) < self._page_limit:
                break

            start += self._page_limit
        else:
            logger.warning(
                "Directory fetch hit the %d page ceiling, some users may be missing",
                self._max_pages,
            )

        logger.info(
            "Fetched %d users in %d page(s): site=%s, department=%s",
            len(users), page_count, site or "ALL", department or "ALL",
        )
        return Ok(users)

    @staticmethod
    def _parse_records(records: list) -> List[RawUser]:
        parsed = []
        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                parsed.append(RawUser.model_validate(record))
            except ValidationError as e:
                logger.debug("Skipping malformed user record: %s", e.error_count())
        return parsed

    async def get_user(self, domain: str, user: str) -> Optional[dict]:
        """Look up a single user record. Returns None on any failure."""
        endpoint = f"domains/{quote(domain, safe='')}/users/{quote(user, safe='')}"
        result = await self._request(endpoint)
        if isinstance(result, Failure) or not isinstance(result.value, dict):
            return None
        return result.value

    async def is_auto_attendant(self, domain: str, user: str) -> bool:
        """
        Check whether a user is a system auto attendant.

        A failed lookup answers False: the result only decides where the
        caller goes when they leave the directory.
        """
        info = await self.get_user(domain, user)
        if info is None:
            logger.debug("Could not fetch user info for auto attendant check: %s", user)
            return False

        service_code = str(info.get("service-code") or "")
        is_aa = service_code.lower().startswith(AUTO_ATTENDANT_PREFIX)

        logger.debug(
            "Auto attendant check: user=%s, service-code=%r, is_aa=%s",
            user, service_code, is_aa,
        )
        return is_aa
