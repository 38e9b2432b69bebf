"""
DataForSEO API Client

Async HTTP client for the ranked keywords endpoint:
- Connection pooling
- Bounded request timeout
- Status code checks at HTTP, API and task level
- Request/response logging

Only fetches. Parsing lives in aio_overviews.scoring.keywords.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

RANKED_KEYWORDS_ENDPOINT = "dataforseo_labs/google/ranked_keywords/live"

STATUS_OK = 20000
TASK_STATUS_OK = (20000, 20100)


def safe_get_items(response: Any) -> List[Dict[str, Any]]:
    """
    Safely extract tasks[0].result[0].items from a DataForSEO response.

    Handles cases where any level is None, empty, or malformed.

    Returns:
        List of item dicts, or empty list on any structural problem
    """
    if not isinstance(response, dict):
        return []

    tasks = response.get("tasks")
    if not tasks or not isinstance(tasks, list) or not isinstance(tasks[0], dict):
        return []

    result = tasks[0].get("result")
    if not result or not isinstance(result, list) or not isinstance(result[0], dict):
        return []

    items = result[0].get("items")
    if not items or not isinstance(items, list):
        return []

    return [item for item in items if isinstance(item, dict)]


class DataForSEOError(Exception):
    """Custom exception for DataForSEO API errors."""
    def __init__(self, message: str, status_code: int = None, response: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class DataForSEOClient:
    """
    Async client for DataForSEO API.

    Usage:
        client = DataForSEOClient(login="your_login", password="your_password")

        raw = await client.fetch_ranked_keywords("example.com")

        await client.close()
    """

    BASE_URL = "https://api.dataforseo.com/v3"

    def __init__(
        self,
        login: str,
        password: str,
        timeout: float = 30.0,
        location_code: int = 2840,
        language_code: str = "en",
        limit: int = 50,
        max_connections: int = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize DataForSEO client.

        Args:
            login: DataForSEO login email
            password: DataForSEO API password
            timeout: Request timeout in seconds
            location_code: DataForSEO location code (2840 = United States)
            language_code: Language code for ranked keywords
            limit: Max ranked keywords requested per domain
            max_connections: Maximum concurrent connections
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.login = login
        self.password = password
        self.location_code = location_code
        self.language_code = language_code
        self.limit = limit

        # Create auth header
        credentials = f"{login}:{password}"
        auth_token = base64.b64encode(credentials.encode()).decode()

        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Basic {auth_token}",
                "Content-Type": "application/json",
            },
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max(1, max_connections // 2),
            ),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

        self._closed = False

    @property
    def has_credentials(self) -> bool:
        return bool(self.login and self.password)

    async def post(self, endpoint: str, data: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Make POST request to DataForSEO API.

        Args:
            endpoint: API endpoint path (e.g., "dataforseo_labs/google/ranked_keywords/live")
            data: Request payload (list of task objects)

        Returns:
            API response as dictionary

        Raises:
            DataForSEOError: On HTTP, transport or API-level error
        """
        if self._closed:
            raise DataForSEOError("Client is closed")

        if not self.has_credentials:
            raise DataForSEOError("DataForSEO credentials not configured")

        url = f"/{endpoint}"
        logger.debug(f"POST {url}")

        try:
            response = await self._client.post(url, json=data)
        except httpx.TimeoutException as e:
            raise DataForSEOError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise DataForSEOError(f"HTTP error: {e}") from e

        if response.status_code != 200:
            raise DataForSEOError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            result = response.json()
        except ValueError as e:
            raise DataForSEOError(f"Invalid JSON in API response: {e}") from e

        if not isinstance(result, dict):
            raise DataForSEOError("Unexpected API response shape")

        # Check for API-level errors
        if result.get("status_code") != STATUS_OK:
            error_msg = result.get("status_message", "Unknown error")
            raise DataForSEOError(
                f"API error: {error_msg}",
                status_code=result.get("status_code"),
                response=result,
            )

        # Task-level errors leave the result empty; the parser treats that as zero keywords
        for task in result.get("tasks") or []:
            task_status = task.get("status_code") if isinstance(task, dict) else None
            if task_status not in TASK_STATUS_OK:
                error_msg = task.get("status_message", "Task error") if isinstance(task, dict) else "Task error"
                logger.error(
                    f"DataForSEO task error in {url}: {error_msg} (status: {task_status}). "
                    f"The scan will report zero keywords."
                )

        return result

    async def fetch_ranked_keywords(self, domain: str) -> Dict[str, Any]:
        """
        Fetch ranked keywords for a domain.

        AI Overview presence shows up as "ai_overview" in each item's
        keyword_data.serp_info.serp_item_types, so item types are not filtered.

        Args:
            domain: Normalized domain (e.g., "example.com")

        Returns:
            Raw API response (to be parsed by parse_ranked_keywords)
        """
        logger.info(f"Fetching ranked keywords for {domain}")

        result = await self.post(
            RANKED_KEYWORDS_ENDPOINT,
            [{
                "target": domain,
                "location_code": self.location_code,
                "language_code": self.language_code,
                "limit": self.limit,
            }],
        )

        logger.info(f"Received {len(safe_get_items(result))} ranked keywords for {domain}")
        return result

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def create_client(settings) -> DataForSEOClient:
    """Create a DataForSEO client from application settings."""
    return DataForSEOClient(
        login=settings.DATAFORSEO_LOGIN,
        password=settings.DATAFORSEO_PASSWORD,
        timeout=settings.API_TIMEOUT,
        location_code=settings.LOCATION_CODE,
        language_code=settings.LANGUAGE_CODE,
        limit=settings.RANKED_KEYWORDS_LIMIT,
    )
