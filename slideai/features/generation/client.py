"""
Client for the remote slide-generation API.

POST {topic, num_slides} to /generate-presentation/{markdown|json};
the API answers with a download URL for the finished file.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class ContentFormat(str, Enum):
    MARKDOWN = "markdown"
    JSON = "json"


class GenerationApiError(Exception):
    """Raised when the generation API call fails."""
    pass


class PresentationApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def generate(
        self,
        topic: str,
        num_slides: Optional[int] = None,
        content_format: ContentFormat = ContentFormat.MARKDOWN,
    ) -> str:
        """Generate a presentation and return its download URL."""
        payload: Dict[str, Any] = {"topic": topic}
        if num_slides is not None:
            payload["num_slides"] = num_slides

        url = f"{self.base_url}/generate-presentation/{ContentFormat(content_format).value}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise GenerationApiError(
                f"API error: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise GenerationApiError(f"Generation API unreachable: {e}") from e
        except ValueError as e:
            raise GenerationApiError("Generation API returned malformed JSON") from e

        download_url = data.get("download_url") if isinstance(data, dict) else None
        if not download_url:
            raise GenerationApiError("Generation API response missing download_url")
        return download_url
