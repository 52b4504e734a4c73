"""
Base client for AI operations.
Provides the HTTP plumbing shared by AI clients.
"""
from typing import Dict, Any, Optional
import httpx
from nutriplan.core.config import Settings, get_settings
from nutriplan.core.logging import get_logger

logger = get_logger("core.base_client")

class BaseAIClient:
    """Base client for interacting with AI Models."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.timeout = self.settings.llm_timeout_seconds

    @property
    def is_initialized(self) -> bool:
        return bool(self.settings.llm_base_url)

    async def _make_request(
        self,
        url: str,
        payload: Dict[str, Any],
        log_prefix: str = "AI Client"
    ) -> Dict[str, Any]:
        """
        Make a generic HTTP POST request to the AI provider.

        Args:
            url: The full API endpoint URL.
            payload: The JSON payload to send.
            log_prefix: Prefix for log messages.

        Returns:
            The parsed JSON response.

        Raises:
            httpx.HTTPStatusError: If the API returns an error status.
            httpx.TransportError: If the provider cannot be reached.
        """
        logger.debug(f"[{log_prefix}] Calling {url}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, json=payload)

            logger.debug(f"[{log_prefix}] Response status: {response.status_code}")
            if response.status_code != 200:
                logger.error(f"[{log_prefix}] Error response: {response.text[:500]}")

            response.raise_for_status()
            return response.json()
