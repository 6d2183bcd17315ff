"""
LINE Messaging API push client.

Thin async wrapper over the push endpoint. It reports failure with a
return value and never raises for delivery problems.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from motorpool.app.core.config import settings

logger = logging.getLogger(__name__)


class LineMessagingClient:
    
    def __init__(
        self,
        access_token: Optional[str] = None,
        push_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.access_token = access_token if access_token is not None else settings.line_channel_access_token
        self.push_url = push_url or settings.line_push_url
        self.timeout = timeout or settings.notification_timeout_seconds
        self.transport = transport
    
    async def send(self, recipient: str, messages: List[Dict[str, Any]]) -> Tuple[bool, Optional[str]]:
        """
        Push messages to one recipient.
        
        Returns:
            (ok, error). error is None on success.
        """
        if not self.access_token:
            logger.warning("LINE channel access token is not configured, message to %s not sent", recipient)
            return False, "missing channel access token"
        
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.push_url,
                    headers={"Authorization": f"Bearer {self.access_token}"},
                    json={"to": recipient, "messages": messages},
                )
        except httpx.HTTPError as e:
            logger.warning("LINE push to %s failed: %s", recipient, e)
            return False, str(e)
        
        if response.status_code >= 400:
            logger.warning("LINE push to %s rejected (%s): %s", recipient, response.status_code, response.text)
            return False, f"HTTP {response.status_code}: {response.text[:500]}"
        
        logger.info("LINE push to %s delivered", recipient)
        return True, None
