"""Client for the external workflow webhook that turns prompts into report text."""

import json
import logging
from typing import Any, Dict, Optional

import requests

from ..core.exceptions import ConfigurationError, WebhookError

logger = logging.getLogger(__name__)

REPORTS_MODE = "reports"


def build_webhook_payload(
    prompt: str,
    user_id: str,
    user_email: str,
    user_name: str,
    metadata: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Build the JSON body the workflow expects (same shape as private chat)."""
    payload = {
        "chatInput": prompt,
        "user_id": user_id,
        "user_email": user_email,
        "user_name": user_name,
        "mode": REPORTS_MODE,
        "conversation_id": None,
    }
    if metadata is not None:
        payload["metadata"] = metadata
    return payload


def parse_webhook_response(body: str) -> str:
    """Extract report text from either a JSON ``{"output": ...}`` or plain-text body."""
    try:
        parsed = json.loads(body)
    except ValueError:
        return body

    output = parsed.get("output") if isinstance(parsed, dict) else None
    if isinstance(output, str) and output:
        return output
    return body


class WebhookClient:
    """Posts report prompts to the workflow webhook.

    No retries. A timeout is only applied when one is configured.
    """

    def __init__(self, url: Optional[str], timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, payload: Dict[str, Any]) -> str:
        """POST the payload and return the report text.

        Raises:
            ConfigurationError: No webhook URL is configured
            WebhookError: Transport failure or non-2xx response
        """
        if not self.url:
            raise ConfigurationError("report_webhook_url", "Report webhook URL not configured")

        try:
            response = self.session.post(
                self.url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Webhook transport error: {e}")
            raise WebhookError(str(e), user_id=payload.get("user_id"))

        # requests treats 3xx as ok; only 2xx carries report text
        if not 200 <= response.status_code < 300:
            logger.error(f"Webhook returned {response.status_code}: {response.text[:200]}")
            raise WebhookError(response.reason or "non-2xx response", http_status=response.status_code,
                               user_id=payload.get("user_id"))

        return parse_webhook_response(response.text)
