"""Gemini AI service for generating report text."""

from google import genai
from google.genai import types
from typing import Optional
import logging
import time
from collections import deque

from ..core.exceptions import ConfigurationError, GeminiError, RateLimitExceededError
from ..core.metrics import track_gemini_latency

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, max_requests: int, time_window: int = 60):
        self.max_requests = max_requests
        self.time_window = time_window
        self.requests = deque()

    def can_proceed(self) -> bool:
        now = time.time()
        while self.requests and self.requests[0] < now - self.time_window:
            self.requests.popleft()
        return len(self.requests) < self.max_requests

    def add_request(self):
        self.requests.append(time.time())


class GeminiService:
    """Service for Gemini AI integration."""

    def __init__(self, api_key: Optional[str], model_name: str = "gemini-2.0-flash-exp"):
        """Initialize GeminiService with google-genai SDK.

        Args:
            api_key: Google API key for Gemini
            model_name: Model to use (default: gemini-2.0-flash-exp)
        """
        if not api_key:
            raise ConfigurationError(
                "gemini_api_key",
                "GEMINI_API_KEY environment variable is not set. Please configure it in the service settings."
            )

        try:
            self.client = genai.Client(api_key=api_key)
            self.model_name = model_name
            logger.info(f"GeminiService initialized with model: {model_name}")
        except Exception as e:
            logger.error(f"Failed to initialize Gemini client {model_name}: {e}")
            raise

        rpm = 60 if "flash" in model_name else 10
        self.rate_limiter = RateLimiter(max_requests=rpm)
        self.generation_config = types.GenerateContentConfig(
            temperature=1.0,
            top_k=40,
            top_p=0.95,
            max_output_tokens=8192,
        )

    def generate_report_text(self, prompt: str) -> str:
        """Generate report text for a prompt.

        Raises:
            RateLimitExceededError: Per-minute request budget used up
            GeminiError: SDK failure or empty response
        """
        if not self.rate_limiter.can_proceed():
            logger.warning("Rate limit exceeded for Gemini API")
            raise RateLimitExceededError(retry_after=self.rate_limiter.time_window)

        self.rate_limiter.add_request()
        try:
            with track_gemini_latency(self.model_name):
                response = self.client.models.generate_content(
                    model=self.model_name,
                    contents=prompt,
                    config=self.generation_config
                )
        except Exception as e:
            logger.error(f"Gemini API error [{type(e).__name__}]: {e}", exc_info=True)
            raise GeminiError(str(e))

        text = response.text
        if not text or not text.strip():
            logger.warning("Gemini returned empty response")
            raise GeminiError("empty response")
        return text
