"""
Anthropic Claude backend for eligibility classification

Thin transport: send the prompt, return the text. Retry, timeouts, parsing
and fallbacks are the adapter's job (see ai_classifier.py), so the SDK's own
retry loop is switched off here.
"""
import os
from typing import Any, Dict, Optional

import anthropic
import structlog

from packages.domain.eligibility.errors import MalformedResponse, TransientExternalFailure

logger = structlog.get_logger()


class AnthropicAIService:
    """
    AIService implementation on the Anthropic Messages API.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        """
        Initialize the service.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            model: Model name, also reported as the verdict model version
            client: Pre-built client (tests)
        """
        self.model_version = model
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")

        if client is not None:
            self.client = client
        elif self.api_key:
            self.client = anthropic.AsyncAnthropic(api_key=self.api_key, max_retries=0)
        else:
            logger.warning("anthropic_api_key_missing",
                           message="ANTHROPIC_API_KEY not set, AI classification disabled")
            self.client = None

    async def classify(self, prompt: str, params: Dict[str, Any]) -> str:
        """
        Send one classification prompt.

        Raises:
            TransientExternalFailure: transport or API error
            MalformedResponse: no text content in the reply
        """
        if self.client is None:
            raise TransientExternalFailure("Anthropic client not configured")

        try:
            response = await self.client.messages.create(
                model=self.model_version,
                max_tokens=params.get("max_tokens", 1000),
                temperature=params.get("temperature", 0.1),
                messages=[
                    {
                        "role": "user",
                        "content": prompt
                    }
                ]
            )
        except anthropic.APIError as e:
            raise TransientExternalFailure(f"{type(e).__name__}: {e}") from e

        logger.debug("ai_call_complete",
                     model=self.model_version,
                     input_tokens=response.usage.input_tokens,
                     output_tokens=response.usage.output_tokens)

        texts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        if not texts or not texts[0].strip():
            raise MalformedResponse("Empty response from AI")
        return texts[0]

    async def is_healthy(self) -> bool:
        # No paid round-trip; a configured client is considered reachable
        return self.client is not None
