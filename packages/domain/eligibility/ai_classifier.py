"""
AI Classifier Adapter - retry, parsing and conservative fallbacks around the
external classifier

Flow per item:
1. Build a compact prompt (item attributes + country rules)
2. Call the AIService, each attempt bounded by a timeout
3. Any failure (network, timeout, API error, empty/malformed reply) is retried
   up to max_retries with 2^attempt second backoff, no sleep after the last
4. Parse {"isEligible", "confidence", "reason"} from the reply
5. Retries exhausted → ineligible at confidence 0.0

classify_with_fallback() additionally refuses anything below the confidence
floor. Nothing raised by the external service escapes this module.
"""
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from packages.common.metrics import AI_CALLS
from packages.common.schemas.basket import BasketItem
from packages.common.schemas.catalog import AIVerdict, VerdictSource
from packages.domain.eligibility.categories import FALLBACK, UNCERTAIN, category_from_verdict
from packages.domain.eligibility.errors import MalformedResponse, PermanentExternalFailure
from packages.domain.eligibility.interfaces import AIService
from packages.domain.eligibility.schemas import ClassificationContext

logger = structlog.get_logger()

UNAVAILABLE_REASON = "AI unavailable"
LOW_CONFIDENCE_FLOOR = 0.5

COUNTRY_RULES = {
    "FR": "RULES: Food/drinks OK. Alcohol in menus <33% OK. Standalone alcohol/non-food NOT OK.",
    "BE": "RULES: Food/drinks OK. NO alcohol allowed. Non-food NOT OK.",
}
DEFAULT_COUNTRY_RULES = "RULES: Food/drinks for consumption OK. Alcohol/non-food NOT OK."


class AIClassifierAdapter:
    """
    Wraps an AIService with retry/backoff and conservative verdicts.
    """

    def __init__(
        self,
        service: Optional[AIService],
        *,
        enabled: bool = True,
        max_retries: int = 3,
        timeout_seconds: float = 30.0,
        max_tokens: int = 1000,
        temperature: float = 0.1,
        confidence_threshold: float = 0.7,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.service = service
        self.enabled = enabled
        self.max_retries = max(1, max_retries)
        self.timeout_seconds = timeout_seconds
        self.confidence_threshold = confidence_threshold
        self.params: Dict[str, Any] = {"max_tokens": max_tokens, "temperature": temperature}
        self._sleep = sleep

    @property
    def available(self) -> bool:
        return self.enabled and self.service is not None

    @property
    def model_version(self) -> Optional[str]:
        return getattr(self.service, "model_version", None) if self.service else None

    # ---- prompt / parsing ---------------------------------------------------------------

    @staticmethod
    def country_rules(country_code: str) -> str:
        return COUNTRY_RULES.get((country_code or "").upper(), DEFAULT_COUNTRY_RULES)

    def build_prompt(self, item: BasketItem, context: ClassificationContext) -> str:
        return (
            f"Analyze this product for meal voucher eligibility in {context.country_code}:\n"
            f"\n"
            f"Product: {item.name}\n"
            f"Description: {item.description or 'N/A'}\n"
            f"Category: {item.category}\n"
            f"Price: {item.total_price:.2f} {item.pricing_data.currency_code}\n"
            f"Contains Alcohol: {item.item_attributes.contains_alcohol}\n"
            f"Merchant: {context.merchant_type or 'unknown'}\n"
            f"\n"
            f"{self.country_rules(context.country_code)}\n"
            f"\n"
            f"Respond with ONLY this JSON:\n"
            f'{{"isEligible": true/false, "confidence": 0.0-1.0, "reason": "brief explanation"}}'
        )

    def parse_response(self, text: str, item: BasketItem) -> AIVerdict:
        """
        Parse the classifier's reply into a verdict.

        Takes the span from the first "{" to the last "}" so surrounding prose
        or markdown fences are ignored.

        Raises:
            MalformedResponse: no JSON object, or no boolean eligibility field
        """
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponse("No JSON object in AI response")

        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponse("AI response is not a JSON object")

        is_eligible = data.get("isEligible", data.get("is_eligible"))
        if not isinstance(is_eligible, bool):
            raise MalformedResponse("Missing boolean isEligible")

        reason = str(data.get("reason") or "")

        return AIVerdict(
            is_eligible=is_eligible,
            confidence=data.get("confidence", 0.0),
            reason=reason,
            source=VerdictSource.AI,
            category=category_from_verdict(is_eligible, reason, item.category),
            model_version=self.model_version,
        )

    def fallback_verdict(self, reason: str = UNAVAILABLE_REASON) -> AIVerdict:
        return AIVerdict(
            is_eligible=False,
            confidence=0.0,
            reason=reason,
            source=VerdictSource.AI,
            category=FALLBACK,
            model_version=self.model_version,
        )

    # ---- calls --------------------------------------------------------------------------

    async def _classify_with_retry(self, prompt: str, item: BasketItem) -> AIVerdict:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                raw = await asyncio.wait_for(
                    self.service.classify(prompt, self.params),
                    timeout=self.timeout_seconds,
                )
                verdict = self.parse_response(raw, item)
                AI_CALLS.labels(outcome="success").inc()
                return verdict
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"AI call timed out after {self.timeout_seconds}s")
                AI_CALLS.labels(outcome="timeout").inc()
            except MalformedResponse as e:
                last_error = e
                AI_CALLS.labels(outcome="malformed").inc()
            except Exception as e:
                last_error = e
                AI_CALLS.labels(outcome="error").inc()

            logger.warning("ai_attempt_failed",
                           sku=item.sku,
                           attempt=attempt,
                           max_retries=self.max_retries,
                           error=str(last_error))

            if attempt < self.max_retries:
                await self._sleep(2 ** attempt)

        raise PermanentExternalFailure(self.max_retries, last_error)

    async def classify(self, item: BasketItem, context: ClassificationContext) -> AIVerdict:
        """
        Classify one item. Never raises.

        Returns:
            Parsed verdict, or the conservative fallback when AI is disabled or
            every attempt failed
        """
        if not self.available:
            return self.fallback_verdict()

        prompt = self.build_prompt(item, context)

        try:
            verdict = await self._classify_with_retry(prompt, item)
        except PermanentExternalFailure as e:
            logger.error("ai_classification_failed",
                         sku=item.sku,
                         attempts=e.attempts,
                         error=str(e.last_error))
            if isinstance(e.last_error, MalformedResponse):
                return self.fallback_verdict(f"Malformed AI response: {e.last_error}")
            return self.fallback_verdict()

        logger.info("ai_classification_complete",
                    sku=item.sku,
                    is_eligible=verdict.is_eligible,
                    confidence=verdict.confidence)
        return verdict

    async def classify_with_fallback(self, item: BasketItem, context: ClassificationContext) -> AIVerdict:
        """classify(), then refuse anything under the confidence threshold"""
        verdict = await self.classify(item, context)
        return self.apply_confidence_floor(verdict, item)

    def apply_confidence_floor(self, verdict: AIVerdict, item: BasketItem) -> AIVerdict:
        if verdict.confidence < self.confidence_threshold:
            logger.warning("ai_low_confidence",
                           sku=item.sku,
                           confidence=verdict.confidence)
            return verdict.model_copy(update={
                "is_eligible": False,
                "confidence": LOW_CONFIDENCE_FLOOR,
                "reason": f"Low confidence result: {verdict.reason}",
                "category": UNCERTAIN,
            })

        return verdict

    async def classify_batch(self, items: List[BasketItem], context: ClassificationContext) -> List[AIVerdict]:
        return list(await asyncio.gather(*(self.classify(item, context) for item in items)))

    async def is_healthy(self) -> bool:
        if not self.enabled:
            return True
        if self.service is None:
            return False
        try:
            return await self.service.is_healthy()
        except Exception as e:
            logger.warning("ai_health_check_failed", error=str(e))
            return False
