# /agrichat/services/ai_service.py

import json
import logging
from typing import List, Optional, Type, TypeVar
from openai import AsyncOpenAI

from agrichat.config.settings import settings
from agrichat.config.persona import (
    EXTRACT_HARVEST_PROMPT,
    EXTRACT_ORDER_ACTION_PROMPT,
    EXTRACT_PRODUCT_PROMPT,
    EXTRACT_QUOTE_PROMPT,
    RAG_CONTEXT_TEMPLATE,
    RAG_NO_CONTEXT_ANSWER,
    RAG_SYSTEM_PROMPT,
)
from agrichat.models.extraction import (
    Candidate,
    HarvestCandidate,
    OrderActionCandidate,
    ProductCandidate,
    QuoteCandidate,
    RagAnswer,
)
from agrichat.services.cache_service import CacheService, cache_service
from agrichat.services.marketplace import MarketplaceFacade, marketplace
from agrichat.utils.circuit_breaker import CircuitBreaker
from agrichat.utils.metrics import ai_requests_counter

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=Candidate)

HELP_SCOPES = ["faq", "product", "harvest", "request", "order"]


class AIService:
    def __init__(self, api_key: Optional[str], facade: MarketplaceFacade, cache: CacheService):
        if api_key:
            self.openai_client = AsyncOpenAI(api_key=api_key)
        else:
            self.openai_client = None
        self.facade = facade
        self.cache = cache
        self.chat_model = settings.openai_chat_model
        self.circuit_breaker = CircuitBreaker("openai")

    @property
    def enabled(self) -> bool:
        return self.openai_client is not None

    async def _generate_openai_json_response(self, system_prompt: str, text: str) -> dict:
        response = await self.openai_client.chat.completions.create(
            model=self.chat_model,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": text},
            ],
        )
        return json.loads(response.choices[0].message.content or "{}")

    async def _extract(self, operation: str, system_prompt: str, text: str, model: Type[C]) -> C:
        """Extraction never raises: any failure yields an empty candidate."""
        if not self.openai_client:
            return model()
        try:
            raw = await self.circuit_breaker.call(self._generate_openai_json_response, system_prompt, text)
            candidate = model.model_validate(raw if isinstance(raw, dict) else {})
            ai_requests_counter.labels(operation=operation, status="success").inc()
            return candidate
        except Exception as e:
            logger.warning(f"AI {operation} failed, treating as no match: {e}")
            ai_requests_counter.labels(operation=operation, status="error").inc()
            return model()

    async def extract_product(self, text: str) -> ProductCandidate:
        return await self._extract("extract_product", EXTRACT_PRODUCT_PROMPT, text, ProductCandidate)

    async def extract_harvest(self, text: str) -> HarvestCandidate:
        return await self._extract("extract_harvest", EXTRACT_HARVEST_PROMPT, text, HarvestCandidate)

    async def extract_quote(self, text: str) -> QuoteCandidate:
        return await self._extract("extract_quote", EXTRACT_QUOTE_PROMPT, text, QuoteCandidate)

    async def extract_order_action(self, text: str) -> OrderActionCandidate:
        return await self._extract("extract_order_action", EXTRACT_ORDER_ACTION_PROMPT, text, OrderActionCandidate)

    async def moderate(self, text: str) -> bool:
        """True when the text is flagged. Failures allow the text through."""
        if not self.openai_client:
            return False
        try:
            res = await self.openai_client.moderations.create(model=settings.openai_moderation_model, input=text)
            flagged = bool(res.results and res.results[0].flagged)
            ai_requests_counter.labels(operation="moderate", status="success").inc()
            return flagged
        except Exception as e:
            logger.warning(f"Moderation failed; allowing text: {e}")
            ai_requests_counter.labels(operation="moderate", status="error").inc()
            return False

    async def answer_with_rag(self, org_id: str, question: str, scopes: Optional[List[str]] = None) -> RagAnswer:
        """Short answer grounded in the organization's indexed records. Raises on upstream failure."""
        scopes = scopes or HELP_SCOPES
        cache_key = f"rag:{org_id}:{','.join(scopes)}:{question.lower().strip()}"
        cached = await self.cache.get(cache_key)
        if cached:
            try:
                return RagAnswer.model_validate_json(cached)
            except ValueError:
                logger.warning(f"Discarding undecodable RAG cache entry {cache_key}")

        contexts = await self.facade.search_knowledge(org_id, question, scopes)
        contexts = contexts[:3]
        if not contexts:
            return RagAnswer(answer=RAG_NO_CONTEXT_ANSWER, citations=[])
        if not self.openai_client:
            raise RuntimeError("AI answers are disabled (no OPENAI_API_KEY)")

        context_text = "\n\n".join(
            f"#{i + 1} {c.get('title') or c.get('scope') or 'context'}:\n{(c.get('content') or '')[:600]}"
            for i, c in enumerate(contexts)
        )
        response = await self.circuit_breaker.call(
            self.openai_client.chat.completions.create,
            model=self.chat_model,
            temperature=0.2,
            messages=[
                {"role": "system", "content": RAG_SYSTEM_PROMPT},
                {"role": "user", "content": RAG_CONTEXT_TEMPLATE.format(context=context_text, question=question)},
            ],
        )
        ai_requests_counter.labels(operation="answer_with_rag", status="success").inc()
        answer = RagAnswer(
            answer=response.choices[0].message.content or "Sorry, I could not answer that.",
            citations=[{"title": c.get("title") or c.get("scope"), "ref_id": c.get("ref_id")} for c in contexts],
        )
        await self.cache.set(cache_key, answer.model_dump_json(), ttl=settings.rag_cache_ttl_seconds)
        return answer


# Globally accessible instance
ai_service = AIService(settings.openai_api_key, marketplace, cache_service)
