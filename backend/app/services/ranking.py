# backend/app/services/ranking.py
"""
Ranking Scorer
==============

Turns an ordered candidate set into scored recommendations.

Two ranking variants exist:
- HeuristicRanking: position-based scores with templated reasons. Always works.
- DelegatedRanking: asks an external ranking collaborator (an LLM) for a
  strict-JSON ranking. It never raises; it returns a RankingOutcome that
  either carries results or says why it fell back.

RankingScorer is the single place that decides which variant runs.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from app.config import Settings
from app.gateways.base import ProductRecord
from app.services.behavior import BehavioralProfile
from app.services.candidates import Candidate, CandidateSet, RecommendationType
from app.services.llm_router import LLMRouter

logger = logging.getLogger(__name__)

AI_TAG = "ai-powered"
DELEGATED_STRATEGIES = (RecommendationType.PERSONALIZED, RecommendationType.SIMILAR)

PERSONALIZED_WEIGHTS = [
    ("match with preferred categories", 30),
    ("match with usual price band", 25),
    ("match with frequent sizes and colors", 20),
    ("fit with purchase cadence", 15),
    ("perceived value versus budget", 10),
]

SIMILARITY_WEIGHTS = [
    ("same category and subcategory", 40),
    ("price proximity", 25),
    ("color overlap", 15),
    ("size compatibility", 10),
    ("description and style", 10),
]


@dataclass
class RecommendationResult:
    id: str
    name: str
    description: str
    images: List[str]
    category: str
    subcategory: Optional[str]
    price_min: float
    price_max: float
    score: float
    confidence: float
    reason: str
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_product(cls, product: ProductRecord, score: float, confidence: float,
                     reason: str, tags: List[str]) -> "RecommendationResult":
        prices = product.prices
        return cls(
            id=product.id,
            name=product.name,
            description=product.description or "",
            images=list(product.images),
            category=product.category,
            subcategory=product.subcategory,
            price_min=min(prices) if prices else 0.0,
            price_max=max(prices) if prices else 0.0,
            score=score,
            confidence=confidence,
            reason=reason,
            tags=tags,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["price"] = {"min": data.pop("price_min"), "max": data.pop("price_max")}
        return data


@dataclass
class RankingContext:
    strategy: RecommendationType
    limit: int
    min_confidence: float = 0.3
    tenant_id: Optional[str] = None


@dataclass
class RankingOutcome:
    """Either ranked results or the reason the variant could not produce them."""
    results: Optional[List[RecommendationResult]] = None
    fallback_reason: Optional[str] = None

    @classmethod
    def fallback(cls, reason: str) -> "RankingOutcome":
        return cls(results=None, fallback_reason=reason)


def sort_by_score(results: List[RecommendationResult]) -> List[RecommendationResult]:
    # sorted() is stable: equal scores keep candidate order
    return sorted(results, key=lambda r: r.score, reverse=True)


def clamp(value: Any) -> float:
    return max(0.0, min(1.0, float(value)))


class Ranking(ABC):
    @abstractmethod
    async def rank(self, candidates: CandidateSet, ctx: RankingContext) -> RankingOutcome:
        pass


# ---------------------------------------------------------------------------
# Heuristic
# ---------------------------------------------------------------------------

class HeuristicRanking(Ranking):
    """score = max(0.1, min(1, (N - i) / N)) down the candidate order."""

    @staticmethod
    def position_score(index: int, total: int) -> float:
        return max(0.1, min(1.0, (total - index) / total))

    @staticmethod
    def reason_for(strategy: RecommendationType, candidate: Candidate,
                   base_product: Optional[ProductRecord]) -> str:
        if strategy == RecommendationType.BESTSELLER:
            return f"Producto más vendido con {candidate.units_sold or 0} unidades vendidas"
        if strategy == RecommendationType.SIMILAR:
            return f"Similar a {base_product.name}" if base_product else "Producto similar"
        if strategy == RecommendationType.PERSONALIZED:
            return "Recomendado basado en tu historial de compras"
        return "Producto recién agregado"

    async def rank(self, candidates: CandidateSet, ctx: RankingContext) -> RankingOutcome:
        return RankingOutcome(results=self.rank_now(candidates, ctx))

    def rank_now(self, candidates: CandidateSet, ctx: RankingContext) -> List[RecommendationResult]:
        total = len(candidates.candidates)
        results = []
        for index, candidate in enumerate(candidates.candidates):
            score = self.position_score(index, total)
            results.append(RecommendationResult.from_product(
                candidate.product,
                score=score,
                confidence=score,
                reason=self.reason_for(candidates.strategy, candidate, candidates.base_product),
                tags=[candidates.strategy.value],
            ))
        return sort_by_score(results)[:ctx.limit]


# ---------------------------------------------------------------------------
# Delegated (external collaborator)
# ---------------------------------------------------------------------------

@dataclass
class RankingRequest:
    task_type: str
    system_role: str
    candidate_summaries: List[Dict[str, Any]]
    context_summary: Dict[str, Any]
    weights: List[Any]
    limit: int
    tenant_id: Optional[str] = None


class RankingClient(ABC):
    """The external ranking collaborator. Returns raw response text."""

    @abstractmethod
    async def rank(self, request: RankingRequest) -> str:
        pass


class LLMRankingClient(RankingClient):
    def __init__(self, router: LLMRouter):
        self.router = router

    @staticmethod
    def build_prompt(request: RankingRequest) -> str:
        criteria = "\n".join(
            f"{i}. {label} ({weight}%)" for i, (label, weight) in enumerate(request.weights, start=1)
        )
        return (
            f"Context:\n{json.dumps(request.context_summary, indent=2, default=str)}\n\n"
            f"Candidate products:\n{json.dumps(request.candidate_summaries, indent=2, default=str)}\n\n"
            f"Return ONLY a JSON object with the top {request.limit} products, in this shape:\n"
            '{"recommendations": [{"productId": "<id>", "score": 0.95, '
            '"reason": "<why it fits, in Spanish>", "confidence": 0.9}]}\n\n'
            f"Ranking criteria:\n{criteria}\n"
            "Only use productId values from the candidate list."
        )

    async def rank(self, request: RankingRequest) -> str:
        response = await self.router.complete(
            task_type=request.task_type,
            system_prompt=request.system_role,
            user_prompt=self.build_prompt(request),
            tenant_id=request.tenant_id,
        )
        return response['content']


def _product_summary(product: ProductRecord) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "category": product.category,
        "subcategory": product.subcategory,
        "description": product.description,
        "prices": product.prices,
        "avgPrice": product.average_price,
        "colors": product.colors,
        "sizes": product.sizes,
    }


def _profile_summary(profile: Optional[BehavioralProfile]) -> Dict[str, Any]:
    if profile is None:
        return {}
    return {
        "preferredCategories": profile.preferred_categories,
        "averageOrderValue": round(profile.average_order_value, 2),
        "frequentSizes": profile.frequent_sizes,
        "frequentColors": profile.frequent_colors,
        "pricePreference": profile.price_preference,
        "purchaseFrequency": profile.purchase_frequency,
    }


def build_ranking_request(candidates: CandidateSet, ctx: RankingContext) -> RankingRequest:
    summaries = [_product_summary(c.product) for c in candidates.candidates]
    if candidates.strategy == RecommendationType.SIMILAR:
        base = candidates.base_product
        return RankingRequest(
            task_type="similarity_ranking",
            system_role=(
                "You are a fashion product expert. Compare products on objective "
                "characteristics and rank the candidates by similarity to the base product."
            ),
            candidate_summaries=summaries,
            context_summary={"baseProduct": _product_summary(base) if base else {}},
            weights=SIMILARITY_WEIGHTS,
            limit=ctx.limit,
            tenant_id=ctx.tenant_id,
        )
    return RankingRequest(
        task_type="personalized_ranking",
        system_role=(
            "You are a fashion recommendation expert. Study the customer profile "
            "and rank the candidate products for this customer."
        ),
        candidate_summaries=summaries,
        context_summary={"customer": _profile_summary(candidates.profile)},
        weights=PERSONALIZED_WEIGHTS,
        limit=ctx.limit,
        tenant_id=ctx.tenant_id,
    )


def parse_ranking_response(text: Optional[str]) -> List[Dict[str, Any]]:
    """
    Extract the recommendations list from collaborator output.

    Raises ValueError on anything that is not the expected JSON shape.
    """
    if not text or not text.strip():
        raise ValueError("empty response")

    content = text.strip()
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]

    data = json.loads(content)
    if not isinstance(data, dict) or not isinstance(data.get("recommendations"), list):
        raise ValueError("missing 'recommendations' list")
    return data["recommendations"]


class DelegatedRanking(Ranking):
    """Ranking by the external collaborator, bounded by a timeout."""

    def __init__(self, client: RankingClient, timeout_seconds: float = 8.0):
        self.client = client
        self.timeout_seconds = timeout_seconds

    async def rank(self, candidates: CandidateSet, ctx: RankingContext) -> RankingOutcome:
        request = build_ranking_request(candidates, ctx)

        try:
            text = await asyncio.wait_for(self.client.rank(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            return RankingOutcome.fallback(f"timed out after {self.timeout_seconds}s")
        except Exception as e:
            return RankingOutcome.fallback(f"collaborator error: {type(e).__name__}: {e}")

        try:
            items = parse_ranking_response(text)
        except (ValueError, TypeError) as e:
            return RankingOutcome.fallback(f"malformed response: {e}")

        by_id = {c.product.id: c.product for c in candidates.candidates}
        seen = set()
        results: List[RecommendationResult] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            product_id = item.get("productId")
            if not isinstance(product_id, str):
                continue
            product = by_id.get(product_id)
            if product is None or product.id in seen:
                continue
            try:
                score = clamp(item.get("score", 0))
                confidence = clamp(item.get("confidence", score))
            except (TypeError, ValueError):
                continue
            if confidence < ctx.min_confidence:
                continue
            seen.add(product.id)
            reason = item.get("reason") if isinstance(item.get("reason"), str) else None
            results.append(RecommendationResult.from_product(
                product,
                score=score,
                confidence=confidence,
                reason=reason or HeuristicRanking.reason_for(
                    candidates.strategy, Candidate(product=product), candidates.base_product
                ),
                tags=[candidates.strategy.value, AI_TAG],
            ))

        if not results:
            return RankingOutcome.fallback("no usable recommendations in response")
        return RankingOutcome(results=sort_by_score(results)[:ctx.limit])


# ---------------------------------------------------------------------------
# Decision point
# ---------------------------------------------------------------------------

class RankingScorer:
    def __init__(self, heuristic: Optional[HeuristicRanking] = None,
                 delegated: Optional[DelegatedRanking] = None):
        self.heuristic = heuristic or HeuristicRanking()
        self.delegated = delegated

    def choose(self, candidates: CandidateSet) -> Ranking:
        if self.delegated is not None and candidates.strategy in DELEGATED_STRATEGIES:
            return self.delegated
        return self.heuristic

    async def score(self, candidates: CandidateSet, ctx: RankingContext) -> List[RecommendationResult]:
        if not candidates.candidates:
            return []

        ranking = self.choose(candidates)
        outcome = await ranking.rank(candidates, ctx)
        if outcome.results is None:
            logger.warning(
                f"Delegated {candidates.strategy.value} ranking unavailable "
                f"(tenant={ctx.tenant_id}), using heuristic: {outcome.fallback_reason}"
            )
            return self.heuristic.rank_now(candidates, ctx)
        return outcome.results


def build_ranking_scorer(settings: Settings) -> RankingScorer:
    if not settings.delegated_ranking_enabled:
        logger.debug("No LLM provider key configured, delegated ranking disabled")
        return RankingScorer()
    client = LLMRankingClient(LLMRouter(settings))
    return RankingScorer(delegated=DelegatedRanking(client, timeout_seconds=settings.RANKING_TIMEOUT_SECONDS))
