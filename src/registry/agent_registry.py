"""Capability registry for worker discovery and health monitoring.

Stores capability cards keyed by name and answers ranked capability queries.
Scoring is keyword based:

    score = 0.6 * (matched query tokens / query tokens)
          + 0.3 * (matched preferred tags / preferred tags)
          + 0.1 if the card is healthy and anything else matched

capped at 1.0. Cards missing a mandatory capability, unhealthy cards and
cards scoring zero are never returned. Ties are broken by the most recent
health check, then by registration order.

Every mutation is announced to subscribed listeners; the persistent wrapper
uses that to know when a save is needed.
"""

import asyncio
import re
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Set

from src.a2a import A2AClient
from src.utils.config import RegistryConfig, get_registry_config
from src.utils.logging.framework import SmartLogger

from .models import (
    AgentMatch,
    CapabilityCard,
    FindAgentQuery,
    HealthStatus,
    RegistryStats,
    utc_now_iso,
)

logger = SmartLogger("registry")

RegistryListener = Callable[[str, Optional[str]], None]

TOKEN_WEIGHT = 0.6
TAG_WEIGHT = 0.3
HEALTH_BONUS = 0.1

_NON_WORD = re.compile(r"[^\w\s]")


def tokenize(text: str) -> Set[str]:
    """Lowercase, strip punctuation and keep tokens longer than two characters."""
    return {token for token in _NON_WORD.sub(" ", text.lower()).split() if len(token) > 2}


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


class AgentRegistry:
    """In-memory capability registry.

    The registry is an explicit object handed to the orchestrator and the
    server; there is no module-level instance.
    """

    def __init__(self, config: Optional[RegistryConfig] = None, client: Optional[A2AClient] = None):
        self.config = config or get_registry_config()
        self._agents: Dict[str, CapabilityCard] = {}
        self._listeners: List[RegistryListener] = []
        self._client = client

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, name: str) -> bool:
        return name in self._agents

    # Change notification

    def subscribe(self, listener: RegistryListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: RegistryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: str, name: Optional[str] = None) -> None:
        for listener in list(self._listeners):
            listener(event, name)

    # Registration

    def register_agent(self, card: CapabilityCard, tags: Optional[List[str]] = None) -> CapabilityCard:
        """Insert or overwrite a card by name.

        The stored tag set is the union of the request tags, the card's own
        tags, each skill name (lowercased) and each skill's tags.
        """
        skill_tags: List[str] = []
        for skill in card.skills:
            skill_tags.append(skill.name.lower())
            skill_tags.extend(skill.tags)

        stored = card.model_copy(deep=True, update={
            "registered_at": utc_now_iso(),
            "health_status": "unknown",
            "last_health_check": None,
            "tags": _dedupe([*(tags or []), *card.tags, *skill_tags]),
        })

        replaced = stored.name in self._agents
        self._agents[stored.name] = stored

        logger.info("agent_registered",
                    operation="register_agent",
                    agent_name=stored.name,
                    url=stored.url,
                    tags=stored.tags,
                    replaced=replaced,
                    total_agents=len(self._agents))
        self._notify("register", stored.name)
        return stored.model_copy(deep=True)

    def unregister_agent(self, name: str) -> bool:
        """Remove a card; returns whether it existed."""
        existed = self._agents.pop(name, None) is not None
        logger.info("agent_unregistered",
                    operation="unregister_agent",
                    agent_name=name,
                    existed=existed)
        if existed:
            self._notify("unregister", name)
        return existed

    def get_agent(self, name: str) -> Optional[CapabilityCard]:
        card = self._agents.get(name)
        return card.model_copy(deep=True) if card else None

    def list_agents(self, tags: Optional[List[str]] = None, healthy_only: bool = False) -> List[CapabilityCard]:
        """All cards, optionally limited to healthy ones and/or ones sharing any of ``tags``."""
        agents = list(self._agents.values())

        if healthy_only:
            agents = [agent for agent in agents if agent.is_healthy]

        if tags:
            wanted = {tag.lower() for tag in tags}
            agents = [agent for agent in agents if any(tag.lower() in wanted for tag in agent.tags)]

        return [agent.model_copy(deep=True) for agent in agents]

    # Discovery

    def _score(self, card: CapabilityCard, query_tokens: Set[str], preferred_tags: List[str]):
        corpus = " ".join([
            card.name,
            card.description,
            *(f"{skill.name} {skill.description}" for skill in card.skills),
            *card.tags,
        ])
        card_tokens = tokenize(corpus)

        score = 0.0
        reasons: List[str] = []

        token_matches = len(query_tokens & card_tokens)
        if token_matches:
            score += TOKEN_WEIGHT * token_matches / len(query_tokens)
            reasons.append(f"{token_matches} keyword matches")

        if preferred_tags:
            card_tags = {tag.lower() for tag in card.tags}
            tag_matches = sum(1 for tag in preferred_tags if tag.lower() in card_tags)
            if tag_matches:
                score += TAG_WEIGHT * tag_matches / len(preferred_tags)
                reasons.append(f"{tag_matches} tag matches")

        # Health alone does not make a card relevant
        if score > 0 and card.is_healthy:
            score += HEALTH_BONUS
            reasons.append("healthy")

        return min(score, 1.0), reasons

    def find_agent(self, query: FindAgentQuery) -> List[AgentMatch]:
        """Rank cards for a free-text query.

        Mandatory capabilities filter, preferred tags only boost.
        """
        query_tokens = tokenize(query.query)
        required = [cap.lower() for cap in query.required_capabilities]

        scored = []
        for order, card in enumerate(self._agents.values()):
            if card.health_status == "unhealthy":
                continue

            if required:
                available = set(card.capability_names())
                if not all(cap in available for cap in required):
                    continue

            score, reasons = self._score(card, query_tokens, query.preferred_tags)
            if score <= 0:
                continue

            if required:
                reasons.append(f"{len(required)}/{len(required)} required capabilities present")

            scored.append((score, card.last_health_check, order, card, ", ".join(reasons) or "partial match"))

        # Stable sorts: registration order, then most recent health check, then score
        scored.sort(key=lambda item: item[2])
        scored.sort(key=lambda item: item[1] or "", reverse=True)
        scored.sort(key=lambda item: item[0], reverse=True)

        results = [
            AgentMatch(agent_card=card.model_copy(deep=True), score=round(score, 4), match_reason=reason)
            for score, _, _, card, reason in scored[:query.limit]
        ]

        logger.info("agent_search_completed",
                    operation="find_agent",
                    query=query.query[:200],
                    required_capabilities=query.required_capabilities,
                    candidates=len(self._agents),
                    matches=len(scored),
                    returned=[match.agent_card.name for match in results])
        return results

    def find_best_agent(self, query: str) -> Optional[AgentMatch]:
        results = self.find_agent(FindAgentQuery(query=query, limit=1))
        return results[0] if results else None

    # Health checking

    def update_health_status(self, name: str, status: HealthStatus) -> None:
        card = self._agents.get(name)
        if card is None:
            return
        card.health_status = status
        card.last_health_check = utc_now_iso()
        logger.info("agent_health_updated", agent_name=name, health_status=status)
        self._notify("health", name)

    def _get_client(self) -> A2AClient:
        if self._client is None:
            self._client = A2AClient()
        return self._client

    async def check_agent_health(self, name: str) -> bool:
        """Probe ``GET {url}/health`` and record the outcome."""
        card = self._agents.get(name)
        if card is None:
            logger.warning("health_check_unknown_agent", agent_name=name)
            return False

        logger.debug("health_check_start", operation="check_agent_health", agent_name=name, url=card.url)
        healthy = await self._get_client().check_health(card.url)
        self.update_health_status(name, "healthy" if healthy else "unhealthy")
        return healthy

    async def check_all_agents_health(self) -> Dict[str, bool]:
        """Probe every registered agent concurrently."""
        names = list(self._agents.keys())
        outcomes = await asyncio.gather(*(self.check_agent_health(name) for name in names))
        results = dict(zip(names, outcomes))

        logger.info("health_check_all_completed",
                    operation="check_all_agents_health",
                    total_agents=len(results),
                    healthy_agents=sum(1 for healthy in results.values() if healthy))
        return results

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    # Statistics

    def get_stats(self) -> RegistryStats:
        agents = list(self._agents.values())
        distribution = Counter(tag for agent in agents for tag in agent.tags)
        return RegistryStats(
            total_agents=len(agents),
            healthy_agents=sum(1 for agent in agents if agent.health_status == "healthy"),
            unhealthy_agents=sum(1 for agent in agents if agent.health_status == "unhealthy"),
            last_updated=utc_now_iso(),
            capability_distribution=dict(distribution),
        )

    # Persistence

    def export_agents(self) -> List[CapabilityCard]:
        return [card.model_copy(deep=True) for card in self._agents.values()]

    def import_agents(self, cards: Iterable[CapabilityCard]) -> None:
        """Replace the whole set with ``cards``; bookkeeping fields are kept as stored."""
        self._agents = {card.name: card.model_copy(deep=True) for card in cards}
        logger.info("agents_imported", operation="import_agents", total_agents=len(self._agents))
        self._notify("import")

    def clear(self) -> None:
        self._agents.clear()
        self._notify("clear")


def create_agent_registry(config: Optional[RegistryConfig] = None,
                          initial_agents: Optional[Iterable[CapabilityCard]] = None) -> AgentRegistry:
    """Create a registry, registering ``initial_agents`` in order."""
    registry = AgentRegistry(config)
    for card in initial_agents or []:
        registry.register_agent(card)
    return registry
