"""
Instrumentation agent: CMSAnalytics for Python hosts.

    from src import agent
    agent.init({"apiUrl": ".../api/analytics/track", "domain": "www.example.com"}, context)
    agent.track_event("signup", {"plan": "pro"})

Only one init() per page load is supported. The agent lives in a
module-scoped slot; init() fills it, nothing tears it down.
"""
import logging
from typing import Any, Mapping, Optional

from src.agent.client import AgentConfig, AnalyticsAgent, BrowsingContext, ConfigLike
from src.agent.navigation import DeferredScheduler, History, Location, install_navigation_hooks
from src.agent.session import SESSION_STORAGE_KEY, get_session_id
from src.agent.transport import DetachedSender

logger = logging.getLogger("AnalyticsAgent")

_agent_instance = {"agent": None}


def _coerce_config(config: Optional[ConfigLike]) -> Optional[AgentConfig]:
    if config is None:
        return None
    if isinstance(config, AgentConfig):
        return config if config.api_url and config.domain else None
    return AgentConfig.from_mapping(config)


def init(config: Optional[ConfigLike], context: BrowsingContext, **agent_options) -> Optional[AnalyticsAgent]:
    """
    Start tracking the given browsing context.
    Missing apiUrl/domain is logged and ignored, never raised.
    """
    agent_config = _coerce_config(config)
    if agent_config is None:
        logger.error("CMS Analytics: Missing required config (apiUrl, domain)")
        return None

    if _agent_instance["agent"] is not None:
        logger.warning("CMS Analytics: init() called twice, keeping the first agent")
        return _agent_instance["agent"]

    agent = AnalyticsAgent(agent_config, context, **agent_options)
    _agent_instance["agent"] = agent
    agent.start()
    return agent


def get_agent() -> Optional[AnalyticsAgent]:
    return _agent_instance["agent"]


def track_event(name: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
    agent = _agent_instance["agent"]
    if agent is None:
        logger.error("CMS Analytics: Not initialized. Call init() first.")
        return
    agent.track_event(name, metadata)


def track_page_view(config: Optional[ConfigLike] = None) -> None:
    agent = _agent_instance["agent"]
    if agent is None:
        logger.error("CMS Analytics: Not initialized. Call init() first.")
        return
    override = _coerce_config(config) if config is not None else None
    if config is not None and override is None:
        logger.error("CMS Analytics: Missing required config (apiUrl, domain)")
        return
    agent.track_page_view(override)


def reset() -> None:
    """Forget the current agent (a fresh page load)."""
    _agent_instance["agent"] = None
