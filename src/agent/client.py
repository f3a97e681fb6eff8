import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, MutableMapping, Optional, Union

from src.agent.navigation import DeferredScheduler, History, Location, Schedule, install_navigation_hooks
from src.agent.session import get_session_id
from src.agent.transport import DetachedSender
from src.enrichment.useragent import detect_device

logger = logging.getLogger("AnalyticsAgent.Client")


@dataclass(frozen=True)
class AgentConfig:
    api_url: str
    domain: str
    api_key: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> Optional["AgentConfig"]:
        """Accepts the script's camelCase keys; None if apiUrl or domain is missing."""
        api_url = config.get("apiUrl") or config.get("api_url")
        domain = config.get("domain")
        if not api_url or not domain:
            return None
        return cls(
            api_url=api_url,
            domain=domain,
            api_key=config.get("apiKey") or config.get("api_key"),
            user_id=config.get("userId") or config.get("user_id"),
        )


ConfigLike = Union[AgentConfig, Mapping[str, Any]]


@dataclass
class BrowsingContext:
    """What a page can see about itself: one tab."""
    location: Location
    user_agent: str = ""
    referrer: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    session_storage: MutableMapping[str, str] = field(default_factory=dict)
    history: Optional[History] = None

    def __post_init__(self):
        if self.history is None:
            self.history = History(self.location)

    @property
    def current_location(self) -> Location:
        return self.history.location


class AnalyticsAgent:
    """
    Tracks one browsing context. Builds event payloads and hands them to a
    DetachedSender; nothing here blocks on the network or raises into the host.
    """

    def __init__(
        self,
        config: AgentConfig,
        context: BrowsingContext,
        sender: Optional[DetachedSender] = None,
        schedule: Optional[Schedule] = None
    ):
        self.config = config
        self.context = context
        self.sender = sender or DetachedSender()
        self.schedule = schedule or DeferredScheduler()
        self._started = False

    @property
    def session_id(self) -> str:
        return get_session_id(self.context.session_storage)

    def start(self) -> None:
        """Initial pageview, then observe in-page navigation. Idempotent."""
        if self._started:
            return
        self._started = True
        self.track_page_view()
        install_navigation_hooks(self.context.history, self._on_navigate, self.schedule)

    def _on_navigate(self, path: str) -> None:
        self.track_page_view(path=path)

    def page_view_payload(self, config: AgentConfig, path: Optional[str] = None) -> Dict[str, Any]:
        location = self.context.current_location
        return {
            "eventType": "pageview",
            "domain": config.domain or location.hostname,
            "path": path or location.path,
            "referrer": self.context.referrer or None,
            "userAgent": self.context.user_agent,
            "deviceType": detect_device(self.context.user_agent),
            "screenWidth": self.context.screen_width or None,
            "screenHeight": self.context.screen_height or None,
            "sessionId": self.session_id,
            "userId": config.user_id,
        }

    def custom_event_payload(self, name: str, metadata: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        location = self.context.current_location
        return {
            "eventType": "custom",
            "domain": self.config.domain or location.hostname,
            "path": location.pathname,
            "sessionId": self.session_id,
            "userId": self.config.user_id,
            "metadata": {"eventName": name, **(metadata or {})},
        }

    def _dispatch(self, config: AgentConfig, payload: Dict[str, Any]) -> None:
        try:
            self.sender.send(config.api_url, payload, api_key=config.api_key)
        except Exception as e:
            logger.error(f"Analytics tracking error: {e}")

    def track_page_view(self, config: Optional[AgentConfig] = None, path: Optional[str] = None) -> None:
        config = config or self.config
        self._dispatch(config, self.page_view_payload(config, path))

    def track_event(self, name: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._dispatch(self.config, self.custom_event_payload(name, metadata))
