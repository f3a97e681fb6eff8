"""
In-page navigation for one browsing context, and the hooks that observe it.

History mirrors the browser's session history: push_state/replace_state
change the URL without a page load, back/forward fire "popstate".
install_navigation_hooks wraps the two mutation primitives so the host's
calls behave exactly as before and a pageview is scheduled afterwards.
"""
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional
from urllib.parse import urljoin, urlsplit

logger = logging.getLogger("AnalyticsAgent.Navigation")

Schedule = Callable[[Callable[[], None]], None]


@dataclass
class Location:
    hostname: str
    pathname: str = "/"
    search: str = ""

    @property
    def path(self) -> str:
        return self.pathname + self.search

    @property
    def href(self) -> str:
        return f"https://{self.hostname}{self.path}"

    @classmethod
    def from_url(cls, url: str) -> "Location":
        parts = urlsplit(url)
        return cls(
            hostname=parts.hostname or "",
            pathname=parts.path or "/",
            search=f"?{parts.query}" if parts.query else "",
        )


class History:
    def __init__(self, location: Location):
        self.location = location
        self._entries: List[Location] = [Location(**vars(location))]
        self._index = 0
        self._popstate_listeners: List[Callable[[Location], None]] = []

    def _navigate(self, url: Optional[str]) -> Location:
        if url is None:
            return Location(**vars(self.location))
        target = Location.from_url(urljoin(self.location.href, url))
        target.hostname = self.location.hostname
        return target

    def push_state(self, state: Any = None, title: str = "", url: Optional[str] = None) -> None:
        target = self._navigate(url)
        del self._entries[self._index + 1:]
        self._entries.append(target)
        self._index += 1
        self.location = Location(**vars(target))

    def replace_state(self, state: Any = None, title: str = "", url: Optional[str] = None) -> None:
        target = self._navigate(url)
        self._entries[self._index] = target
        self.location = Location(**vars(target))

    def go(self, delta: int) -> None:
        index = self._index + delta
        if delta == 0 or not 0 <= index < len(self._entries):
            return
        self._index = index
        self.location = Location(**vars(self._entries[index]))
        for listener in list(self._popstate_listeners):
            listener(self.location)

    def back(self) -> None:
        self.go(-1)

    def forward(self) -> None:
        self.go(1)

    def add_popstate_listener(self, listener: Callable[[Location], None]) -> None:
        self._popstate_listeners.append(listener)


class DeferredScheduler:
    """
    Runs callbacks shortly after they are scheduled, off the caller's
    thread, so navigation calls return before any tracking work happens.
    """

    def __init__(self, executor: Optional[ThreadPoolExecutor] = None):
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="analytics-nav")

    def __call__(self, callback: Callable[[], None]) -> None:
        future = self._executor.submit(callback)
        future.add_done_callback(_log_callback_failure)


def _log_callback_failure(future) -> None:
    error = future.exception()
    if error is not None:
        logger.error(f"Analytics navigation callback failed: {error}")


def install_navigation_hooks(
    history: History,
    on_navigate: Callable[[str], None],
    schedule: Schedule
) -> None:
    """
    Observe in-page navigation. After every push_state/replace_state, and on
    every popstate, schedule on_navigate(path) with the path the call left
    behind, not the path at the time the callback eventually runs.
    The originals are captured here and always called first.
    """
    def observe(original: Callable[..., None]) -> Callable[..., None]:
        @functools.wraps(original)
        def wrapper(*args, **kwargs):
            result = original(*args, **kwargs)
            path = history.location.path
            schedule(functools.partial(on_navigate, path))
            return result
        return wrapper

    history.push_state = observe(history.push_state)
    history.replace_state = observe(history.replace_state)
    history.add_popstate_listener(
        lambda location: schedule(functools.partial(on_navigate, location.path))
    )
