import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger("AnalyticsAgent.Transport")


class DetachedSender:
    """
    One POST per event, never awaited by the caller.

    send() hands the request to a background executor and returns at once.
    Whatever happens next (network error, non-2xx answer) is logged and
    dropped: no retry, no exception into the host.
    The requests.Session keeps cookies, so a first-party session rides along.
    """

    def __init__(
        self,
        http: Optional[requests.Session] = None,
        executor: Optional[ThreadPoolExecutor] = None
    ):
        self.http = http or requests.Session()
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="analytics-send")

    def _post(self, url: str, payload: Dict[str, Any], api_key: Optional[str]) -> int:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        response = self.http.post(url, json=payload, headers=headers)
        if not response.ok:
            logger.warning(f"Analytics endpoint answered {response.status_code}: {response.text[:200]}")
        return response.status_code

    def send(self, url: str, payload: Dict[str, Any], api_key: Optional[str] = None) -> Future:
        try:
            future = self._executor.submit(self._post, url, payload, api_key)
        except RuntimeError as e:
            # executor already shut down
            logger.error(f"Analytics tracking error: {e}")
            future = Future()
            future.set_exception(e)
            return future
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Analytics tracking error: {error}")

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.http.close()
