"""HTTP request runner (httpx)."""

from __future__ import annotations

import logging

import httpx

from taskspine.core.tasks.models import HttpTask, Output, Task

logger = logging.getLogger(__name__)


class HttpTaskRunner:
    """Issue ``task.method task.url`` with ``task.client_options`` as request kwargs.

    Non-2xx responses and transport errors produce error outputs rather
    than exceptions.

    Example:
        >>> runner = HttpTaskRunner(httpx.Client(timeout=10))
        >>> runner.run(HttpTask("ping", url="https://example.org/health")).is_error
        False
    """

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client()
        return self._client

    def supports(self, task: Task) -> bool:
        return isinstance(task, HttpTask)

    def run(self, task: Task) -> Output:
        try:
            response = self.client.request(task.method, task.url, **task.client_options)
        except httpx.HTTPError as e:
            logger.debug(f"HTTP task '{task.name}' failed: {e}")
            return Output(task, str(e), is_error=True)

        if not response.is_success:
            return Output(task, f"HTTP {response.status_code}: {response.text}", is_error=True)
        return Output(task, response.text if task.is_output else None)
