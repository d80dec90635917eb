"""
Remote state fetcher -- reads the chatflow list of one Flowise instance.
"""

from __future__ import annotations

import json
import logging

import requests

from ..errors import DecodeError, RemoteError, TransportError
from ..models import FlowEntity, InstanceConfig

logger = logging.getLogger("flowsync.sync.fetcher")

CHATFLOWS_ENDPOINT = "/api/v1/chatflows"


def chatflows_url(base_url: str) -> str:
    return base_url.rstrip("/") + CHATFLOWS_ENDPOINT


class FlowiseFetcher:
    """Fetches chatflows over HTTP with a bounded timeout.

    Args:
        timeout: Seconds to wait for connect and for each read.
        session: Optional requests session (shared connection pool).
    """

    def __init__(self, timeout: float = 30.0, session=None):
        self.timeout = timeout
        self._http = session or requests

    def fetch(self, instance: InstanceConfig) -> list[FlowEntity]:
        """Fetch every chatflow currently defined on ``instance``.

        Returns:
            Entities in API order. Items without an ``id`` are dropped.

        Raises:
            TransportError: The request failed before a response arrived.
            RemoteError: The API answered with a non-2xx status.
            DecodeError: The body is not a JSON array.
        """
        url = chatflows_url(instance.url)
        headers = {"Accept": "application/json"}
        if instance.api_key:
            headers["Authorization"] = f"Bearer {instance.api_key}"

        try:
            resp = self._http.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc

        body = resp.text
        if not 200 <= resp.status_code < 300:
            logger.error(
                "API response error for %s (HTTP %d)",
                instance.name, resp.status_code,
            )
            raise RemoteError(resp.status_code, body)

        try:
            items = json.loads(body)
        except json.JSONDecodeError as exc:
            logger.error(
                "API did not return valid JSON for %s", instance.name,
            )
            raise DecodeError(body) from exc

        if not isinstance(items, list):
            raise DecodeError(body, "expected a JSON array of chatflows")

        flows = []
        for item in items:
            if not isinstance(item, dict) or item.get("id") in (None, ""):
                logger.warning(
                    "Skipping malformed chatflow entry from %s: %.80r",
                    instance.name, item,
                )
                continue
            flows.append(FlowEntity.from_api(item))

        logger.debug("Fetched %d chatflow(s) from %s", len(flows), instance.name)
        return flows
