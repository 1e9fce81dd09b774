"""
Publishers deliver snapshots to the aggregator.

A publisher is handed the node identity and a complete snapshot. It raises
TransmitError when delivery fails; retrying is left to the publisher
implementation, the scheduler simply moves on to the next tick.
"""

import logging
from typing import Protocol

import requests

from nodeagent.config import AgentConfig
from nodeagent.errors import TransmitError
from nodeagent.models import NodeIdentity, UtilizationSnapshot

log = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(self, identity: NodeIdentity, snapshot: UtilizationSnapshot) -> None: ...


def build_payload(identity: NodeIdentity, snapshot: UtilizationSnapshot) -> dict:
    """Flat JSON record carrying the node identity and its utilization."""
    return {
        **identity.to_dict(),
        **snapshot.to_dict(),
    }


class HttpPublisher:
    """POSTs each snapshot as JSON to the aggregator."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._token = token
        self._session = session or requests.Session()

    def _headers(self, identity: NodeIdentity) -> dict:
        headers = {
            "Content-Type": "application/json",
            "X-Node-Id": identity.node_id,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def publish(self, identity: NodeIdentity, snapshot: UtilizationSnapshot) -> None:
        try:
            resp = self._session.post(
                self.url,
                json=build_payload(identity, snapshot),
                headers=self._headers(identity),
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise TransmitError(f"POST {self.url} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise TransmitError(f"POST {self.url} failed: {e}") from e

        if not resp.ok:
            raise TransmitError(
                f"POST {self.url} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        log.debug("Published cycle %d to %s", snapshot.cycle, self.url)


class LogPublisher:
    """Writes snapshots to the log; used when no aggregator is configured."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or log

    def publish(self, identity: NodeIdentity, snapshot: UtilizationSnapshot) -> None:
        cores = " ".join(f"{p:5.1f}%" for p in snapshot.per_core_percent)
        self._log.info(
            "%s cycle=%d mem=%d/%dMB uptime=%.0fs cores=[%s]",
            identity.host_name,
            snapshot.cycle,
            snapshot.memory_used_mb,
            snapshot.memory_total_mb,
            snapshot.uptime_seconds,
            cores,
        )


def create_publisher(config: AgentConfig) -> Publisher:
    """HTTP publisher when a target is configured, log publisher otherwise."""
    if config.publish_url:
        return HttpPublisher(
            config.publish_url,
            timeout=config.publish_timeout,
            token=config.publish_token,
        )
    return LogPublisher()
