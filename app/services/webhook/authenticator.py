"""Domain allow-list check for inbound provider webhooks.

The provider does not sign webhooks. A request is trusted when any of the
Origin, Referer, X-Forwarded-For or X-Real-IP values names an allow-listed
host (exact or subdomain match). A request carrying none of these headers
is provisionally trusted; the dispatcher then requires the referenced
conversation to exist before touching any state.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from urllib.parse import urlsplit

import structlog

logger = structlog.get_logger(__name__)

URL_HEADERS = ("origin", "referer")
ADDRESS_HEADERS = ("x-forwarded-for", "x-real-ip")


def _host_of(value: str) -> str:
    """Extract a lowercase host from a URL, bare host or host:port value."""
    value = value.strip()
    try:
        if "://" in value:
            host = urlsplit(value).hostname or ""
        else:
            host = urlsplit(f"//{value}").hostname or value
    except ValueError:
        host = value
    return host.strip().rstrip(".").lower()


def _domain_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


class WebhookAuthenticator:
    """Pure decision function over request headers."""

    def __init__(self, allowed_domains: Iterable[str]) -> None:
        self._domains = tuple(d.strip().lower().rstrip(".") for d in allowed_domains if d.strip())

    def candidate_hosts(self, headers: Mapping[str, str]) -> list[str] | None:
        """Hosts named by the relevant headers, or None when no header is present."""
        lowered = {k.lower(): v for k, v in headers.items()}
        present = [h for h in URL_HEADERS + ADDRESS_HEADERS if lowered.get(h)]
        if not present:
            return None

        hosts: list[str] = []
        for name in present:
            raw = lowered[name]
            parts = raw.split(",") if name == "x-forwarded-for" else [raw]
            hosts.extend(h for h in (_host_of(p) for p in parts) if h)
        return hosts

    def is_trusted(self, headers: Mapping[str, str]) -> bool:
        hosts = self.candidate_hosts(headers)
        if hosts is None:
            logger.debug("webhook_origin_absent")
            return True

        for host in hosts:
            if any(_domain_matches(host, d) for d in self._domains):
                logger.debug("webhook_origin_trusted", host=host)
                return True

        logger.warning("webhook_origin_rejected", hosts=hosts)
        return False
