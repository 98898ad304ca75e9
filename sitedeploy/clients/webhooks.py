"""HTTP integrations: Cloudflare purge, Sentry releases, Slack webhook."""

import httpx

from sitedeploy.utils.logging import get_logger

logger = get_logger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 10.0


class CloudflareEdgeCache:
    """Purges an entire Cloudflare zone."""

    def __init__(
        self,
        base_url: str = "https://api.cloudflare.com/client/v4",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._transport = transport

    async def purge(self, zone_id: str, token: str) -> None:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=_DEFAULT_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            response = await client.post(
                f"/zones/{zone_id}/purge_cache",
                headers={"Authorization": f"Bearer {token}"},
                json={"purge_everything": True},
            )
            response.raise_for_status()
            body = response.json()
            if not body.get("success", False):
                raise RuntimeError(f"Cloudflare purge rejected: {body.get('errors')}")


class SentryReleases:
    """Creates Sentry releases keyed by commit sha."""

    def __init__(
        self,
        base_url: str = "https://sentry.io",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._transport = transport

    async def create_release(
        self, project: str, org: str, version: str, token: str
    ) -> None:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=_DEFAULT_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            response = await client.post(
                f"/api/0/organizations/{org}/releases/",
                headers={"Authorization": f"Bearer {token}"},
                json={"version": version, "projects": [project]},
            )
            response.raise_for_status()


class SlackWebhook:
    """Posts plain-text messages to a Slack incoming webhook."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    async def post(self, webhook_url: str, message: str) -> None:
        async with httpx.AsyncClient(
            timeout=_DEFAULT_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            response = await client.post(webhook_url, json={"text": message})
            response.raise_for_status()
