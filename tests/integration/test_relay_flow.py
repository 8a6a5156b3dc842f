"""
Integration tests for the subscription and relay flow.

A client subscribes to a rewritten configuration, then calls one of the
rewritten api endpoints, which the relay forwards upstream.
"""

import json

import httpx
import pytest

from shared.config import ServiceConfig
from service_relay.app.main import create_app
from service_relay.app.transform import base58


RELAY_URL = "http://relay.example.com"

SOURCE_DOCUMENT = {
    "cache_time": 7200,
    "api_site": {
        "alpha": {"api": "https://alpha.example.com/api.php/provide/vod", "name": "Alpha"},
        "beta": {"api": "https://beta.example.com/api", "name": "Beta"},
    },
}


class TestRelayFlow:
    """End-to-end flow through an in-process relay."""

    @pytest.fixture
    def upstream_calls(self):
        return []

    @pytest.fixture
    def app(self, upstream_calls):
        """Relay wired to fake source and fake api upstreams."""

        def sources(request):
            return httpx.Response(200, json=SOURCE_DOCUMENT)

        def upstream(request):
            upstream_calls.append(request)
            return httpx.Response(
                200,
                json={"list": [{"vod_name": "demo"}], "host": request.url.host},
                headers={"Set-Cookie": "tracking=1"},
            )

        config = ServiceConfig(
            service_name="relay",
            source_urls={"full": "https://config.example.com/full.json"},
        )
        return create_app(
            config,
            proxy_transport=httpx.MockTransport(upstream),
            source_transport=httpx.MockTransport(sources),
        )

    @pytest.mark.asyncio
    async def test_subscribe_then_call_rewritten_endpoint(self, app, upstream_calls):
        """Rewritten api urls route back through the relay to the original host."""
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url=RELAY_URL) as client:
            subscription = await client.get("/", params={"format": "proxy"})
            assert subscription.status_code == 200

            api = subscription.json()["api_site"]["alpha"]["api"]
            assert api == f"{RELAY_URL}/?url=https://alpha.example.com/api.php/provide/vod"

            response = await client.get(api + "?ac=list&pg=1")

        assert response.status_code == 200
        assert response.json() == {"list": [{"vod_name": "demo"}], "host": "alpha.example.com"}
        assert "set-cookie" not in response.headers
        assert str(upstream_calls[0].url) == "https://alpha.example.com/api.php/provide/vod?ac=list&pg=1"

    @pytest.mark.asyncio
    async def test_encoded_subscription_matches_json(self, app):
        """The base58 subscription decodes to the JSON subscription."""
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url=RELAY_URL) as client:
            plain = await client.get("/?format=1")
            encoded = await client.get("/?format=3")

        assert json.loads(base58.decode(encoded.text).decode("utf-8")) == plain.json()

    @pytest.mark.asyncio
    async def test_private_target_never_reaches_upstream(self, app, upstream_calls):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url=RELAY_URL) as client:
            response = await client.get("/?url=http://192.168.0.5/admin")

        assert response.status_code == 403
        assert upstream_calls == []
