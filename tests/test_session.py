"""
Tests for SessionGate and SessionContext
"""

import pytest

from bulk_delete.api import StatsApi
from bulk_delete.context import SessionContext
from bulk_delete.models import Connectivity, Phase
from bulk_delete.session import SessionGate
from conftest import MockHttpSession, MockResponse, make_stats_payload


def make_gate(context, opened=None) -> SessionGate:
    opened = opened if opened is not None else []
    return SessionGate(context, opener=lambda url: opened.append(url) or True)


@pytest.mark.asyncio
class TestProbe:
    """Tests for the authentication probe"""

    async def test_probe_authenticates(self, context):
        """Successful probe captures the address, snapshot and opens the channel"""
        gate = make_gate(context)

        assert await gate.probe() is True
        assert gate.authenticated
        assert context.user_email == "me@example.com"
        assert context.snapshots.snapshot.total_messages == 1000
        assert await context.channel.wait_connected(timeout=1)

        await context.teardown()

    async def test_probe_missing_profile(self, config, mock_socket):
        """Missing profile falls back to Unknown"""
        body = make_stats_payload()
        del body["profile"]
        api = StatsApi(config, session=MockHttpSession({("GET", "/api/stats"): MockResponse(200, body)}))
        context = SessionContext(config, api=api, client_factory=lambda: mock_socket)

        assert await make_gate(context).probe() is True
        assert context.user_email == "Unknown"
        await context.teardown()

    async def test_probe_non_object_profile(self, config, mock_socket):
        """A profile that is not an object is treated as missing"""
        body = make_stats_payload()
        body["profile"] = "me@example.com"
        api = StatsApi(config, session=MockHttpSession({("GET", "/api/stats"): MockResponse(200, body)}))
        context = SessionContext(config, api=api, client_factory=lambda: mock_socket)

        assert await make_gate(context).probe() is True
        assert context.user_email == "Unknown"
        assert context.snapshots.snapshot.total_messages == 1000
        await context.teardown()

    async def test_probe_unauthorized(self, config, mock_socket):
        """Non-2xx means unauthenticated and no channel"""
        events = []

        async def capture(event, data):
            events.append(event)

        api = StatsApi(config, session=MockHttpSession({("GET", "/api/stats"): MockResponse(401, {"error": "no"})}))
        context = SessionContext(config, api=api, client_factory=lambda: mock_socket)
        context.set_progress_callback(capture)
        gate = make_gate(context)

        assert await gate.probe() is False
        assert not gate.authenticated
        assert not context.channel.is_open
        assert mock_socket.connect_count == 0
        assert "auth_required" in events

    async def test_probe_transport_failure_is_auth_required(self, config, mock_socket, transport_error):
        """Network failure on the probe is treated as signed out"""
        api = StatsApi(config, session=MockHttpSession({("GET", "/api/stats"): transport_error}))
        context = SessionContext(config, api=api, client_factory=lambda: mock_socket)

        assert await make_gate(context).probe() is False
        assert context.snapshots.snapshot is None

    async def test_failed_reprobe_clears_state(self, config, mock_socket, stats_payload):
        """Losing authentication clears snapshot, registry and channel"""
        session = MockHttpSession({("GET", "/api/stats"): [MockResponse(200, stats_payload), MockResponse(401)]})
        api = StatsApi(config, session=session)
        context = SessionContext(config, api=api, client_factory=lambda: mock_socket, confirm=lambda c: True)
        gate = make_gate(context)

        await gate.probe()
        await context.channel.wait_connected(timeout=1)
        await context.delete("promotions")
        assert context.orchestrator.active == {"promotions"}

        assert await gate.probe() is False
        assert context.snapshots.snapshot is None
        assert context.orchestrator.operations == {}
        assert context.channel.connectivity == Connectivity.DISCONNECTED
        assert mock_socket.shutdown_called

    async def test_probe_malformed_stats_still_authenticates(self, config, mock_socket):
        """Bad stats are a notice, not a sign-out"""
        body = {"profile": {"emailAddress": "me@example.com"}, "stats": "broken"}
        api = StatsApi(config, session=MockHttpSession({("GET", "/api/stats"): MockResponse(200, body)}))
        context = SessionContext(config, api=api, client_factory=lambda: mock_socket)

        assert await make_gate(context).probe() is True
        assert context.snapshots.snapshot is None
        await context.teardown()


class TestLogin:

    def test_login_opens_auth_endpoint(self, context):
        opened = []
        url = make_gate(context, opened).login()

        assert url == "http://bulk.test/auth/gmail"
        assert opened == [url]
        assert context.channel.connectivity == Connectivity.DISCONNECTED


@pytest.mark.asyncio
class TestLogout:
    """Tests for logout"""

    async def test_logout_tears_down(self, context, mock_http_session):
        gate = make_gate(context)
        await gate.probe()
        await context.channel.wait_connected(timeout=1)
        await context.delete("promotions")

        await gate.logout()

        assert ("POST", "/api/logout") in mock_http_session.calls
        assert not gate.authenticated
        assert context.user_email == ""
        assert context.snapshots.snapshot is None
        assert context.orchestrator.active == set()
        assert not context.channel.is_open
        assert context.api.cookie_header() is None

    async def test_logout_failure_still_local(self, config, mock_socket, stats_payload, transport_error):
        """Local logout happens even when the request fails"""
        session = MockHttpSession({
            ("GET", "/api/stats"): MockResponse(200, stats_payload),
            ("POST", "/api/logout"): transport_error,
        })
        context = SessionContext(config, api=StatsApi(config, session=session), client_factory=lambda: mock_socket)
        gate = make_gate(context)
        await gate.probe()

        await gate.logout()

        assert not gate.authenticated
        assert not context.channel.is_open
        assert context.snapshots.snapshot is None


@pytest.mark.asyncio
class TestContext:
    """Tests for SessionContext actions"""

    async def test_delete_rejection_becomes_notice(self, context):
        """Taxonomy errors are surfaced as notices, not raised"""
        notices = []

        async def capture(event, data):
            if event == "notice":
                notices.append(data["message"])

        context.set_progress_callback(capture)
        assert await context.delete("promotions") is False
        assert notices == ["Real-time connection not available. Please try again once reconnected."]

    async def test_complete_refreshes_and_prunes(self, config, mock_socket, stats_payload):
        """Completion refreshes the snapshot, which supersedes the Complete state"""
        after = make_stats_payload(categories={"social": {"count": 250, "percentage": 25}}, total=600)
        session = MockHttpSession({("GET", "/api/stats"): [MockResponse(200, stats_payload), MockResponse(200, after)]})
        context = SessionContext(config, api=StatsApi(config, session=session),
                                 client_factory=lambda: mock_socket, confirm=lambda c: True)
        await make_gate(context).probe()
        await context.channel.wait_connected(timeout=1)

        assert await context.delete("promotions") is True
        await mock_socket.push("progress", {"category": "promotions", "deleted": 150})
        await mock_socket.push("complete", {"category": "promotions", "totalDeleted": 400})
        assert context.orchestrator.state("promotions").phase == Phase.COMPLETE

        await context.orchestrator.wait_refreshes()

        assert context.snapshots.snapshot.total_messages == 600
        assert context.orchestrator.state("promotions") is None
        await context.teardown()

    async def test_user_count(self, context):
        assert await context.load_user_count() == 42

    async def test_user_count_failure_ignored(self, config, mock_socket):
        api = StatsApi(config, session=MockHttpSession({("GET", "/api/user-count"): MockResponse(500)}))
        context = SessionContext(config, api=api, client_factory=lambda: mock_socket)

        assert await context.load_user_count() == 0
