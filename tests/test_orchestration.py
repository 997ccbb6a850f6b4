"""
Tests for SessionOrchestrator.
"""
from __future__ import annotations

import pytest

from storefront_sync.models.errors import InvalidCredentialsError
from storefront_sync.models.session import SessionStatus
from storefront_sync.orchestration import SessionOrchestrator

from .conftest import EMAIL, PASSWORD


@pytest.fixture
def orchestrator(session, cart, wishlist):
    orchestrator = SessionOrchestrator(session, [cart, wishlist])
    orchestrator.attach()
    yield orchestrator
    orchestrator.detach()


class TestSessionOrchestrator:
    """Tests for store loading and clearing on session transitions."""

    async def test_login_loads_every_store(self, orchestrator, session, cart, wishlist, fake_api):
        """Should fetch both collections after entering AUTHENTICATED."""
        fake_api.seed_cart("p1", 2, price="19.99")
        fake_api.wishlist = [{"resource_id": "wl_1", "product_id": "p3"}]

        await session.login(EMAIL, PASSWORD)
        await orchestrator.wait_for_background_tasks(timeout=1)

        assert [i.product_id for i in cart.items] == ["p1"]
        assert [i.product_id for i in wishlist.items] == ["p3"]
        assert fake_api.count("get_cart") == 1
        assert fake_api.count("get_wishlist") == 1

    async def test_restored_session_loads_stores(self, orchestrator, session, tokens, cart, fake_api):
        fake_api.seed_cart("p1", 1)
        tokens.set_tokens(fake_api.issue_access_token(), "refresh-0")

        await session.initialize()
        await orchestrator.wait_for_background_tasks(timeout=1)

        assert session.status == SessionStatus.AUTHENTICATED
        assert len(cart.items) == 1

    async def test_logout_clears_synchronously(self, orchestrator, session, cart, wishlist, shirt):
        """Stores are empty by the time logout has switched the state."""
        await session.login(EMAIL, PASSWORD)
        await orchestrator.wait_for_background_tasks(timeout=1)
        await cart.add(shirt)
        await wishlist.add(shirt)

        seen = []
        session.subscribe(lambda previous, current: seen.append((current.status, len(cart.items), len(wishlist.items))))
        await session.logout()

        assert seen[0] == (SessionStatus.UNAUTHENTICATED, 0, 0)
        assert cart.items == ()
        assert wishlist.items == ()

    async def test_failed_login_clears_stores(self, orchestrator, session, cart, wishlist):
        await session.login(EMAIL, PASSWORD)
        await orchestrator.wait_for_background_tasks(timeout=1)
        await session.logout()

        with pytest.raises(InvalidCredentialsError):
            await session.login(EMAIL, "wrong")

        assert session.status == SessionStatus.FAILED
        assert cart.items == ()
        assert wishlist.items == ()

    async def test_session_expiry_clears_stores(self, orchestrator, session, cart, shirt, fake_api):
        await session.login(EMAIL, PASSWORD)
        await orchestrator.wait_for_background_tasks(timeout=1)
        await cart.add(shirt)

        session.signal_session_expired("Token revoked")

        assert cart.items == ()

    async def test_load_failure_does_not_escape(self, orchestrator, session, cart, fake_api):
        fake_api.fail_next("get_cart", InvalidCredentialsError())

        await session.login(EMAIL, PASSWORD)
        await orchestrator.wait_for_background_tasks(timeout=1)

        assert cart.error is not None
        assert session.status == SessionStatus.AUTHENTICATED

    async def test_detach_stops_reacting(self, orchestrator, session, cart, fake_api):
        orchestrator.detach()
        assert orchestrator.attached is False

        await session.login(EMAIL, PASSWORD)
        await orchestrator.wait_for_background_tasks(timeout=1)

        assert fake_api.count("get_cart") == 0

    def test_attach_is_idempotent(self, orchestrator, session):
        orchestrator.attach()
        assert orchestrator.attached is True
        assert len(session._listeners) == 1
