"""HTTP API tests against the ASGI app with test dependencies."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from gembid.api.deps import get_clock, get_notifier, get_repository
from gembid.main import app
from gembid.models import AuctionStatus


@pytest_asyncio.fixture
async def client(repository, clock, notifier):
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def _bid(bidder_id, amount, **extra) -> dict:
    return {"bidderId": str(bidder_id), "amount": str(amount), **extra}


class TestBidEndpoints:
    """Test bid placement responses."""

    @pytest.mark.asyncio
    async def test_accepted_bid(self, client, make_auction):
        auction = await make_auction()
        bidder = uuid4()

        response = await client.post(
            f"/api/v1/auctions/{auction.id}/bids",
            json=_bid(bidder, "100.00", bidderEmail="alice@example.com"),
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["newCurrentBid"]) == Decimal("100.00")
        assert body["bidCount"] == 1
        assert body["highestBidderId"] == str(bidder)
        assert body["extended"] is False
        assert body["buyNow"] is False

    @pytest.mark.asyncio
    async def test_low_bid_conflict(self, client, make_auction):
        auction = await make_auction()

        response = await client.post(
            f"/api/v1/auctions/{auction.id}/bids", json=_bid(uuid4(), "90.00")
        )

        assert response.status_code == 409
        body = response.json()
        assert body["reason"] == "bid_too_low"
        assert Decimal(body["nextMinimumBid"]) == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_closed_auction_conflict(self, client, make_auction, clock):
        auction = await make_auction()
        clock.advance(hours=2)

        response = await client.post(
            f"/api/v1/auctions/{auction.id}/bids", json=_bid(uuid4(), "100.00")
        )

        assert response.status_code == 409
        assert response.json()["reason"] == "auction_not_open"

    @pytest.mark.asyncio
    async def test_unknown_auction(self, client):
        response = await client.post(
            f"/api/v1/auctions/{uuid4()}/bids", json=_bid(uuid4(), "100.00")
        )

        assert response.status_code == 404
        assert response.json()["reason"] == "not_found"

    @pytest.mark.asyncio
    async def test_busy_auction(self, client, make_auction, locks, repository):
        auction = await make_auction()
        repository.lock_timeout = 0.05

        async with locks.hold(auction.id, timeout=1):
            response = await client.post(
                f"/api/v1/auctions/{auction.id}/bids", json=_bid(uuid4(), "100.00")
            )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.json()["reason"] == "timeout"

    @pytest.mark.asyncio
    async def test_max_bid_below_amount_invalid(self, client, make_auction):
        auction = await make_auction()

        response = await client.post(
            f"/api/v1/auctions/{auction.id}/bids",
            json=_bid(uuid4(), "150.00", maxBid="120.00"),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_buy_now(self, client, make_auction):
        auction = await make_auction(buy_now_price=Decimal("400.00"))

        response = await client.post(
            f"/api/v1/auctions/{auction.id}/buy-now", json={"bidderId": str(uuid4())}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["buyNow"] is True
        assert Decimal(body["newCurrentBid"]) == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_buy_now_unavailable(self, client, make_auction):
        auction = await make_auction()

        response = await client.post(
            f"/api/v1/auctions/{auction.id}/buy-now", json={"bidderId": str(uuid4())}
        )

        assert response.status_code == 409
        assert response.json()["reason"] == "buy_now_unavailable"


class TestAuctionReads:
    """Test storefront reads."""

    @pytest.mark.asyncio
    async def test_get_auction(self, client, make_auction, clock):
        auction = await make_auction(reserve_price=Decimal("150.00"))

        response = await client.get(f"/api/v1/auctions/{auction.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(auction.id)
        assert body["status"] == "active"
        assert Decimal(body["nextMinimumBid"]) == Decimal("100.00")
        assert body["reserveMet"] is False

    @pytest.mark.asyncio
    async def test_get_expired_auction_closes_it(self, client, make_auction, clock):
        auction = await make_auction()
        await client.post(f"/api/v1/auctions/{auction.id}/bids", json=_bid(uuid4(), "100.00"))
        clock.advance(hours=2)

        response = await client.get(f"/api/v1/auctions/{auction.id}")

        assert response.status_code == 200
        assert response.json()["status"] == "sold"
        assert response.json()["isActive"] is False

    @pytest.mark.asyncio
    async def test_get_missing_auction(self, client):
        response = await client.get(f"/api/v1/auctions/{uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_with_filter(self, client, make_auction, clock):
        await make_auction()
        await make_auction(
            status=AuctionStatus.SCHEDULED,
            start_time=clock.now() + timedelta(hours=1),
            end_time=clock.now() + timedelta(hours=3),
        )

        response = await client.get("/api/v1/auctions", params={"filter": "upcoming"})

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"page": 1, "limit": 25, "total": 1}
        assert [a["status"] for a in body["data"]] == ["scheduled"]

    @pytest.mark.asyncio
    async def test_bid_history_highest_first(self, client, make_auction):
        auction = await make_auction()
        for amount in ("100.00", "110.00", "125.00"):
            await client.post(f"/api/v1/auctions/{auction.id}/bids", json=_bid(uuid4(), amount))

        response = await client.get(f"/api/v1/auctions/{auction.id}/bids")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert [Decimal(b["amount"]) for b in body["bids"]] == [
            Decimal("125.00"),
            Decimal("110.00"),
            Decimal("100.00"),
        ]
        assert [b["isWinning"] for b in body["bids"]] == [True, False, False]


class TestAuctionAdmin:
    """Test admin create, edit and delete."""

    @pytest.mark.asyncio
    async def test_create_auction(self, client, clock):
        response = await client.post(
            "/api/v1/auctions",
            json={
                "title": "Colombian Emerald",
                "startingBid": "1000.00",
                "bidIncrement": "50.00",
                "buyNowPrice": "5000.00",
                "startTime": (clock.now() - timedelta(minutes=1)).isoformat(),
                "endTime": (clock.now() + timedelta(days=2)).isoformat(),
                "gemstoneType": "emerald",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "active"
        assert body["slug"].startswith("colombian-emerald-")
        assert body["gemstoneType"] == "emerald"

    @pytest.mark.asyncio
    async def test_create_in_past_rejected(self, client, clock):
        response = await client.post(
            "/api/v1/auctions",
            json={
                "title": "Old Opal",
                "startingBid": "10.00",
                "startTime": (clock.now() - timedelta(days=3)).isoformat(),
                "endTime": (clock.now() - timedelta(days=1)).isoformat(),
            },
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_status(self, client, make_auction):
        auction = await make_auction()

        response = await client.put(
            f"/api/v1/auctions/{auction.id}", json={"status": "cancelled"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["isActive"] is False

    @pytest.mark.asyncio
    async def test_update_invalid(self, client, make_auction):
        auction = await make_auction()

        response = await client.put(f"/api/v1/auctions/{auction.id}", json={"status": "sold"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_missing(self, client):
        response = await client.put(f"/api/v1/auctions/{uuid4()}", json={"title": "Jade"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(self, client, make_auction):
        auction = await make_auction()

        response = await client.delete(f"/api/v1/auctions/{auction.id}")
        missing = await client.get(f"/api/v1/auctions/{auction.id}")

        assert response.status_code == 204
        assert missing.status_code == 404


class TestWatcherEndpoints:
    """Test watch, re-watch and unwatch."""

    @pytest.mark.asyncio
    async def test_watch_then_update(self, client, make_auction):
        auction = await make_auction()
        url = f"/api/v1/auctions/{auction.id}/watchers"

        created = await client.post(url, json={"email": "collector@example.com"})
        updated = await client.post(
            url, json={"email": "collector@example.com", "notifyEnding": False}
        )
        listed = await client.get(url)

        assert created.status_code == 201
        assert created.json()["notifyOutbid"] is True
        assert updated.status_code == 200
        assert updated.json()["notifyEnding"] is False
        assert listed.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_watch_missing_auction(self, client):
        response = await client.post(
            f"/api/v1/auctions/{uuid4()}/watchers", json={"email": "collector@example.com"}
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_email(self, client, make_auction):
        auction = await make_auction()

        response = await client.post(
            f"/api/v1/auctions/{auction.id}/watchers", json={"email": "not-an-email"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unwatch(self, client, make_auction):
        auction = await make_auction()
        url = f"/api/v1/auctions/{auction.id}/watchers"
        await client.post(url, json={"email": "collector@example.com"})

        removed = await client.delete(url, params={"email": "collector@example.com"})
        again = await client.delete(url, params={"email": "collector@example.com"})

        assert removed.status_code == 204
        assert again.status_code == 404


class TestBidderEndpoints:
    """Test a bidder's bid history."""

    @pytest.mark.asyncio
    async def test_history_with_stats(self, client, make_auction):
        leading, lost = await make_auction(title="Leading"), await make_auction(title="Lost")
        bidder = uuid4()
        await client.post(f"/api/v1/auctions/{leading.id}/bids", json=_bid(bidder, "100.00"))
        await client.post(f"/api/v1/auctions/{lost.id}/bids", json=_bid(bidder, "100.00"))
        await client.post(f"/api/v1/auctions/{lost.id}/bids", json=_bid(uuid4(), "120.00"))

        response = await client.get(f"/api/v1/bidders/{bidder}/bids", params={"status": "winning"})

        assert response.status_code == 200
        body = response.json()
        assert [b["auction"]["title"] for b in body["bids"]] == ["Leading"]
        assert body["bids"][0]["userStatus"] == "winning"
        assert body["stats"] == {
            "totalBids": 2,
            "activeBids": 2,
            "wonAuctions": 0,
            "currentlyWinning": 1,
        }
        assert (body["total"], body["limit"], body["offset"]) == (1, 50, 0)

    @pytest.mark.asyncio
    async def test_unknown_filter_rejected(self, client):
        response = await client.get(f"/api/v1/bidders/{uuid4()}/bids", params={"status": "paused"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_limit_capped(self, client):
        response = await client.get(f"/api/v1/bidders/{uuid4()}/bids", params={"limit": 500})

        assert response.status_code == 422


class TestOperational:
    """Test health and metrics endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_metrics_exposed(self, client, make_auction):
        auction = await make_auction()
        await client.post(f"/api/v1/auctions/{auction.id}/bids", json=_bid(uuid4(), "100.00"))

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "auction_bids_total" in response.text
        assert 'endpoint="/api/v1/auctions/{id}/bids"' in response.text
