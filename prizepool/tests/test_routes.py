"""
HTTP contract: auth, ownership, the error envelope and an end-to-end
tournament run through the API.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from prizepool.orm import TournamentStatus


def _create_body(**overrides):
    body = {
        "title": "Friday Night Cup",
        "entry_fee_per_person": "100.00",
        "prize_distribution": [{"rank": 1, "percent": 100}],
        "min_teams": 2,
        "start_date": (datetime.now(timezone.utc) + timedelta(days=2)).isoformat(),
    }
    body.update(overrides)
    return body


def _assert_envelope(response, status_code, code):
    assert response.status_code == status_code
    data = response.json()
    assert data["success"] is False
    assert data["code"] == code
    assert "message" in data
    return data


# =============================================================================
# Auth and ownership
# =============================================================================

class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.post("/api/tournaments", json=_create_body())
        _assert_envelope(response, 401, "AUTH_REQUIRED")

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/api/wallet/me", headers={"Authorization": "Bearer not-a-jwt"})
        _assert_envelope(response, 401, "AUTH_INVALID")

    @pytest.mark.asyncio
    async def test_player_cannot_create(self, client, token_for):
        response = await client.post("/api/tournaments", json=_create_body(), headers=token_for("p1", "PLAYER"))
        data = _assert_envelope(response, 403, "PERMISSION_DENIED")
        assert data["details"] == {"current_role": "PLAYER"}

    @pytest.mark.asyncio
    async def test_organizer_owns_what_they_create(self, client, token_for):
        response = await client.post(
            "/api/tournaments",
            json=_create_body(organizer_id="someone-else"),
            headers=token_for("org-7", "ORGANIZER"),
        )
        assert response.status_code == 201
        assert response.json()["tournament"]["organizer_id"] == "org-7"
        assert response.json()["tournament"]["status"] == "DRAFT"

    @pytest.mark.asyncio
    async def test_organizer_cannot_touch_other_tournaments(self, client, factory, token_for):
        tournament = await factory.tournament(organizer_id="org-1")

        response = await client.post(
            f"/api/tournaments/{tournament.id}/transition",
            json={"status": "OPEN"},
            headers=token_for("org-2", "ORGANIZER"),
        )

        _assert_envelope(response, 403, "PERMISSION_DENIED")

    @pytest.mark.asyncio
    async def test_override_is_superadmin_only(self, client, factory, token_for):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)

        response = await client.post(
            f"/api/matches/{match.id}/override",
            json={"reason": "Admins cannot do this"},
            headers=token_for("admin-1", "ADMIN"),
        )

        _assert_envelope(response, 403, "PERMISSION_DENIED")


# =============================================================================
# Error envelope
# =============================================================================

class TestErrorEnvelope:
    @pytest.mark.asyncio
    async def test_invalid_transition_lists_allowed(self, client, factory, token_for):
        tournament = await factory.tournament(status=TournamentStatus.DRAFT)

        response = await client.post(
            f"/api/tournaments/{tournament.id}/transition",
            json={"status": "COMPLETED"},
            headers=token_for("admin-1", "ADMIN"),
        )

        data = _assert_envelope(response, 409, "INVALID_TRANSITION")
        assert data["error"] == "StateConflict"
        assert data["details"] == {
            "current_status": "DRAFT",
            "requested_status": "COMPLETED",
            "allowed": ["OPEN"],
        }

    @pytest.mark.asyncio
    async def test_insufficient_teams(self, client, factory, token_for):
        tournament = await factory.tournament(status=TournamentStatus.OPEN, min_teams=3)
        await factory.team(tournament.id, ["a"])

        response = await client.post(
            f"/api/tournaments/{tournament.id}/transition",
            json={"status": "LIVE"},
            headers=token_for("org-1", "ORGANIZER"),
        )

        data = _assert_envelope(response, 422, "INSUFFICIENT_TEAMS")
        assert data["details"] == {"required": 3, "actual": 1}

    @pytest.mark.asyncio
    async def test_not_found(self, client):
        response = await client.get("/api/tournaments/9999")
        _assert_envelope(response, 404, "TOURNAMENT_NOT_FOUND")

    @pytest.mark.asyncio
    async def test_request_validation(self, client, token_for):
        response = await client.post(
            "/api/tournaments",
            json=_create_body(prize_distribution=[{"rank": 1, "percent": 80}, {"rank": 2, "percent": 30}]),
            headers=token_for("admin-1", "ADMIN"),
        )
        data = _assert_envelope(response, 422, "VALIDATION_ERROR")
        assert isinstance(data["details"], list)

    @pytest.mark.asyncio
    async def test_short_override_reason(self, client, factory, token_for):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)
        await client.post(f"/api/matches/{match.id}/lock", headers=token_for("org-1", "ORGANIZER"))

        response = await client.post(
            f"/api/matches/{match.id}/override",
            json={"reason": "typo"},
            headers=token_for("root", "SUPERADMIN"),
        )

        _assert_envelope(response, 400, "REASON_TOO_SHORT")
        lock = await client.get(f"/api/matches/{match.id}/lock", headers=token_for("org-1", "ORGANIZER"))
        assert lock.json()["locked"] is True

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "FEATURE_LEADERBOARD_CACHE" in response.json()["feature_flags"]


# =============================================================================
# End to end
# =============================================================================

class TestTournamentRun:
    @pytest.mark.asyncio
    async def test_create_register_play_and_pay_out(self, client, factory, token_for, notifier):
        organizer = token_for("org-1", "ORGANIZER")

        created = await client.post("/api/tournaments", json=_create_body(), headers=organizer)
        tournament_id = created.json()["tournament"]["id"]

        opened = await client.post(
            f"/api/tournaments/{tournament_id}/transition", json={"status": "OPEN"}, headers=organizer
        )
        assert opened.json()["transition"]["allowed_transitions"] == ["LIVE", "CANCELLED"]

        teams = {}
        for player in ("p1", "p2"):
            await factory.fund(player, "150")
            teams[player] = await factory.team(tournament_id, [player])
            registered = await client.post(
                f"/api/tournaments/{tournament_id}/register",
                json={"team_id": teams[player].id},
                headers=token_for(player, "PLAYER"),
            )
            assert registered.status_code == 201
            assert registered.json()["registration"]["payment_status"] == "PAID"

        escrow = await client.get(f"/api/tournaments/{tournament_id}/escrow", headers=organizer)
        assert Decimal(escrow.json()["escrow"]["total_collected"]) == Decimal("200")

        live = await client.post(
            f"/api/tournaments/{tournament_id}/transition", json={"status": "LIVE"}, headers=organizer
        )
        assert live.json()["transition"]["dispatched"] == ["lock_pool", "notify_start"]

        match = await factory.match(tournament_id)
        submitted = await client.post(
            f"/api/matches/{match.id}/results",
            json={"results": [
                {"team_id": teams["p2"].id, "placement": 1, "kills": 4},
                {"team_id": teams["p1"].id, "placement": 2, "kills": 1},
            ]},
            headers=organizer,
        )
        assert submitted.status_code == 200
        locked = await client.post(f"/api/matches/{match.id}/lock", headers=organizer)
        assert locked.status_code == 201

        board = await client.get(f"/api/tournaments/{tournament_id}/leaderboard")
        assert [e["team_id"] for e in board.json()["leaderboard"]["entries"]] == [teams["p2"].id, teams["p1"].id]

        completed = await client.post(
            f"/api/tournaments/{tournament_id}/transition", json={"status": "COMPLETED"}, headers=organizer
        )
        assert completed.json()["transition"]["dispatched"] == ["distribute"]

        assert await factory.balance("p2") == Decimal("230")
        assert await factory.balance("p1") == Decimal("50")
        assert [n["kind"] for n in notifier.sent if n["user_id"] == "p2"][-1] == "PRIZE_CREDITED"

        escrow = await client.get(f"/api/tournaments/{tournament_id}/escrow", headers=organizer)
        assert escrow.json()["escrow"]["status"] == "DISTRIBUTED"

    @pytest.mark.asyncio
    async def test_cancel_refunds_through_api(self, client, factory, token_for):
        admin = token_for("admin-1", "ADMIN")
        created = await client.post("/api/tournaments", json=_create_body(entry_fee_per_person="40"), headers=admin)
        tournament_id = created.json()["tournament"]["id"]
        await client.post(f"/api/tournaments/{tournament_id}/transition", json={"status": "OPEN"}, headers=admin)
        await factory.fund("p1", "40")
        await client.post(f"/api/tournaments/{tournament_id}/register", headers=token_for("p1", "PLAYER"))
        assert await factory.balance("p1") == Decimal("0")

        cancelled = await client.post(
            f"/api/tournaments/{tournament_id}/transition",
            json={"status": "CANCELLED", "reason": "Venue unavailable"},
            headers=admin,
        )

        assert cancelled.json()["transition"]["dispatched"] == ["refund"]
        assert await factory.balance("p1") == Decimal("40")


# =============================================================================
# Wallet
# =============================================================================

class TestWalletApi:
    @pytest.mark.asyncio
    async def test_manual_deposit_approval(self, client, token_for):
        player = token_for("p9", "PLAYER")
        admin = token_for("admin-1", "ADMIN")

        wallet = await client.get("/api/wallet/me", headers=player)
        assert Decimal(wallet.json()["wallet"]["balance"]) == Decimal("0")

        submitted = await client.post(
            "/api/wallet/deposits", json={"amount": "500", "reference": "UTR123456"}, headers=player
        )
        assert submitted.status_code == 201
        transaction_id = submitted.json()["transaction"]["id"]

        queue = await client.get("/api/wallet/transactions/pending", headers=admin)
        assert [tx["id"] for tx in queue.json()["items"]] == [transaction_id]

        approved = await client.post(f"/api/wallet/transactions/{transaction_id}/approve", headers=admin)
        assert approved.json()["transaction"]["status"] == "COMPLETED"

        again = await client.post(f"/api/wallet/transactions/{transaction_id}/approve", headers=admin)
        _assert_envelope(again, 409, "TRANSACTION_NOT_PENDING")

        wallet = await client.get("/api/wallet/me", headers=player)
        assert Decimal(wallet.json()["wallet"]["balance"]) == Decimal("500")

    @pytest.mark.asyncio
    async def test_withdrawal_rejected_returns_hold(self, client, factory, token_for):
        await factory.fund("p3", "300")
        player = token_for("p3", "PLAYER")

        held = await client.post("/api/wallet/withdraw", json={"amount": "200"}, headers=player)
        assert held.status_code == 201
        assert await factory.balance("p3") == Decimal("100")

        rejected = await client.post(
            f"/api/wallet/transactions/{held.json()['transaction']['id']}/reject",
            json={"reason": "KYC incomplete"},
            headers=token_for("admin-1", "ADMIN"),
        )
        assert rejected.json()["transaction"]["metadata"]["rejection_reason"] == "KYC incomplete"
        assert await factory.balance("p3") == Decimal("300")

    @pytest.mark.asyncio
    async def test_overdraw(self, client, factory, token_for):
        await factory.fund("p4", "10")
        response = await client.post("/api/wallet/withdraw", json={"amount": "20"}, headers=token_for("p4", "PLAYER"))
        _assert_envelope(response, 422, "INSUFFICIENT_FUNDS")

    @pytest.mark.asyncio
    async def test_gateway_replay_is_rejected(self, client, factory, token_for):
        admin = token_for("admin-1", "ADMIN")
        body = {"user_id": "p5", "amount": "75", "reference": "pay_ABC123"}

        first = await client.post("/api/wallet/deposits/gateway", json=body, headers=admin)
        replay = await client.post("/api/wallet/deposits/gateway", json=body, headers=admin)

        assert first.status_code == 201
        _assert_envelope(replay, 400, "DUPLICATE_REFERENCE")
        assert await factory.balance("p5") == Decimal("75")

    @pytest.mark.asyncio
    async def test_history(self, client, factory, token_for):
        await factory.fund("p6", "20")
        await factory.fund("p6", "30")

        response = await client.get("/api/wallet/me/transactions?limit=1", headers=token_for("p6", "PLAYER"))

        data = response.json()
        assert data["total"] == 2
        assert Decimal(data["items"][0]["amount"]) == Decimal("30")


# =============================================================================
# Compliance
# =============================================================================

class TestComplianceApi:
    @pytest.mark.asyncio
    async def test_organizer_sees_only_own_entries(self, client, token_for):
        await client.post("/api/tournaments", json=_create_body(title="Mine"), headers=token_for("org-1", "ORGANIZER"))
        await client.post("/api/tournaments", json=_create_body(title="Theirs"), headers=token_for("org-2", "ORGANIZER"))

        response = await client.get(
            "/api/compliance/audit-trail?organizer_id=org-2", headers=token_for("org-1", "ORGANIZER")
        )

        items = response.json()["items"]
        assert [item["details"]["title"] for item in items] == ["Mine"]

    @pytest.mark.asyncio
    async def test_admin_filters_by_event(self, client, token_for):
        await client.post("/api/tournaments", json=_create_body(), headers=token_for("org-1", "ORGANIZER"))

        response = await client.get(
            "/api/compliance/audit-trail?event=POOL_LOCKED", headers=token_for("admin-1", "ADMIN")
        )

        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_tds_report_date_range(self, client, token_for):
        admin = token_for("admin-1", "ADMIN")

        ok = await client.get("/api/compliance/tds-report", headers=admin)
        assert ok.status_code == 200
        assert ok.json()["report"]["count"] == 0

        bad = await client.get(
            "/api/compliance/tds-report?from=2026-02-01T00:00:00&to=2026-01-01T00:00:00", headers=admin
        )
        _assert_envelope(bad, 400, "INVALID_DATE_RANGE")

    @pytest.mark.asyncio
    async def test_players_have_no_access(self, client, token_for):
        response = await client.get("/api/compliance/tds-report", headers=token_for("p1", "PLAYER"))
        _assert_envelope(response, 403, "PERMISSION_DENIED")
