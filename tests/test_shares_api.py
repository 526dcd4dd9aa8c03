"""Tests for the /v1/shares endpoints."""

from unittest.mock import AsyncMock, patch

import pytest

from careshare.models.records import SHARES_COLLECTION
from careshare.services.errors import IdentityLookupError, StorageError
from careshare.services.pagination import encode_cursor


def _as(user_id):
    return {"X-User-Id": user_id}


async def _invite(client, email="case@ex.com", owner="p1"):
    response = await client.post(
        "/v1/shares/invite", json={"caregiverEmail": email}, headers=_as(owner)
    )
    assert response.status_code == 201
    return response.json()["invite"]["id"]


class TestAuthentication:
    async def test_missing_identity_header(self, client):
        response = await client.get("/v1/shares")

        assert response.status_code == 401
        assert response.json() == {"code": "unauthenticated", "message": "Not authenticated"}

    async def test_unknown_user(self, client):
        response = await client.get("/v1/shares", headers=_as("ghost"))
        assert response.status_code == 401

    async def test_identity_service_down(self, client, identities):
        with patch.object(identities, "by_id", AsyncMock(side_effect=IdentityLookupError("down"))):
            response = await client.get("/v1/shares", headers=_as("p1"))

        assert response.status_code == 500
        assert response.json()["code"] == "server_error"


class TestInviteEndpoints:
    async def test_invite_created(self, client):
        response = await client.post(
            "/v1/shares/invite",
            json={"caregiverEmail": "Case@Ex.com", "message": "<i>Hi</i>"},
            headers=_as("p1"),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["emailSent"] is False
        assert data["invite"]["status"] == "pending"
        assert data["invite"]["caregiverEmail"] == "case@ex.com"
        assert data["invite"]["ownerId"] == "p1"
        assert data["invite"]["message"] == "Hi"
        assert data["invite"]["expiresAt"]

    async def test_invalid_email(self, client):
        response = await client.post(
            "/v1/shares/invite", json={"caregiverEmail": "not-an-email"}, headers=_as("p1")
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_failed"

    async def test_duplicate_invite_conflicts(self, client):
        await _invite(client)

        response = await client.post(
            "/v1/shares/invite", json={"caregiverEmail": "case@ex.com"}, headers=_as("p1")
        )

        assert response.status_code == 409
        assert response.json()["code"] == "invite_exists"

    async def test_self_invite(self, client):
        response = await client.post(
            "/v1/shares/invite", json={"caregiverEmail": "pat@ex.com"}, headers=_as("p1")
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_share"

    async def test_invite_info_is_public(self, client):
        token = await _invite(client)

        response = await client.get(f"/v1/shares/invite-info/{token}")

        assert response.status_code == 200
        data = response.json()
        assert data["ownerName"] == "Pat Owner"
        assert data["caregiverEmail"] == "case@ex.com"
        assert data["status"] == "pending"

    async def test_invite_info_unknown_token(self, client):
        response = await client.get("/v1/shares/invite-info/missing")
        assert response.status_code == 404

    async def test_accept_and_list(self, client, identities):
        token = await _invite(client)
        identities.add("c9", "case@ex.com")

        accepted = await client.post(f"/v1/shares/accept/{token}", headers=_as("c9"))
        listed = await client.get("/v1/shares", headers=_as("c9"))

        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"
        assert accepted.json()["caregiverUserId"] == "c9"
        assert listed.status_code == 200
        shares = listed.json()
        assert [s["id"] for s in shares] == ["p1_c9"]
        assert shares[0]["type"] == "incoming"
        assert shares[0]["status"] == "accepted"

    async def test_accept_twice_returns_same_payload(self, client, identities):
        token = await _invite(client)
        identities.add("c9", "case@ex.com")

        first = await client.post(f"/v1/shares/accept/{token}", headers=_as("c9"))
        second = await client.post(f"/v1/shares/accept/{token}", headers=_as("c9"))

        assert second.status_code == 200
        assert second.json() == first.json()

    async def test_accept_wrong_email(self, client, identities):
        token = await _invite(client)
        identities.add("c7", "other@ex.com")

        response = await client.post(f"/v1/shares/accept/{token}", headers=_as("c7"))

        assert response.status_code == 403
        assert response.json()["code"] == "email_mismatch"

    async def test_accept_expired(self, client, identities, clock):
        token = await _invite(client)
        identities.add("c9", "case@ex.com")
        clock.advance(days=8)

        response = await client.post(f"/v1/shares/accept/{token}", headers=_as("c9"))

        assert response.status_code == 410
        assert response.json()["code"] == "invite_expired"

    async def test_accept_revoked(self, client, identities):
        token = await _invite(client)
        await client.patch(f"/v1/shares/revoke/{token}", headers=_as("p1"))
        identities.add("c9", "case@ex.com")

        response = await client.post(f"/v1/shares/accept/{token}", headers=_as("c9"))

        assert response.status_code == 403
        assert response.json()["code"] == "invite_revoked"

    async def test_revoke_by_owner(self, client):
        token = await _invite(client)

        response = await client.patch(f"/v1/shares/revoke/{token}", headers=_as("p1"))

        assert response.status_code == 200
        assert response.json()["status"] == "revoked"

    async def test_revoke_by_other_user(self, client):
        token = await _invite(client)

        response = await client.patch(f"/v1/shares/revoke/{token}", headers=_as("p2"))

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    async def test_incoming_and_outgoing_invites(self, client, identities):
        token = await _invite(client)
        identities.add("c9", "case@ex.com")

        incoming = await client.get("/v1/shares/invites", headers=_as("c9"))
        outgoing = await client.get("/v1/shares/my-invites", headers=_as("p1"))

        assert [i["id"] for i in incoming.json()] == [token]
        assert [i["id"] for i in outgoing.json()] == [token]

    async def test_auto_accept(self, client, identities):
        await _invite(client)
        await _invite(client, owner="p2")
        identities.add("c9", "case@ex.com")

        response = await client.post("/v1/shares/auto-accept", headers=_as("c9"))

        assert response.json() == {"accepted": 2}
        access = await client.get("/v1/shares/access/p2", headers=_as("c9"))
        assert access.json() == {"hasAccess": True}


class TestShareEndpoints:
    async def test_legacy_create_with_existing_account(self, client, identities):
        identities.add("c9", "case@ex.com")

        response = await client.post(
            "/v1/shares", json={"caregiverEmail": "case@ex.com"}, headers=_as("p1")
        )

        assert response.status_code == 201
        data = response.json()
        assert data["share"]["id"] == "p1_c9"
        assert data["share"]["status"] == "pending"
        assert data["invite"] is None

    async def test_legacy_create_without_account(self, client):
        response = await client.post(
            "/v1/shares", json={"caregiverEmail": "case@ex.com"}, headers=_as("p1")
        )

        assert response.status_code == 201
        data = response.json()
        assert data["share"] is None
        assert data["invite"]["status"] == "pending"

    async def test_duplicate_direct_share(self, client, identities):
        identities.add("c9", "case@ex.com")
        body = {"caregiverEmail": "case@ex.com"}
        await client.post("/v1/shares", json=body, headers=_as("p1"))

        response = await client.post("/v1/shares", json=body, headers=_as("p1"))

        assert response.status_code == 409
        assert response.json()["code"] == "share_exists"

    async def test_status_transitions(self, client, identities):
        identities.add("c9", "case@ex.com")
        await client.post("/v1/shares", json={"caregiverEmail": "case@ex.com"}, headers=_as("p1"))

        accepted = await client.patch(
            "/v1/shares/p1_c9", json={"status": "accepted"}, headers=_as("c9")
        )
        owner_accept = await client.patch(
            "/v1/shares/p1_c9", json={"status": "accepted"}, headers=_as("p1")
        )
        revoked = await client.patch(
            "/v1/shares/p1_c9", json={"status": "revoked"}, headers=_as("p1")
        )

        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"
        assert owner_accept.status_code == 400
        assert owner_accept.json()["code"] == "invalid_transition"
        assert revoked.status_code == 200
        assert revoked.json()["status"] == "revoked"

    async def test_unknown_status_value(self, client):
        response = await client.patch(
            "/v1/shares/p1_c9", json={"status": "deleted"}, headers=_as("p1")
        )
        assert response.status_code == 400
        assert response.json()["code"] == "validation_failed"

    async def test_get_share(self, client, identities):
        identities.add("c9", "case@ex.com")
        await client.post("/v1/shares", json={"caregiverEmail": "case@ex.com"}, headers=_as("p1"))

        own = await client.get("/v1/shares/p1_c9", headers=_as("p1"))
        other = await client.get("/v1/shares/p1_c9", headers=_as("p2"))
        missing = await client.get("/v1/shares/p1_nobody", headers=_as("p1"))

        assert own.status_code == 200
        assert own.json()["caregiverEmail"] == "case@ex.com"
        assert other.status_code == 403
        assert missing.status_code == 404

    async def test_delete_not_allowed(self, client):
        response = await client.delete("/v1/shares/p1_c9", headers=_as("p1"))
        assert response.status_code == 405

    async def test_legacy_accept_migrates_identity(self, client, identities, store):
        identities.add("c9", "case@ex.com")
        await client.post("/v1/shares", json={"caregiverEmail": "case@ex.com"}, headers=_as("p1"))
        await client.patch("/v1/shares/p1_c9", json={"status": "accepted"}, headers=_as("c9"))
        identities.add("c5", "Case@Ex.com")

        response = await client.post(
            "/v1/shares/accept-invite", json={"token": "p1_c9"}, headers=_as("c5")
        )

        assert response.status_code == 200
        assert response.json()["id"] == "p1_c5"
        assert await store.get(SHARES_COLLECTION, "p1_c9") is None

    async def test_storage_failure(self, client, store):
        with patch.object(store, "query", AsyncMock(side_effect=StorageError("db down"))):
            response = await client.get("/v1/shares", headers=_as("p1"))

        assert response.status_code == 500
        assert response.json()["code"] == "server_error"
        assert "db down" not in response.json()["message"]


class TestPagination:
    @pytest.fixture
    async def three_shares(self, client, identities, clock):
        for caregiver_id in ("c1", "c2", "c3"):
            identities.add(caregiver_id, f"{caregiver_id}@ex.com")
            await client.post(
                "/v1/shares",
                json={"caregiverEmail": f"{caregiver_id}@ex.com"},
                headers=_as("p1"),
            )
            clock.advance(minutes=1)

    async def test_unpaged_list(self, client, three_shares):
        response = await client.get("/v1/shares", headers=_as("p1"))

        assert [s["id"] for s in response.json()] == ["p1_c3", "p1_c2", "p1_c1"]
        assert response.headers["X-Has-More"] == "false"
        assert response.headers["X-Next-Cursor"] == ""

    async def test_pages(self, client, three_shares):
        first = await client.get("/v1/shares", params={"limit": 2}, headers=_as("p1"))
        cursor = first.headers["X-Next-Cursor"]
        second = await client.get(
            "/v1/shares", params={"limit": 2, "cursor": cursor}, headers=_as("p1")
        )

        assert [s["id"] for s in first.json()] == ["p1_c3", "p1_c2"]
        assert first.headers["X-Has-More"] == "true"
        assert [s["id"] for s in second.json()] == ["p1_c1"]
        assert second.headers["X-Has-More"] == "false"
        assert second.headers["X-Next-Cursor"] == ""

    async def test_oversized_limit_is_capped(self, client, three_shares):
        response = await client.get("/v1/shares", params={"limit": 5000}, headers=_as("p1"))
        assert response.status_code == 200
        assert len(response.json()) == 3

    async def test_invalid_cursor(self, client, three_shares):
        response = await client.get(
            "/v1/shares",
            params={"limit": 2, "cursor": encode_cursor("p9_c9")},
            headers=_as("p1"),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_cursor"

    async def test_zero_limit(self, client):
        response = await client.get("/v1/shares", params={"limit": 0}, headers=_as("p1"))
        assert response.status_code == 400
        assert response.json()["code"] == "validation_failed"
