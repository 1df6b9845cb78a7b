"""
Integration tests for telephony credentials, device tokens and the voice webhook.
"""
from jose import jwt
from sqlalchemy import select, func

from switchboard.models.models import TelephonyCredentials


def credentials_payload(**overrides):
    payload = {
        "accountSid": "AC" + "d" * 32,
        "apiKey": "SK" + "e" * 32,
        "apiSecret": "fresh-secret",
        "appSid": "AP" + "f" * 32,
        "phoneNumber": "+15550003333",
    }
    payload.update(overrides)
    return payload


class TestCredentials:
    """GET/POST /api/telephony/credentials"""

    async def test_unconfigured_reads_null(self, client, admin_user, login):
        response = await client.get("/api/telephony/credentials", headers=await login(admin_user))

        assert response.status_code == 200
        assert response.json() is None

    async def test_save_then_read_masks_secret(self, client, admin_user, login):
        headers = await login(admin_user)

        saved = await client.post("/api/telephony/credentials", json=credentials_payload(), headers=headers)
        read = await client.get("/api/telephony/credentials", headers=headers)

        assert saved.status_code == 200
        data = read.json()
        assert data["apiSecret"] == "********"
        assert data["accountSid"] == "AC" + "d" * 32
        assert data["phoneNumber"] == "+15550003333"

    async def test_repeated_saves_keep_one_row(self, client, admin_user, login, session_factory):
        headers = await login(admin_user)

        for number in ("+15550000001", "+15550000002"):
            response = await client.post(
                "/api/telephony/credentials",
                json=credentials_payload(phoneNumber=number),
                headers=headers
            )
            assert response.status_code == 200

        async with session_factory() as session:
            rows = (await session.execute(select(TelephonyCredentials))).scalars().all()
        assert len(rows) == 1
        assert rows[0].phone_number == "+15550000002"

    async def test_round_tripping_the_masked_secret_is_rejected(self, client, admin_user, login, session_factory):
        headers = await login(admin_user)
        await client.post("/api/telephony/credentials", json=credentials_payload(), headers=headers)
        masked = (await client.get("/api/telephony/credentials", headers=headers)).json()

        response = await client.post(
            "/api/telephony/credentials",
            json={k: v for k, v in masked.items() if k != "updatedAt"},
            headers=headers
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "apiSecret"
        async with session_factory() as session:
            stored = (await session.execute(select(TelephonyCredentials))).scalar_one()
        assert stored.api_secret == "fresh-secret"

    async def test_missing_fields_are_rejected(self, client, admin_user, login, session_factory):
        response = await client.post(
            "/api/telephony/credentials",
            json={"accountSid": "AC1"},
            headers=await login(admin_user)
        )

        assert response.status_code == 400
        async with session_factory() as session:
            count = (await session.execute(select(func.count(TelephonyCredentials.id)))).scalar()
        assert count == 0

    async def test_non_admin_cannot_touch_credentials(self, client, manager_user, login):
        headers = await login(manager_user)

        assert (await client.get("/api/telephony/credentials", headers=headers)).status_code == 403
        assert (await client.post(
            "/api/telephony/credentials", json=credentials_payload(), headers=headers
        )).status_code == 403


class TestVoiceToken:
    """POST /api/telephony/token"""

    async def test_unconfigured_is_404(self, client, regular_user, login):
        response = await client.post("/api/telephony/token", json={}, headers=await login(regular_user))

        assert response.status_code == 404

    async def test_identity_defaults_to_extension(self, client, regular_user, login, telephony_credentials):
        response = await client.post("/api/telephony/token", json={}, headers=await login(regular_user))

        assert response.status_code == 200
        data = response.json()
        assert data["identity"] == regular_user.extension
        claims = jwt.get_unverified_claims(data["token"])
        assert claims["grants"]["identity"] == regular_user.extension

    async def test_token_without_body(self, client, regular_user, login, telephony_credentials):
        response = await client.post("/api/telephony/token", headers=await login(regular_user))

        assert response.status_code == 200

    async def test_other_identity_is_forbidden(self, client, regular_user, admin_user, login, telephony_credentials):
        response = await client.post(
            "/api/telephony/token",
            json={"identity": admin_user.extension},
            headers=await login(regular_user)
        )

        assert response.status_code == 403

    async def test_requires_login(self, client, telephony_credentials):
        response = await client.post("/api/telephony/token", json={})

        assert response.status_code == 401


class TestVoiceWebhook:
    """POST /api/telephony/voice"""

    async def test_inbound_rings_connected_users(self, client, make_user, hub, mock_websocket):
        online = await make_user(extension="201")
        await make_user(extension="202")
        await hub.register(mock_websocket(), user_id=online.id, role="user")

        response = await client.post(
            "/api/telephony/voice",
            data={"CallSid": "CA1", "From": "+15551112222", "To": "+15550001111"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Client>201</Client>" in response.text
        assert "<Client>202</Client>" not in response.text

    async def test_inbound_falls_back_to_all_active_users(self, client, make_user):
        await make_user(extension="201")
        await make_user(extension="202")
        await make_user(extension="203", is_active=False)

        response = await client.post(
            "/api/telephony/voice",
            data={"CallSid": "CA1", "From": "+15551112222", "To": "+15550001111"}
        )

        assert "<Client>201</Client>" in response.text
        assert "<Client>202</Client>" in response.text
        assert "<Client>203</Client>" not in response.text

    async def test_device_call_dials_out_with_stored_caller_id(self, client, regular_user, telephony_credentials):
        response = await client.post(
            "/api/telephony/voice",
            data={"CallSid": "CA2", "From": f"client:{regular_user.extension}", "To": "+15559876543"}
        )

        assert "<Number>+15559876543</Number>" in response.text
        assert f'callerId="{telephony_credentials.phone_number}"' in response.text

    async def test_nobody_to_ring_says_sorry(self, client):
        response = await client.post(
            "/api/telephony/voice",
            data={"CallSid": "CA3", "From": "+15551112222", "To": "+15550001111"}
        )

        assert response.status_code == 200
        assert "<Say>" in response.text
