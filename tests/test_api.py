from sqlalchemy import select

from faceaccess.main import app
from faceaccess.models.database import ObservedUser, User, ValidationLog

from .conftest import ZONE_A, ZONE_B, embedding


async def validate(client, face, zone_id=None, **extra):
    body = {"faceEmbedding": face, **extra}
    if zone_id:
        body["zoneId"] = zone_id
    return await client.post("/v1/validate-user-face", json=body)


class TestValidateUserFace:
    async def test_new_then_updated_observed_user(self, async_client, zones):
        r = await validate(async_client, embedding(0.0, 1.0), zones[ZONE_A])
        assert r.status_code == 200
        created = r.json()
        assert created["type"] == "new_observed_user_registered"
        assert "error" not in created
        assert created["user"]["observed_details"]["accessCount"] == 1

        r = await validate(async_client, embedding(0.0, 1.05), zones[ZONE_B])
        assert r.status_code == 200
        updated = r.json()
        assert updated["type"] == "observed_user_updated"
        assert updated["user"]["id"] == created["user"]["id"]
        assert updated["user"]["observed_details"]["accessCount"] == 2

    async def test_registered_user(self, async_client, zones, make_registered_user):
        user_id = await make_registered_user(embedding(1.0))

        r = await validate(async_client, embedding(1.0), zones[ZONE_A])

        assert r.status_code == 200
        assert r.json()["type"] == "registered_user_matched"
        assert r.json()["user"]["id"] == user_id
        assert r.json()["message"] == "Access Granted for Registered User."

    async def test_malformed_json_is_client_error_and_logged(self, async_client, session_maker, zones):
        r = await async_client.post(
            "/v1/validate-user-face",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert r.status_code == 400
        assert r.json()["type"] == "client_error"
        async with session_maker() as session:
            logs = (await session.execute(select(ValidationLog))).scalars().all()
        assert [log.match_status for log in logs] == ["invalid_input"]

    async def test_short_embedding(self, async_client, zones):
        r = await validate(async_client, [0.5] * 64)
        assert r.status_code == 400
        assert r.json()["user"]["status_details"] == {"id": "error", "name": "Invalid Input"}

    async def test_oversized_integer_is_client_error_and_logged(self, async_client, session_maker, zones):
        members = ["0.0"] * 127 + ["1" + "0" * 400]
        r = await async_client.post(
            "/v1/validate-user-face",
            content=("{\"faceEmbedding\": [" + ", ".join(members) + "]}").encode(),
            headers={"Content-Type": "application/json"},
        )

        assert r.status_code == 400
        assert r.json()["type"] == "client_error"
        async with session_maker() as session:
            logs = (await session.execute(select(ValidationLog))).scalars().all()
        assert [log.match_status for log in logs] == ["invalid_input"]

    async def test_status_catalog_is_cached_after_first_request(self, async_client, zones):
        assert app.state.status_catalog is None

        await validate(async_client, embedding(0.0, 1.0), zones[ZONE_A])

        assert app.state.status_catalog is not None
        assert app.state.status_catalog.id_for("active_temporal")


class TestObservedUserActions:
    async def _observed_id(self, client, zones):
        r = await validate(client, embedding(0.0, 1.0), zones[ZONE_A])
        return r.json()["user"]["id"]

    async def test_block_then_denied(self, async_client, zones):
        observed_id = await self._observed_id(async_client, zones)

        r = await async_client.post(
            "/v1/observed-users/actions", json={"observedUserId": observed_id, "actionType": "block"}
        )
        assert r.status_code == 200
        assert r.json() == {"message": f"Observed user {observed_id} blocked successfully."}

        r = await validate(async_client, embedding(0.0, 1.0), zones[ZONE_A])
        assert r.json()["type"] == "observed_user_access_denied_blocked"

    async def test_extend(self, async_client, zones, session_maker, status_catalog):
        observed_id = await self._observed_id(async_client, zones)

        r = await async_client.post(
            "/v1/observed-users/actions", json={"observedUserId": observed_id, "actionType": "extend"}
        )

        assert r.status_code == 200
        assert "New expiry:" in r.json()["message"]
        async with session_maker() as session:
            observed = await session.get(ObservedUser, observed_id)
        assert status_catalog.name_for(observed.status_id) == "active_temporal"

    async def test_register_not_implemented(self, async_client, zones):
        observed_id = await self._observed_id(async_client, zones)
        r = await async_client.post(
            "/v1/observed-users/actions", json={"observedUserId": observed_id, "actionType": "register"}
        )
        assert r.status_code == 501
        assert "not yet implemented" in r.json()["error"]

    async def test_missing_fields(self, async_client, zones):
        r = await async_client.post("/v1/observed-users/actions", json={"actionType": "block"})
        assert r.status_code == 400
        assert r.json() == {"error": "Missing observedUserId or actionType in request body."}

    async def test_invalid_action(self, async_client, zones):
        observed_id = await self._observed_id(async_client, zones)
        r = await async_client.post(
            "/v1/observed-users/actions", json={"observedUserId": observed_id, "actionType": "promote"}
        )
        assert r.status_code == 400
        assert r.json() == {"error": "Invalid action type: promote"}

    async def test_unknown_observed_user(self, async_client, zones):
        r = await async_client.post(
            "/v1/observed-users/actions", json={"observedUserId": "nope", "actionType": "block"}
        )
        assert r.status_code == 404
        assert "not found" in r.json()["error"]


class TestObservedUsersListing:
    async def test_listing(self, async_client, zones):
        await validate(async_client, embedding(0.0, 1.0), zones[ZONE_A])
        await validate(async_client, embedding(0.0, 3.0), zones[ZONE_B])

        r = await async_client.get("/v1/observed-users", params={"page": 1, "pageSize": 10})

        assert r.status_code == 200
        body = r.json()
        assert body["totalCount"] == 2
        assert body["absoluteTotalCount"] == 2
        assert body["activeTemporalCount"] == 2
        assert {user["accessedZones"][0]["name"] for user in body["users"]} == {ZONE_A, ZONE_B}

    async def test_search(self, async_client, zones):
        await validate(async_client, embedding(0.0, 1.0), zones[ZONE_A])
        await validate(async_client, embedding(0.0, 3.0), zones[ZONE_B])

        r = await async_client.get("/v1/observed-users", params={"searchTerm": "Zone B"})

        assert r.json()["totalCount"] == 1
        assert r.json()["users"][0]["accessedZones"][0]["name"] == ZONE_B


class TestUsers:
    def registration(self, **overrides):
        body = {
            "fullName": "Grace Hopper",
            "email": "grace@example.com",
            "roleName": "employee",
            "statusName": "active",
            "accessZoneNames": [ZONE_A],
            "faceEmbedding": embedding(1.0),
        }
        body.update(overrides)
        return body

    async def test_register_and_fetch(self, async_client, zones):
        r = await async_client.post("/v1/users", json=self.registration())
        assert r.status_code == 200
        assert r.json()["message"] == "User registered successfully!"
        user_id = r.json()["userId"]

        r = await async_client.get(f"/v1/users/{user_id}")
        assert r.status_code == 200
        details = r.json()
        assert details["email"] == "grace@example.com"
        assert details["role_details"]["name"] == "employee"
        assert details["zones_accessed_details"] == [{"id": zones[ZONE_A], "name": ZONE_A}]
        assert details["has_face"] is True

    async def test_registered_user_can_then_validate(self, async_client, zones):
        r = await async_client.post("/v1/users", json=self.registration())
        user_id = r.json()["userId"]

        r = await validate(async_client, embedding(1.1), zones[ZONE_A])
        assert r.json()["type"] == "registered_user_matched"
        assert r.json()["user"]["id"] == user_id

    async def test_missing_field_is_400(self, async_client, zones):
        body = self.registration()
        del body["email"]
        r = await async_client.post("/v1/users", json=body)
        assert r.status_code == 400
        assert "email" in r.json()["error"]

    async def test_duplicate_face_is_409(self, async_client, zones):
        await async_client.post("/v1/users", json=self.registration())
        r = await async_client.post(
            "/v1/users", json=self.registration(email="ada@example.com", faceEmbedding=embedding(1.2))
        )
        assert r.status_code == 409

    async def test_unknown_zone_is_400(self, async_client, zones):
        r = await async_client.post("/v1/users", json=self.registration(accessZoneNames=["Vault"]))
        assert r.status_code == 400

    async def test_replace_face_and_delete(self, async_client, zones, session_maker):
        user_id = (await async_client.post("/v1/users", json=self.registration())).json()["userId"]

        r = await async_client.put(f"/v1/users/{user_id}/face", json={"faceEmbedding": embedding(2.0)})
        assert r.status_code == 200

        r = await validate(async_client, embedding(2.0), zones[ZONE_A])
        assert r.json()["user"]["id"] == user_id

        r = await async_client.delete(f"/v1/users/{user_id}")
        assert r.status_code == 200
        async with session_maker() as session:
            assert await session.get(User, user_id) is None

        r = await async_client.get(f"/v1/users/{user_id}")
        assert r.status_code == 404


class TestCatalogs:
    async def test_zones(self, async_client, zones):
        r = await async_client.get("/v1/zones")
        assert r.status_code == 200
        assert [zone["name"] for zone in r.json()] == [ZONE_A, ZONE_B]

    async def test_statuses(self, async_client, zones):
        r = await async_client.get("/v1/user-statuses")
        names = {status["name"] for status in r.json()}
        assert {"active", "active_temporal", "expired", "blocked", "in_review_admin"} <= names

    async def test_roles(self, async_client, zones):
        r = await async_client.get("/v1/user-roles")
        assert [role["name"] for role in r.json()] == ["admin", "employee", "visitor"]


class TestUploadFaceImage:
    async def test_observed_user_image(self, async_client, zones, uploader, session_maker):
        r = await validate(async_client, embedding(0.0, 1.0), zones[ZONE_A])
        observed_id = r.json()["user"]["id"]

        r = await async_client.post(
            "/v1/upload-face-image",
            json={"userId": observed_id, "imageData": "aGVsbG8=", "isObservedUser": True},
        )

        assert r.status_code == 200
        assert r.json()["imageUrl"] == f"http://minio.test/face-images/{observed_id}.jpeg"
        async with session_maker() as session:
            observed = await session.get(ObservedUser, observed_id)
        assert observed.face_image_url == r.json()["imageUrl"]

    async def test_unknown_owner(self, async_client, zones):
        r = await async_client.post("/v1/upload-face-image", json={"userId": "ghost", "imageData": "aGVsbG8="})
        assert r.status_code == 404

    async def test_missing_image(self, async_client, zones):
        r = await async_client.post("/v1/upload-face-image", json={"userId": "ghost"})
        assert r.status_code == 400
