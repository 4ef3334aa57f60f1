from datetime import datetime, timedelta

import pytest

from faceaccess.core.exceptions import ActionNotImplementedError, NotFoundError
from faceaccess.models.database import ObservedUser
from faceaccess.services.observed_lifecycle import ObservedUserService

from .conftest import ZONE_A, ZONE_B, embedding

NOW = datetime(2024, 5, 1, 8, 0, 0)


@pytest.fixture
def service():
    return ObservedUserService(ttl_hours=24)


@pytest.fixture
def add_observed(session_maker, status_catalog):
    async def _add(status="active_temporal", last_seen=NOW, access_count=1, alert=False, zones=(), ai_action=None):
        async with session_maker() as session:
            observed = ObservedUser(
                embedding=embedding(float(access_count)),
                first_seen_at=last_seen - timedelta(hours=1),
                last_seen_at=last_seen,
                access_count=access_count,
                last_accessed_zones=list(zones),
                status_id=status_catalog.id_for(status),
                expires_at=last_seen + timedelta(hours=24),
                alert_triggered=alert,
                ai_action=ai_action,
            )
            session.add(observed)
            await session.commit()
            return observed.id

    return _add


class TestActions:
    async def test_block(self, service, session_maker, status_catalog, add_observed):
        observed_id = await add_observed()

        async with session_maker() as session:
            message = await service.perform_action(session, observed_id, "block", status_catalog)

        assert message == f"Observed user {observed_id} blocked successfully."
        async with session_maker() as session:
            observed = await session.get(ObservedUser, observed_id)
        assert status_catalog.name_for(observed.status_id) == "blocked"

    async def test_extend_from_expired(self, service, session_maker, status_catalog, add_observed):
        observed_id = await add_observed(status="expired")
        later = NOW + timedelta(days=3)

        async with session_maker() as session:
            message = await service.perform_action(session, observed_id, "extend", status_catalog, now=later)

        assert message.endswith(f"New expiry: {(later + timedelta(hours=24)).isoformat()}")
        async with session_maker() as session:
            observed = await session.get(ObservedUser, observed_id)
        assert observed.expires_at == later + timedelta(hours=24)
        assert status_catalog.name_for(observed.status_id) == "active_temporal"

    async def test_register_is_not_implemented(self, service, session_maker, status_catalog, add_observed):
        observed_id = await add_observed()
        async with session_maker() as session:
            with pytest.raises(ActionNotImplementedError):
                await service.perform_action(session, observed_id, "register", status_catalog)

    async def test_invalid_action(self, service, session_maker, status_catalog, add_observed):
        observed_id = await add_observed()
        async with session_maker() as session:
            with pytest.raises(ValueError, match="Invalid action type: promote"):
                await service.perform_action(session, observed_id, "promote", status_catalog)

    async def test_unknown_observed_user(self, service, session_maker, status_catalog):
        async with session_maker() as session:
            with pytest.raises(NotFoundError):
                await service.perform_action(session, "missing", "block", status_catalog)


class TestListing:
    async def test_counters_and_ordering(self, service, session_maker, status_catalog, add_observed, zones):
        oldest = await add_observed(last_seen=NOW - timedelta(hours=3))
        pending = await add_observed(last_seen=NOW - timedelta(hours=2), access_count=6)
        risky = await add_observed(last_seen=NOW - timedelta(hours=1), alert=True, zones=[zones[ZONE_A]])
        await add_observed(status="blocked", alert=True, last_seen=NOW)
        await add_observed(status="expired", last_seen=NOW - timedelta(hours=4))

        async with session_maker() as session:
            page = await service.list_observed_users(session, status_catalog, page=1, page_size=3)

        assert page["absoluteTotalCount"] == 5
        assert page["totalCount"] == 5
        assert page["pendingReviewCount"] == 1
        assert page["highRiskCount"] == 1
        assert page["activeTemporalCount"] == 3
        assert page["expiredCount"] == 1
        assert [user["id"] for user in page["users"]][1:] == [risky, pending]
        assert oldest not in [user["id"] for user in page["users"]]

    async def test_filter(self, service, session_maker, status_catalog, add_observed):
        pending = await add_observed(access_count=9)
        await add_observed(access_count=2)

        async with session_maker() as session:
            page = await service.list_observed_users(session, status_catalog, filter_type="pendingReview")

        assert [user["id"] for user in page["users"]] == [pending]
        assert page["totalCount"] == 1

    async def test_search_matches_zone_names_before_paging(
        self, service, session_maker, status_catalog, add_observed, zones
    ):
        for hour in range(3):
            await add_observed(last_seen=NOW - timedelta(hours=hour), zones=[zones[ZONE_B]])
        await add_observed(zones=[zones[ZONE_A]])

        async with session_maker() as session:
            page = await service.list_observed_users(
                session, status_catalog, page=2, page_size=2, search_term="zone b"
            )

        assert page["totalCount"] == 3
        assert len(page["users"]) == 1
        assert page["users"][0]["accessedZones"] == [{"id": zones[ZONE_B], "name": ZONE_B}]

    async def test_list_item_shape(self, service, session_maker, status_catalog, add_observed):
        observed_id = await add_observed(ai_action="Monitor closely")

        async with session_maker() as session:
            page = await service.list_observed_users(session, status_catalog)

        item = page["users"][0]
        assert item["id"] == observed_id
        assert item["status"] == {"id": status_catalog.id_for("active_temporal"), "name": "active_temporal"}
        assert item["tempAccesses"] == 1
        assert item["aiAction"] == "Monitor closely"
        assert item["expiresAt"] == (NOW + timedelta(hours=24)).isoformat()
        assert item["consecutiveDeniedAccesses"] == 0
