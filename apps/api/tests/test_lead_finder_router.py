import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import func
from sqlalchemy.future import select

from config import settings
from database import get_db
from main import app
from models.lead_search import LeadSearch
from models.search_package import SearchPackage, UserSearchPackage
from models.usage_limit import UsageLimit
from models.user import User
from routers.lead_finder import get_search_provider
from services.search_provider import SearchProviderClient
from services.session_token import SESSION_TOKEN_TYPE


TEST_USER_ID = "lead-finder-user"
OTHER_USER_ID = "lead-finder-other"


def _bearer(user_id, *, token_type=SESSION_TOKEN_TYPE, expires_in=timedelta(hours=1)):
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


TEST_AUTH_HEADER = _bearer(TEST_USER_ID)


class FakeUpstream:
    def __init__(self):
        self.requests = []
        self.pages = []
        self.status_code = 200
        self.per_page = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"message": "upstream unavailable"})
        if self.per_page is not None:
            offset = len(self.requests) * 1000
            return httpx.Response(200, json={"places": _places(self.per_page, offset=offset)})
        index = len(self.requests) - 1
        places = self.pages[index] if index < len(self.pages) else []
        return httpx.Response(200, json={"places": places})


def _places(count, offset=0):
    return [
        {
            "title": f"Cafe {offset + index}",
            "address": f"{index} Briggate, Leeds LS1, UK",
            "placeId": f"place-{offset + index}",
            "rating": 4.5,
            "latitude": 53.8,
            "longitude": -1.54,
        }
        for index in range(count)
    ]


@pytest_asyncio.fixture
async def api(session_maker):
    upstream = FakeUpstream()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    def override_get_search_provider():
        return SearchProviderClient(api_key="test-key", transport=httpx.MockTransport(upstream.handler))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_search_provider] = override_get_search_provider
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, upstream

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_search_provider, None)


async def _seed_user(session_maker, user_id=TEST_USER_ID, *, monthly_limit=None, packages=()):
    async with session_maker() as session:
        session.add(User(id=user_id, email=f"{user_id}@local.invalid"))
        if monthly_limit is not None:
            session.add(UsageLimit(plan_type="free", feature_name="lead_finder_searches", monthly_limit=monthly_limit))
        for package_id, remaining in packages:
            session.add(
                UserSearchPackage(
                    id=package_id,
                    user_id=user_id,
                    remaining_searches=remaining,
                    purchase_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
                )
            )
        await session.commit()


async def _package_remaining(session_maker, package_id):
    async with session_maker() as session:
        package = await session.get(UserSearchPackage, package_id)
        return package.remaining_searches


async def _audit_count(session_maker):
    async with session_maker() as session:
        return (await session.execute(select(func.count(LeadSearch.id)))).scalar()


def _search_params(**overrides):
    params = {"query": "cafes", "location": "Leeds, UK"}
    params.update(overrides)
    return params


@pytest.mark.asyncio
async def test_single_package_credit_scenario(api, session_maker):
    client, upstream = api
    upstream.pages = [_places(12)]
    await _seed_user(session_maker, packages=[("p1", 1)])

    response = await client.get(
        "/lead-finder/search",
        params=_search_params(maxResults=10),
        headers=TEST_AUTH_HEADER,
    )

    assert response.status_code == 200
    payload = response.json()
    assert len(payload["results"]) == 10
    assert payload["remaining_searches"] == 0
    assert "location_warning" not in payload
    assert len(upstream.requests) == 1
    assert await _package_remaining(session_maker, "p1") == 0
    assert await _audit_count(session_maker) == 1


@pytest.mark.asyncio
async def test_search_results_use_canonical_shape(api, session_maker):
    client, upstream = api
    upstream.pages = [
        [
            {
                "title": "Laynes Espresso",
                "address": "16 New Station St, Leeds LS1 5DL, UK",
                "placeId": "laynes",
                "phoneNumber": "0113 000 0000",
                "website": "https://laynes.example",
                "rating": 4.7,
                "ratingCount": 1200,
                "latitude": 53.79,
                "longitude": -1.54,
                "category": "Coffee shop",
            },
            {"title": "Laynes duplicate", "placeId": "laynes"},
        ]
    ]
    await _seed_user(session_maker, monthly_limit=5)

    response = await client.get("/lead-finder/search", params=_search_params(), headers=TEST_AUTH_HEADER)

    assert response.status_code == 200
    payload = response.json()
    assert payload["remaining_searches"] == 4
    assert payload["results"] == [
        {
            "title": "Laynes Espresso",
            "address": "16 New Station St, Leeds LS1 5DL, UK",
            "phone": "0113 000 0000",
            "website": "https://laynes.example",
            "rating": 4.7,
            "reviewsCount": 1200,
            "placeId": "laynes",
            "categories": ["Coffee shop"],
            "latitude": 53.79,
            "longitude": -1.54,
            "dataQuality": 4,
        }
    ]
    sent = upstream.requests[0]
    assert sent.headers["X-API-KEY"] == "test-key"


@pytest.mark.asyncio
async def test_search_requires_authentication(api):
    client, upstream = api

    response = await client.get("/lead-finder/search", params=_search_params())

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_search_rejects_foreign_or_expired_tokens(api, session_maker):
    client, upstream = api
    await _seed_user(session_maker, monthly_limit=5)

    for headers in (
        _bearer(TEST_USER_ID, token_type="research_share"),
        _bearer(TEST_USER_ID, expires_in=timedelta(hours=-1)),
        {"Authorization": "Bearer not-a-token"},
    ):
        response = await client.get("/lead-finder/search", params=_search_params(), headers=headers)
        assert response.status_code == 401

    assert upstream.requests == []
    assert await _audit_count(session_maker) == 0


@pytest.mark.asyncio
async def test_non_finite_upstream_numbers_are_dropped(api, session_maker):
    client, upstream = api
    upstream.pages = [
        [
            {
                "title": "Odd Cafe",
                "placeId": "odd",
                "rating": "NaN",
                "reviewsCount": "Infinity",
                "latitude": "Infinity",
                "longitude": "-inf",
            }
        ]
    ]
    await _seed_user(session_maker, packages=[("p1", 2)])

    response = await client.get("/lead-finder/search", params=_search_params(), headers=TEST_AUTH_HEADER)

    assert response.status_code == 200
    payload = response.json()
    assert payload["remaining_searches"] == 1
    [lead] = payload["results"]
    assert lead["placeId"] == "odd"
    for field in ("rating", "reviewsCount", "latitude", "longitude"):
        assert field not in lead
    assert await _package_remaining(session_maker, "p1") == 1


@pytest.mark.asyncio
async def test_search_requires_query_and_location(api, session_maker):
    client, upstream = api
    await _seed_user(session_maker, monthly_limit=5)

    response = await client.get("/lead-finder/search", params={"query": "cafes"}, headers=TEST_AUTH_HEADER)

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required parameters: query and location"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_search_rejected_without_credits_before_upstream_call(api, session_maker):
    client, upstream = api
    await _seed_user(session_maker, monthly_limit=0, packages=[("spent", 0)])

    response = await client.get("/lead-finder/search", params=_search_params(), headers=TEST_AUTH_HEADER)

    assert response.status_code == 402
    assert response.json()["error"] == "No searches remaining"
    assert upstream.requests == []
    assert await _audit_count(session_maker) == 0


@pytest.mark.asyncio
async def test_search_rejected_for_plan_without_feature(api, session_maker, monkeypatch):
    client, upstream = api
    monkeypatch.setattr(settings, "LEAD_FINDER_ALLOWED_PLANS", ["enterprise"])
    await _seed_user(session_maker, monthly_limit=5)

    response = await client.get("/lead-finder/search", params=_search_params(), headers=TEST_AUTH_HEADER)

    assert response.status_code == 403
    assert "error" in response.json()
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_first_page_failure_consumes_no_credit(api, session_maker):
    client, upstream = api
    upstream.status_code = 502
    await _seed_user(session_maker, packages=[("p1", 2)])

    response = await client.get("/lead-finder/search", params=_search_params(), headers=TEST_AUTH_HEADER)

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Search provider request failed"
    assert "502" in body["message"]
    assert await _package_remaining(session_maker, "p1") == 2
    assert await _audit_count(session_maker) == 0


@pytest.mark.asyncio
async def test_missing_provider_key_is_server_error(api, session_maker):
    client, _ = api
    app.dependency_overrides[get_search_provider] = lambda: None
    await _seed_user(session_maker, monthly_limit=5)

    response = await client.get("/lead-finder/search", params=_search_params(), headers=TEST_AUTH_HEADER)

    assert response.status_code == 500
    assert response.json()["error"] == "Search provider is not configured"


@pytest.mark.asyncio
async def test_max_results_hard_cap(api, session_maker):
    client, upstream = api
    upstream.per_page = 40
    await _seed_user(session_maker, monthly_limit=5)

    response = await client.get(
        "/lead-finder/search",
        params=_search_params(maxResults=500),
        headers=TEST_AUTH_HEADER,
    )

    assert response.status_code == 200
    assert len(response.json()["results"]) == 100


@pytest.mark.asyncio
async def test_zero_results_is_success_with_warning(api, session_maker):
    client, upstream = api
    upstream.pages = [[]]
    await _seed_user(session_maker, monthly_limit=3)

    response = await client.get(
        "/lead-finder/search",
        params=_search_params(maxResults=50),
        headers=TEST_AUTH_HEADER,
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["results"] == []
    assert "cafes" in payload["location_warning"]
    assert payload["remaining_searches"] == 2
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_filters_and_address_warning(api, session_maker):
    client, upstream = api
    upstream.pages = [
        [
            {"title": "A", "placeId": "a", "rating": 4.9, "address": "1 Rue A, Paris, France"},
            {"title": "B", "placeId": "b", "rating": 3.1, "address": "2 Rue B, Paris, France"},
            {"title": "C", "placeId": "c", "rating": 4.6, "address": "3 Rue C, Paris, France"},
        ]
    ]
    await _seed_user(session_maker, monthly_limit=3)

    response = await client.get(
        "/lead-finder/search",
        params=_search_params(minRating=4.5, location="Paris, Texas, USA"),
        headers=TEST_AUTH_HEADER,
    )

    assert response.status_code == 200
    payload = response.json()
    assert [item["placeId"] for item in payload["results"]] == ["a", "c"]
    assert "US" in payload["location_warning"]


@pytest.mark.asyncio
async def test_coordinates_bias_upstream_request(api, session_maker):
    client, upstream = api
    upstream.pages = [_places(2)]
    await _seed_user(session_maker, monthly_limit=3)

    response = await client.get(
        "/lead-finder/search",
        params=_search_params(lat="53.8", lng="-1.55", radius="80"),
        headers=TEST_AUTH_HEADER,
    )

    assert response.status_code == 200
    body = json.loads(upstream.requests[0].content)
    assert body["gl"] == "gb"
    assert body["radius"] == 50000
    assert body["ll"] == "@53.8,-1.55,14z"


@pytest.mark.asyncio
async def test_oversized_radius_is_capped(api, session_maker):
    client, upstream = api
    upstream.pages = [_places(1)]
    await _seed_user(session_maker, monthly_limit=3)

    response = await client.get(
        "/lead-finder/search",
        params=_search_params(lat="53.8", lng="-1.5", radius="1e308"),
        headers=TEST_AUTH_HEADER,
    )

    assert response.status_code == 200
    body = json.loads(upstream.requests[0].content)
    assert body["radius"] == 50000


@pytest.mark.asyncio
async def test_remaining_searches_breakdown_is_not_cached(api, session_maker):
    client, _ = api
    await _seed_user(session_maker, monthly_limit=5, packages=[("p1", 3)])

    response = await client.get("/lead-finder/remaining-searches", headers=TEST_AUTH_HEADER)

    assert response.status_code == 200
    assert "no-store" in response.headers["cache-control"]
    assert response.json() == {
        "remaining_searches": 8,
        "monthly_allowance_remaining": 5,
        "purchased_remaining": 3,
        "subscription_tier": "free",
    }


@pytest.mark.asyncio
async def test_remaining_searches_rejects_other_user(api):
    client, _ = api

    response = await client.get(
        f"/lead-finder/remaining-searches?user_id={OTHER_USER_ID}",
        headers=TEST_AUTH_HEADER,
    )

    assert response.status_code == 403
    assert response.json() == {"error": "user_id does not match authenticated session."}


@pytest.mark.asyncio
async def test_usage_summary_lists_history_and_packages(api, session_maker):
    client, upstream = api
    upstream.pages = [_places(3), [], _places(1)]
    await _seed_user(session_maker, monthly_limit=5, packages=[("p1", 1)])

    first = await client.get("/lead-finder/search", params=_search_params(), headers=TEST_AUTH_HEADER)
    assert first.status_code == 200
    second = await client.get(
        "/lead-finder/search",
        params=_search_params(query="bakeries"),
        headers=TEST_AUTH_HEADER,
    )
    assert second.status_code == 200

    response = await client.get("/lead-finder/usage", headers=TEST_AUTH_HEADER)

    assert response.status_code == 200
    usage = response.json()
    assert usage["user_id"] == TEST_USER_ID
    assert usage["monthly_limit"] == 5
    assert usage["used_searches"] == 1
    assert usage["remaining_searches"] == 4
    assert len(usage["search_history"]) == 2
    assert {entry["credit_source"] for entry in usage["search_history"]} == {"package", "monthly"}
    assert usage["purchased_packages"][0]["remaining_searches"] == 0


@pytest.mark.asyncio
async def test_package_catalog_and_grants(api, session_maker):
    client, _ = api
    async with session_maker() as session:
        session.add_all(
            [
                SearchPackage(id="big", name="Agency", searches_count=100, price=49.0, active=True),
                SearchPackage(id="small", name="Starter", searches_count=10, price=9.0, active=True),
                SearchPackage(id="retired", name="Legacy", searches_count=5, price=1.0, active=False),
            ]
        )
        await session.commit()

    catalog = await client.get("/lead-finder/packages", headers=TEST_AUTH_HEADER)
    assert catalog.status_code == 200
    assert [item["id"] for item in catalog.json()["packages"]] == ["small", "big"]

    granted = await client.post(
        "/lead-finder/packages/grant",
        json={"package_id": "small"},
        headers=TEST_AUTH_HEADER,
    )
    assert granted.status_code == 200
    assert granted.json()["credits_added"] == 10
    assert granted.json()["total_remaining"] == 10

    topped_up = await client.post(
        "/lead-finder/packages/grant",
        json={"credits": 5},
        headers=TEST_AUTH_HEADER,
    )
    assert topped_up.status_code == 200
    assert topped_up.json()["total_remaining"] == 15

    retired = await client.post(
        "/lead-finder/packages/grant",
        json={"package_id": "retired"},
        headers=TEST_AUTH_HEADER,
    )
    assert retired.status_code == 404

    empty = await client.post("/lead-finder/packages/grant", json={}, headers=TEST_AUTH_HEADER)
    assert empty.status_code == 422


@pytest.mark.asyncio
async def test_granting_to_another_user_requires_admin(api, monkeypatch):
    client, _ = api

    denied = await client.post(
        "/lead-finder/packages/grant",
        json={"user_id": OTHER_USER_ID, "credits": 3},
        headers=TEST_AUTH_HEADER,
    )
    assert denied.status_code == 403

    monkeypatch.setattr(settings, "ADMIN_USER_IDS", [TEST_USER_ID])
    allowed = await client.post(
        "/lead-finder/packages/grant",
        json={"user_id": OTHER_USER_ID, "credits": 3},
        headers=TEST_AUTH_HEADER,
    )
    assert allowed.status_code == 200
    assert allowed.json()["total_remaining"] == 3
