import httpx
import pytest

from chronicle.application.api.api_server import create_app
from chronicle.domain.ledger.codec import cid_for_content

from tests.conftest import make_ledger

pytestmark = pytest.mark.anyio


@pytest.fixture
async def client(ledger):
    app = create_app(ledger=ledger)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def test_empty_listing(client):
    response = await client.get("/records")

    assert response.status_code == 200
    body = response.json()
    assert body["data"] == []
    assert body["message"] == "No memory found"
    assert body["pagination"] == {"total": 0, "page": 1, "limit": 10, "totalPages": 0}


async def test_listing_paginates_newest_first(client, ledger):
    for n in range(5):
        await ledger.append({"type": "note", "n": n})

    response = await client.get("/records", params={"page": 2, "limit": 2})
    body = response.json()

    assert body["pagination"] == {"total": 5, "page": 2, "limit": 2, "totalPages": 3}
    assert [item["content"]["n"] for item in body["data"]] == [2, 1]
    assert "message" not in body


async def test_listing_filters(client, ledger):
    await ledger.append({"type": "note", "author": "Ada", "text": "about rivers"})
    await ledger.append({"type": "lesson", "author": "Bo", "text": "about bread"})

    by_type = (await client.get("/records", params={"type": "lesson"})).json()
    by_author = (await client.get("/records", params={"author": "ada"})).json()
    by_text = (await client.get("/records", params={"search": "RIVERS"})).json()

    assert [i["content"]["text"] for i in by_type["data"]] == ["about bread"]
    assert [i["content"]["text"] for i in by_author["data"]] == ["about rivers"]
    assert [i["content"]["text"] for i in by_text["data"]] == ["about rivers"]


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}])
async def test_invalid_pagination(client, params):
    response = await client.get("/records", params=params)
    assert response.status_code == 400


async def test_get_cached_record(client, ledger):
    first = await ledger.append({"text": "one"})
    second = await ledger.append({"text": "two"})

    body = (await client.get(f"/records/{second.cid}")).json()

    assert body["cid"] == second.cid
    assert body["previousCid"] == first.cid
    assert body["content"]["text"] == "two"
    assert body["content"]["signature"]


async def test_get_genesis_has_null_previous(client, ledger):
    genesis = await ledger.append({"text": "first"})

    body = (await client.get(f"/records/{genesis.cid}")).json()
    assert body["previousCid"] is None


async def test_get_uncached_record_is_fetched_and_backfilled(ledger, store, chain, signer, retry):
    results = [await ledger.append({"n": n}) for n in range(3)]
    reader = make_ledger(store, chain, signer, retry)
    app = create_app(ledger=reader)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get(f"/records/{results[-1].cid}")

    assert response.status_code == 200
    await reader.backfill.wait_idle()
    for result in results:
        assert await reader.cache.contains(result.cid)
    await reader.aclose()


async def test_unknown_record_is_404(client):
    response = await client.get(f"/records/{cid_for_content(b'nobody stored this')}")

    assert response.status_code == 404
    assert response.json()["detail"] == "Memory not found"


async def test_health(client, ledger):
    result = await ledger.append({"n": 1})

    body = (await client.get("/health")).json()
    assert body["status"] == "healthy"
    assert body["head_cid"] == result.cid


def test_create_app_requires_a_ledger_source():
    with pytest.raises(ValueError):
        create_app()
