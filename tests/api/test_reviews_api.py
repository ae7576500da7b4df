import pytest
from decimal import Decimal

from shopfront.data.models import Role

@pytest.mark.asyncio
async def test_anyone_can_post_and_read_reviews(client):
    created = await client.post("/api/reviews/", json={"name": "Dana", "review": "Great fit", "rating": "4.5"})
    assert created.status_code == 201
    review = created.json()
    assert Decimal(review["rating"]) == Decimal("4.5")

    defaulted = await client.post("/api/reviews/", json={"name": "Eli", "review": "Fine"})
    assert Decimal(defaulted.json()["rating"]) == Decimal("5")

    fetched = await client.get(f"/api/reviews/{review['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["review"] == "Great fit"

    page = (await client.get("/api/reviews/?limit=1")).json()
    assert page["pagination"]["total"] == 2
    assert page["pagination"]["has_next_page"]
    assert len(page["reviews"]) == 1

    assert (await client.get("/api/reviews/999")).status_code == 404

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"review": "No name"},
        {"name": "Dana"},
        {"name": "Dana", "review": "Too good", "rating": 6},
        {"name": "Dana", "review": "Too bad", "rating": 0},
    ],
)
async def test_invalid_reviews_are_400(client, payload):
    response = await client.post("/api/reviews/", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == "Validation error"

@pytest.mark.asyncio
async def test_admin_edits_and_deletes_reviews(client, seed):
    admin = await seed.user("root", role=Role.ADMIN)
    customer = await seed.user("alice")
    review_id = (await client.post("/api/reviews/", json={"name": "Dana", "review": "Okay", "rating": 3})).json()["id"]
    url = f"/api/reviews/{review_id}"

    assert (await client.put(url, json={"rating": 4}, headers=seed.headers(customer))).status_code == 403
    assert (await client.put(url, json={"rating": 4})).status_code == 401

    updated = await client.put(url, json={"rating": 4}, headers=seed.headers(admin))
    assert updated.status_code == 200
    assert Decimal(updated.json()["rating"]) == Decimal("4")
    assert updated.json()["review"] == "Okay"

    assert (await client.put(url, json={}, headers=seed.headers(admin))).status_code == 400
    assert (await client.put("/api/reviews/999", json={"name": "x"}, headers=seed.headers(admin))).status_code == 404

    deleted = await client.delete(url, headers=seed.headers(admin))
    assert deleted.status_code == 200
    assert deleted.json()["id"] == review_id
    assert (await client.get(url)).status_code == 404
    assert (await client.delete(url, headers=seed.headers(admin))).status_code == 404

@pytest.mark.asyncio
async def test_review_stats_are_admin_only(client, seed):
    admin = await seed.user("root", role=Role.ADMIN)
    customer = await seed.user("alice")
    for rating in (5, 5, 3):
        await client.post("/api/reviews/", json={"name": "Dana", "review": "Text", "rating": rating})

    assert (await client.get("/api/reviews/stats/summary", headers=seed.headers(customer))).status_code == 403

    stats = (await client.get("/api/reviews/stats/summary", headers=seed.headers(admin))).json()
    assert stats["total_reviews"] == 3
    assert Decimal(stats["average_rating"]) == Decimal("4.3")
    assert [(Decimal(row["rating"]), row["count"]) for row in stats["rating_distribution"]] == [
        (Decimal("5"), 2),
        (Decimal("3"), 1),
    ]
