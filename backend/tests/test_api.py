import os
import sys
from uuid import uuid4

from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from app.auth import create_access_token
from app.main import app
from app.services.account_directory import account_directory
from app.services.asset_store import asset_store

client = TestClient(app)


def _register(role: str, name: str = "") -> str:
    suffix = uuid4().hex[:8]
    response = client.post(
        "/accounts",
        json={
            "name": name or f"{role.title()} {suffix}",
            "email": f"{role}_{suffix}@example.com",
            "role": role,
        },
    )
    assert response.status_code == 201
    return response.json()["id"]


def _admin() -> str:
    suffix = uuid4().hex[:8]
    return account_directory.create(name=f"Admin {suffix}", email=f"admin_{suffix}@example.com", role="admin").id


def _rate(reviewer_id: str, provider_id: str, score, **extra):
    payload = {
        "reviewer_id": reviewer_id,
        "provider_id": provider_id,
        "score": score,
        "experience": "Vaccinated the whole herd",
    }
    payload.update(extra)
    return client.post("/ratings", json=payload)


def _book(requester_id: str, provider_id: str, **overrides):
    payload = {
        "user_id": requester_id,
        "provider_id": provider_id,
        "patient_name": "Lali",
        "patient_phone": "+8801700000000",
        "animal_type": "Goat",
        "problem": "Limping on the front leg",
        "preferred_date": "2026-10-21",
        "preferred_time": "09:00",
        "urgency": "urgent",
    }
    payload.update(overrides)
    return client.post("/appointments/book", json=payload)


def test_health_and_ready():
    assert client.get("/health").json()["status"] == "ok"
    ready = client.get("/ready")
    assert ready.status_code == 200
    assert ready.json()["db"] == "ok"


def test_register_rejects_duplicate_email_and_admin_role():
    suffix = uuid4().hex[:8]
    body = {"name": "Rahim", "email": f"rahim_{suffix}@example.com", "role": "farmer"}
    assert client.post("/accounts", json=body).status_code == 201
    assert client.post("/accounts", json=body).status_code == 409

    admin_body = {"name": "Root", "email": f"root_{suffix}@example.com", "role": "admin"}
    assert client.post("/accounts", json=admin_body).status_code == 422


def test_get_unknown_account_returns_404():
    assert client.get("/accounts/usr_missing").status_code == 404


def test_rating_submit_then_resubmit_updates_aggregate():
    farmer = _register("farmer")
    vet = _register("veterinarian")

    first = _rate(farmer, vet, 4)
    assert first.status_code == 201
    assert first.json()["created"] is True
    assert first.json()["provider_rating"] == 4.0

    second = _rate(farmer, vet, 2)
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["rating"]["id"] == first.json()["rating"]["id"]
    assert second.json()["provider_rating"] == 2.0

    summary = client.get(f"/ratings/providers/{vet}")
    assert summary.status_code == 200
    assert summary.json()["count"] == 1
    assert summary.json()["rating"] == 2.0
    assert client.get(f"/accounts/{vet}").json()["rating"] == 2.0

    mine = client.get(f"/ratings/providers/{vet}/mine", params={"user_id": farmer})
    assert mine.json()["score"] == 2


def test_rating_error_mapping():
    farmer = _register("farmer")
    buyer = _register("buyer")
    vet = _register("veterinarian")

    assert _rate(vet, vet, 3).status_code == 400
    assert _rate(farmer, vet, 7).status_code == 400
    assert _rate(farmer, vet, 4, experience="").status_code == 400
    assert _rate(buyer, vet, 4).status_code == 403
    assert _rate(farmer, "usr_missing", 4).status_code == 404
    assert _rate(farmer, buyer, 4).status_code == 404
    assert client.get(f"/ratings/providers/{vet}").json()["count"] == 0


def test_rating_delete_flow():
    farmer = _register("farmer")
    other_farmer = _register("farmer")
    vet = _register("veterinarian")
    rating_id = _rate(farmer, vet, 5).json()["rating"]["id"]

    forbidden = client.delete(f"/ratings/{rating_id}", params={"actor_user_id": other_farmer})
    assert forbidden.status_code == 403

    deleted = client.delete(f"/ratings/{rating_id}", params={"actor_user_id": farmer})
    assert deleted.status_code == 200
    assert client.get(f"/ratings/providers/{vet}").json()["rating"] == 0.0
    assert client.delete(f"/ratings/{rating_id}", params={"actor_user_id": farmer}).status_code == 404


def test_token_for_a_different_account_is_rejected():
    farmer = _register("farmer")
    other_farmer = _register("farmer")
    vet = _register("veterinarian")
    token, _ = create_access_token(other_farmer)

    response = client.post(
        "/ratings",
        json={"reviewer_id": farmer, "provider_id": vet, "score": 5, "experience": "Great"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 403

    own_token, _ = create_access_token(farmer)
    accepted = client.post(
        "/ratings",
        json={"reviewer_id": farmer, "provider_id": vet, "score": 5, "experience": "Great"},
        headers={"Authorization": f"Bearer {own_token}"},
    )
    assert accepted.status_code == 201


def test_admin_rating_list_and_repair():
    admin = _admin()
    farmer = _register("farmer")
    vet = _register("veterinarian")
    _rate(farmer, vet, 3)

    assert client.get("/ratings", params={"actor_user_id": farmer}).status_code == 403
    listed = client.get("/ratings", params={"actor_user_id": admin})
    assert listed.status_code == 200
    assert any(row["provider_id"] == vet for row in listed.json())

    assert client.post("/admin/ratings/repair", params={"actor_user_id": farmer}).status_code == 403
    repaired = client.post("/admin/ratings/repair", params={"actor_user_id": admin})
    assert repaired.status_code == 200
    assert repaired.json()["providers"][vet] == 3.0


def test_appointment_lifecycle_over_http():
    farmer = _register("farmer")
    vet = _register("veterinarian")

    booked = _book(farmer, vet)
    assert booked.status_code == 201
    appointment_id = booked.json()["id"]
    assert booked.json()["status"] == "pending"
    assert booked.json()["urgency"] == "urgent"

    def _update(action, **extra):
        return client.put(
            f"/appointments/{appointment_id}/status",
            json={"actor_user_id": vet, "action": action, **extra},
        )

    assert client.put(
        f"/appointments/{appointment_id}/status",
        json={"actor_user_id": farmer, "action": "confirm"},
    ).status_code == 403
    assert _update("confirm").status_code == 200
    assert _update("confirm").status_code == 409
    assert _update("cancel").status_code == 400
    assert _update("teleport").status_code == 409

    completed = _update("complete", notes="Bandaged, recheck in a week")
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["completed_at"]

    history = client.get(f"/appointments/{appointment_id}/history", params={"user_id": farmer})
    assert [row["to_status"] for row in history.json()] == ["pending", "confirmed", "completed"]

    mine = client.get("/appointments/user", params={"user_id": farmer})
    assert [row["id"] for row in mine.json()] == [appointment_id]

    stats = client.get("/appointments/stats", params={"user_id": vet})
    assert stats.status_code == 200
    assert stats.json()["total_patients"] == 1
    assert stats.json()["pending"] == 0

    notifications = client.get("/notifications", params={"user_id": farmer})
    assert notifications.status_code == 200
    assert notifications.json()[0]["category"] == "appointment"


def test_appointment_error_mapping():
    farmer = _register("farmer")
    vet = _register("veterinarian")

    assert _book(farmer, vet, patient_name="").status_code == 400
    assert _book(farmer, farmer).status_code == 404
    assert client.get("/appointments/apt_missing", params={"user_id": farmer}).status_code == 404
    assert client.get("/appointments/veterinarian", params={"user_id": farmer}).status_code == 403
    assert client.get("/appointments/veterinarian", params={"user_id": vet, "status": "later"}).status_code == 400
    assert client.get("/appointments/stats", params={"user_id": farmer}).status_code == 403


def test_account_deletion_cascades_over_http():
    admin = _admin()
    vet = _register("veterinarian")
    url = asset_store.store("calf-http-1", b"png")
    assert client.get(url).content == b"png"
    listing = client.post(
        "/listings",
        json={
            "user_id": vet,
            "title": "Friesian calf",
            "breed": "Friesian",
            "animal_type": "Cattle",
            "description": "Six months old",
            "price": 42000,
            "images": [{"url": url, "asset_id": "calf-http-1"}],
        },
    )
    assert listing.status_code == 201
    product = client.post(
        "/products",
        json={
            "user_id": vet,
            "title": "Mineral lick",
            "category": "feed",
            "description": "5 kg block",
            "price": 300,
        },
    )
    assert product.status_code == 201
    _rate(_register("farmer"), vet, 4)

    forbidden = client.delete(f"/accounts/{vet}", params={"actor_user_id": _register("farmer")})
    assert forbidden.status_code == 403

    report = client.delete(f"/accounts/{vet}", params={"actor_user_id": admin})
    assert report.status_code == 200
    body = report.json()
    assert body["deleted"] is True
    assert body["removed"]["listings"] == 1
    assert body["removed"]["products"] == 1
    assert body["removed"]["ratings"] == 1
    assert body["failed_dependents"] == []

    assert client.get(f"/accounts/{vet}").status_code == 404
    assert client.get(f"/listings/{listing.json()['id']}").status_code == 404
    assert client.get(f"/products/{product.json()['id']}").status_code == 404
    assert not asset_store.exists("calf-http-1")


def test_listing_delete_is_owner_or_admin():
    seller = _register("seller")
    stranger = _register("buyer")
    created = client.post(
        "/listings",
        json={
            "user_id": seller,
            "title": "Black Bengal goat",
            "breed": "Black Bengal",
            "animal_type": "Goat",
            "description": "Healthy doe",
            "price": 9000,
        },
    )
    listing_id = created.json()["id"]

    assert client.get("/listings", params={"seller_id": seller}).json()[0]["id"] == listing_id
    assert client.delete(f"/listings/{listing_id}", params={"actor_user_id": stranger}).status_code == 403
    deleted = client.delete(f"/listings/{listing_id}", params={"actor_user_id": seller})
    assert deleted.status_code == 200
    assert deleted.json()["resource_type"] == "listing"
    assert client.delete(f"/listings/{listing_id}", params={"actor_user_id": seller}).status_code == 404


def test_buyer_cannot_create_listing():
    buyer = _register("buyer")
    response = client.post(
        "/listings",
        json={
            "user_id": buyer,
            "title": "Duck",
            "breed": "Khaki Campbell",
            "animal_type": "Poultry",
            "description": "Layer",
            "price": 500,
        },
    )
    assert response.status_code == 403
