from fastapi import status

from app.models.business import LISTING_APPROVED, LISTING_PENDING, LISTING_REJECTED
from app.models.notification import Notification
from tests.conftest import make_business


def test_create_business(client, owner, auth_headers):
    """New listings belong to the caller and start pending moderation."""
    response = client.post(
        "/api/v1/businesses",
        json={"name": "Érablière Gagnon", "category": "maple", "city": "Lévis", "province": "QC"},
        headers=auth_headers(owner),
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["name"] == "Érablière Gagnon"
    assert data["owner_id"] == str(owner.id)
    assert data["status"] == LISTING_PENDING
    assert "id" in data


def test_create_business_requires_auth(client):
    response = client.post("/api/v1/businesses", json={"name": "Anonymous Farm"})
    assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)


def test_create_business_validates_province(client, owner, auth_headers):
    response = client.post(
        "/api/v1/businesses",
        json={"name": "Too Long", "province": "QUE"},
        headers=auth_headers(owner),
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_list_businesses_only_shows_approved(client, db_session, owner):
    make_business(db_session, owner, name="Fromagerie Tremblay")
    make_business(db_session, owner, name="Miel Dubois", status=LISTING_PENDING)
    make_business(db_session, owner, name="Verger Fortin", status=LISTING_REJECTED)

    response = client.get("/api/v1/businesses")
    assert response.status_code == status.HTTP_200_OK
    assert [b["name"] for b in response.json()] == ["Fromagerie Tremblay"]


def test_list_businesses_with_filters(client, db_session, owner):
    make_business(db_session, owner, name="Fromagerie Tremblay")
    ontario = make_business(db_session, owner, name="Fromagerie Kingston")
    ontario.province = "ON"
    db_session.commit()

    response = client.get("/api/v1/businesses?name=fromagerie&province=qc")
    assert response.status_code == status.HTTP_200_OK
    assert [b["name"] for b in response.json()] == ["Fromagerie Tremblay"]


def test_get_business(client, business):
    response = client.get(f"/api/v1/businesses/{business.id}")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["id"] == str(business.id)


def test_get_business_not_found(client):
    response = client.get("/api/v1/businesses/00000000-0000-0000-0000-000000000000")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_admin_approves_listing(client, db_session, owner, admin, auth_headers):
    listing = make_business(db_session, owner, name="Miel Dubois", status=LISTING_PENDING)

    response = client.post(
        f"/api/v1/businesses/{listing.id}/moderation",
        json={"approve": True},
        headers=auth_headers(admin),
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["user_id"] == str(owner.id)
    assert data["type"] == "listing_approved"
    assert data["read"] is False

    db_session.refresh(listing)
    assert listing.status == LISTING_APPROVED


def test_non_admin_cannot_moderate(client, db_session, owner, requester, auth_headers):
    listing = make_business(db_session, owner, status=LISTING_PENDING)

    response = client.post(
        f"/api/v1/businesses/{listing.id}/moderation",
        json={"approve": True},
        headers=auth_headers(requester),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"]["error"] == "permission_denied"
    assert db_session.query(Notification).count() == 0
