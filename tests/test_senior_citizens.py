"""Tests for the senior citizen registry."""
from datetime import date

import pytest

from app.oscaims.db import session_scope
from app.oscaims.models import AuditLog
from app.oscaims.modules.senior_citizens.models import age_on
from app.oscaims.modules.senior_citizens.service import validate_senior_payload
from app.oscaims.utils import ValidationError


def _senior(**overrides):
    payload = {
        "osca_id": "OSCA-0001",
        "first_name": "Lourdes",
        "last_name": "Santos",
        "birthdate": "1950-04-12",
        "sex": "Female",
        "barangay": "San Isidro",
        "contact_number": "0917 123 4567",
    }
    payload.update(overrides)
    return payload


def test_requires_login(client):
    assert client.get("/api/senior-citizens/").status_code == 401
    assert client.post("/api/senior-citizens/", json=_senior()).status_code == 401


def test_create_and_detail(app, admin_client):
    r = admin_client.post("/api/senior-citizens/", json=_senior())
    assert r.status_code == 201
    body = r.json
    assert body["full_name"] == "Lourdes Santos"
    assert body["sex"] == "female"
    assert body["status"] == "active"
    assert body["age"] >= 75

    r = admin_client.get(f"/api/senior-citizens/{body['id']}")
    assert r.status_code == 200
    assert r.json["osca_id"] == "OSCA-0001"

    with session_scope(app) as s:
        assert s.query(AuditLog).filter(AuditLog.action == "senior_citizen.create").count() == 1


def test_detail_404(admin_client):
    assert admin_client.get("/api/senior-citizens/404").status_code == 404


def test_duplicate_osca_id_rejected(admin_client):
    admin_client.post("/api/senior-citizens/", json=_senior())
    r = admin_client.post("/api/senior-citizens/", json=_senior(first_name="Other"))
    assert r.status_code == 400
    assert "already registered" in r.json["message"]


def test_validation_errors(admin_client):
    r = admin_client.post("/api/senior-citizens/", json={"first_name": "X", "birthdate": "12/01/1950"})
    assert r.status_code == 400
    errors = r.json["errors"]
    assert "Invalid birthdate: expected YYYY-MM-DD." in errors
    assert "Osca id is required." in errors
    assert "Last name is required." in errors


class TestValidateSeniorPayload:
    TODAY = date(2026, 1, 15)

    def test_must_be_sixty(self):
        with pytest.raises(ValidationError) as exc:
            validate_senior_payload(_senior(birthdate="1966-01-16"), creating=True, today=self.TODAY)
        assert "at least 60" in str(exc.value)
        values = validate_senior_payload(_senior(birthdate="1966-01-15"), creating=True, today=self.TODAY)
        assert values["birthdate"] == date(1966, 1, 15)

    def test_future_birthdate(self):
        with pytest.raises(ValidationError):
            validate_senior_payload(_senior(birthdate="2027-01-01"), creating=True, today=self.TODAY)

    def test_enumerations(self):
        with pytest.raises(ValidationError) as exc:
            validate_senior_payload(_senior(sex="x", civil_status="complicated", status="gone"), creating=True)
        assert len(exc.value.errors) == 3

    def test_partial_update_only_touches_given_fields(self):
        values = validate_senior_payload({"remarks": "  moved  "}, creating=False)
        assert values == {"remarks": "moved"}


def test_age_on_birthday_boundary():
    assert age_on(date(1960, 6, 1), date(2020, 5, 31)) == 59
    assert age_on(date(1960, 6, 1), date(2020, 6, 1)) == 60


def test_update_status_requires_reason(admin_client):
    sid = admin_client.post("/api/senior-citizens/", json=_senior()).json["id"]

    r = admin_client.put(f"/api/senior-citizens/{sid}", json={"status": "deceased"})
    assert r.status_code == 400

    r = admin_client.put(f"/api/senior-citizens/{sid}", json={"status": "deceased", "reason": "death certificate"})
    assert r.status_code == 200
    assert r.json["status"] == "deceased"

    r = admin_client.put(f"/api/senior-citizens/{sid}", json={"contact_number": "09181112222"})
    assert r.status_code == 200
    assert r.json["contact_number"] == "09181112222"


def test_archive_hides_from_default_list(admin_client):
    sid = admin_client.post("/api/senior-citizens/", json=_senior()).json["id"]
    admin_client.post("/api/senior-citizens/", json=_senior(osca_id="OSCA-0002", first_name="Pedro", last_name="Cruz"))

    assert admin_client.delete(f"/api/senior-citizens/{sid}").status_code == 400
    r = admin_client.delete(f"/api/senior-citizens/{sid}?reason=duplicate")
    assert r.status_code == 200
    assert r.json["status"] == "archived"

    r = admin_client.get("/api/senior-citizens/")
    assert r.json["total"] == 1
    assert r.json["senior_citizens"][0]["last_name"] == "Cruz"

    r = admin_client.get("/api/senior-citizens/?include_archived=1")
    assert r.json["total"] == 2


def test_search_filters_and_paging(admin_client):
    for i, (first, last, brgy) in enumerate(
        [("Ana", "Reyes", "Poblacion"), ("Ben", "Reyes", "San Isidro"), ("Carla", "Lim", "Poblacion")]
    ):
        admin_client.post(
            "/api/senior-citizens/",
            json=_senior(osca_id=f"OSCA-10{i}", first_name=first, last_name=last, barangay=brgy),
        )

    r = admin_client.get("/api/senior-citizens/?q=reyes")
    assert r.json["total"] == 2

    r = admin_client.get("/api/senior-citizens/?barangay=Poblacion")
    assert {x["first_name"] for x in r.json["senior_citizens"]} == {"Ana", "Carla"}

    r = admin_client.get("/api/senior-citizens/?limit=1&offset=1")
    assert r.json["total"] == 3
    assert len(r.json["senior_citizens"]) == 1
    # ordered by last name, first name: Lim, Reyes Ana, Reyes Ben
    assert r.json["senior_citizens"][0]["first_name"] == "Ana"


def test_stats(admin_client):
    admin_client.post("/api/senior-citizens/", json=_senior(osca_id="A", barangay="Poblacion"))
    admin_client.post("/api/senior-citizens/", json=_senior(osca_id="B", barangay="Poblacion"))
    sid = admin_client.post("/api/senior-citizens/", json=_senior(osca_id="C", barangay="Bagong Silang")).json["id"]
    admin_client.put(f"/api/senior-citizens/{sid}", json={"status": "transferred", "reason": "moved"})

    r = admin_client.get("/api/senior-citizens/stats")
    assert r.status_code == 200
    assert r.json["total"] == 3
    assert r.json["by_status"]["active"] == 2
    assert r.json["by_status"]["transferred"] == 1
    assert r.json["active_by_barangay"] == {"Poblacion": 2}
