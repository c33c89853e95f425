"""
API Tests for the FHIR endpoints

Exercises every route under /fhir with a SQLite database: status codes,
Bundle envelopes, Location headers and error payloads.
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from emr.config import settings
from emr.main import app, main
from emr.database import Base, get_db
from emr.models import PatientEntity, AppointmentEntity, EncounterEntity

# Test database (SQLite in /tmp for container compatibility)
SQLALCHEMY_DATABASE_URL = "sqlite:////tmp/test_emr_api.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Drop and recreate tables to ensure clean state
Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db
client = TestClient(app)

# Clean database before each test
@pytest.fixture(autouse=True)
def clean_database():
    """Clean database before each test"""
    db = TestingSessionLocal()
    db.query(EncounterEntity).delete()
    db.query(AppointmentEntity).delete()
    db.query(PatientEntity).delete()
    db.commit()
    db.close()


PATIENT = {
    "resourceType": "Patient",
    "name": [{"use": "official", "family": "Doe", "given": ["John"]}],
    "birthDate": "1990-05-15",
    "gender": "male",
    "telecom": [
        {"system": "phone", "value": "+1234567890", "use": "mobile"},
        {"system": "email", "value": "john.doe@example.com", "use": "home"},
    ],
    "address": [{
        "use": "home",
        "type": "physical",
        "line": ["123 Main St", "Apt 4B"],
        "city": "New York",
        "state": "NY",
        "postalCode": "10001",
        "country": "US",
    }],
}


def create_patient(**overrides) -> dict:
    response = client.post("/fhir/Patient", json={**PATIENT, **overrides})
    assert response.status_code == 201
    return response.json()


def appointment_payload(patient_id: str, **overrides) -> dict:
    payload = {
        "resourceType": "Appointment",
        "status": "booked",
        "description": "Annual physical",
        "start": "2025-03-01T14:00:00Z",
        "end": "2025-03-01T14:30:00Z",
        "participant": [{"actor": {"reference": f"Patient/{patient_id}"}, "status": "accepted"}],
    }
    payload.update(overrides)
    return payload


def encounter_payload(patient_id: str, start: str = "2025-02-10T08:00:00.000Z", **overrides) -> dict:
    payload = {
        "resourceType": "Encounter",
        "status": "finished",
        "subject": {"reference": f"Patient/{patient_id}"},
        "period": {"start": start},
        "text": {"status": "generated", "div": '<div xmlns="http://www.w3.org/1999/xhtml">Doing well</div>'},
    }
    payload.update(overrides)
    return payload


# ============================================================================
# HEALTH CHECK
# ============================================================================

def test_health_check():
    """Test health check returns {\"status\": \"ok\"}"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

# ============================================================================
# PATIENT
# ============================================================================

def test_create_patient():
    """Test patient creation returns the stored resource and a Location"""
    response = client.post("/fhir/Patient", json={**PATIENT, "id": "client-chosen"})
    assert response.status_code == 201
    data = response.json()
    
    assert data["resourceType"] == "Patient"
    assert data["id"] and data["id"] != "client-chosen"
    assert "lastUpdated" in data["meta"]
    assert data["name"] == [{"use": "official", "family": "Doe", "given": ["John"]}]
    assert data["birthDate"] == "1990-05-15"
    assert data["gender"] == "male"
    assert len(data["telecom"]) == 2
    assert data["address"][0]["text"] == "123 Main St, Apt 4B, New York, NY 10001, US"
    assert data["address"][0]["line"] == ["123 Main St", "Apt 4B"]
    assert response.headers["location"].endswith(f"/fhir/Patient/{data['id']}")

def test_create_patient_normalizes_gender():
    """Test unrecognized genders are stored as unknown"""
    data = create_patient(gender="robot")
    assert data["gender"] == "unknown"

def test_create_patient_wrong_resource_type():
    """Test a non-Patient body is rejected with an error payload"""
    response = client.post("/fhir/Patient", json={"resourceType": "Encounter"})
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Invalid FHIR Patient resource"
    assert "details" in data

def test_create_patient_malformed_shape():
    """Test structural mismatches are 400s"""
    response = client.post("/fhir/Patient", json={"resourceType": "Patient", "name": "John Doe"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid FHIR Patient resource"

def test_create_patient_invalid_json():
    """Test an unreadable body is a 400, not a 422"""
    response = client.post(
        "/fhir/Patient",
        content="{not json",
        headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid FHIR Patient resource"

def test_get_patient():
    """Test retrieving a patient by ID"""
    created = create_patient()
    
    response = client.get(f"/fhir/Patient/{created['id']}")
    assert response.status_code == 200
    assert response.json()["name"][0]["family"] == "Doe"

def test_get_patient_not_found():
    """Test 404 for non-existent patient"""
    response = client.get("/fhir/Patient/missing")
    assert response.status_code == 404
    assert "not found" in response.json()["error"].lower()

def test_list_patients_bundle():
    """Test the patient list is a search-set Bundle with full URLs"""
    first = create_patient()
    second = create_patient(name=[{"family": "Smith", "given": ["Jane"]}])
    
    response = client.get("/fhir/Patient")
    assert response.status_code == 200
    bundle = response.json()
    
    assert bundle["resourceType"] == "Bundle"
    assert bundle["type"] == "searchset"
    assert bundle["total"] == 2
    assert bundle["id"]
    ids = {entry["resource"]["id"] for entry in bundle["entry"]}
    assert ids == {first["id"], second["id"]}
    for entry in bundle["entry"]:
        assert entry["fullUrl"] == f"http://testserver/fhir/Patient/{entry['resource']['id']}"

def test_list_patients_empty():
    """Test an empty table gives an empty Bundle"""
    bundle = client.get("/fhir/Patient").json()
    assert bundle["total"] == 0
    assert bundle["entry"] == []

def test_update_patient():
    """Test full replace keeps the ID and refreshes lastUpdated"""
    created = create_patient()
    
    payload = {**PATIENT, "id": "other-id", "name": [{"family": "Doe", "given": ["Jonathan"]}], "telecom": []}
    response = client.put(f"/fhir/Patient/{created['id']}", json=payload)
    assert response.status_code == 200
    data = response.json()
    
    assert data["id"] == created["id"]
    assert data["name"][0]["given"] == ["Jonathan"]
    assert "telecom" not in data
    assert datetime.fromisoformat(data["meta"]["lastUpdated"]) >= datetime.fromisoformat(created["meta"]["lastUpdated"])
    assert client.get("/fhir/Patient/other-id").status_code == 404

def test_update_patient_not_found():
    """Test 404 when updating non-existent patient"""
    response = client.put("/fhir/Patient/missing", json=PATIENT)
    assert response.status_code == 404

def test_delete_patient():
    """Test patient deletion"""
    created = create_patient()
    
    response = client.delete(f"/fhir/Patient/{created['id']}")
    assert response.status_code == 204
    assert client.get(f"/fhir/Patient/{created['id']}").status_code == 404

def test_delete_patient_not_found():
    """Test 404 when deleting non-existent patient"""
    assert client.delete("/fhir/Patient/missing").status_code == 404

def test_delete_patient_cascades():
    """Test deleting a patient removes its appointments and encounters"""
    patient = create_patient()
    other = create_patient(name=[{"family": "Smith", "given": ["Jane"]}])
    appointment = client.post("/fhir/Appointment", json=appointment_payload(patient["id"])).json()
    encounter = client.post("/fhir/Encounter", json=encounter_payload(patient["id"])).json()
    kept = client.post("/fhir/Appointment", json=appointment_payload(other["id"])).json()
    
    assert client.delete(f"/fhir/Patient/{patient['id']}").status_code == 204
    
    assert client.get(f"/fhir/Appointment/{appointment['id']}").status_code == 404
    assert client.get(f"/fhir/Encounter/{encounter['id']}").status_code == 404
    appointment_ids = [e["resource"]["id"] for e in client.get("/fhir/Appointment").json()["entry"]]
    assert appointment_ids == [kept["id"]]
    assert client.get("/fhir/Encounter").json()["total"] == 0

def test_patient_appointments_and_encounters():
    """Test the per-patient sub-resource listings"""
    patient = create_patient()
    client.post("/fhir/Appointment", json=appointment_payload(patient["id"]))
    client.post("/fhir/Encounter", json=encounter_payload(patient["id"], "2025-01-01T08:00:00.000Z"))
    client.post("/fhir/Encounter", json=encounter_payload(patient["id"], "2025-06-01T08:00:00.000Z"))
    
    appointments = client.get(f"/fhir/Patient/{patient['id']}/Appointment").json()
    assert appointments["total"] == 1
    assert appointments["entry"][0]["fullUrl"].startswith("http://testserver/fhir/Appointment/")
    
    encounters = client.get(f"/fhir/Patient/{patient['id']}/Encounter").json()
    starts = [e["resource"]["period"]["start"] for e in encounters["entry"]]
    assert starts == ["2025-06-01T08:00:00.000Z", "2025-01-01T08:00:00.000Z"]

def test_patient_sub_resources_for_missing_patient():
    """Test per-patient listings 404 when the patient doesn't exist"""
    assert client.get("/fhir/Patient/missing/Appointment").status_code == 404
    assert client.get("/fhir/Patient/missing/Encounter").status_code == 404

# ============================================================================
# APPOINTMENT
# ============================================================================

def test_create_appointment():
    """Test appointment creation"""
    patient = create_patient()
    
    response = client.post("/fhir/Appointment", json=appointment_payload(patient["id"]))
    assert response.status_code == 201
    data = response.json()
    
    assert data["resourceType"] == "Appointment"
    assert data["status"] == "booked"
    assert data["description"] == "Annual physical"
    assert data["participant"] == [{"actor": {"reference": f"Patient/{patient['id']}"}}]
    assert data["start"].startswith("2025-03-01T14:00:00")
    assert data["end"].startswith("2025-03-01T14:30:00")
    assert response.headers["location"].endswith(f"/fhir/Appointment/{data['id']}")

def test_create_appointment_missing_patient():
    """Test an unknown patient reference is a 400 carrying the patient id"""
    response = client.post("/fhir/Appointment", json=appointment_payload("ghost"))
    assert response.status_code == 400
    assert response.json() == {"error": "Patient not found", "patientId": "ghost"}
    assert client.get("/fhir/Appointment").json()["total"] == 0

def test_create_appointment_without_participant():
    """Test an appointment with no patient participant is rejected"""
    response = client.post("/fhir/Appointment", json=appointment_payload("x", participant=[]))
    assert response.status_code == 400
    assert response.json()["patientId"] == ""

def test_create_appointment_bad_instant():
    """Test a non-instant start is malformed input"""
    patient = create_patient()
    response = client.post("/fhir/Appointment", json=appointment_payload(patient["id"], start="soon"))
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid FHIR Appointment resource"

def test_appointment_unknown_status_shown_as_booked():
    """Test an unknown wire status is stored but projected as booked"""
    patient = create_patient()
    data = client.post("/fhir/Appointment", json=appointment_payload(patient["id"], status="waitlist")).json()
    assert data["status"] == "booked"

def test_get_update_delete_appointment():
    """Test the appointment read/replace/delete cycle"""
    patient = create_patient()
    created = client.post("/fhir/Appointment", json=appointment_payload(patient["id"])).json()
    
    response = client.get(f"/fhir/Appointment/{created['id']}")
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]
    
    response = client.put(
        f"/fhir/Appointment/{created['id']}",
        json=appointment_payload(patient["id"], status="cancelled", description="Rescheduled")
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["description"] == "Rescheduled"
    assert response.json()["id"] == created["id"]
    
    assert client.delete(f"/fhir/Appointment/{created['id']}").status_code == 204
    assert client.get(f"/fhir/Appointment/{created['id']}").status_code == 404

def test_update_appointment_missing_patient():
    """Test moving an appointment to an unknown patient is a 400"""
    patient = create_patient()
    created = client.post("/fhir/Appointment", json=appointment_payload(patient["id"])).json()
    
    response = client.put(f"/fhir/Appointment/{created['id']}", json=appointment_payload("ghost"))
    assert response.status_code == 400
    assert response.json()["patientId"] == "ghost"

def test_appointment_not_found():
    """Test 404s for unknown appointment ids"""
    assert client.get("/fhir/Appointment/missing").status_code == 404
    assert client.put("/fhir/Appointment/missing", json=appointment_payload("x")).status_code == 404
    assert client.delete("/fhir/Appointment/missing").status_code == 404

def test_search_appointments():
    """Test searching appointments by patient"""
    john = create_patient()
    jane = create_patient(name=[{"family": "Smith", "given": ["Jane"]}])
    johns = client.post("/fhir/Appointment", json=appointment_payload(john["id"])).json()
    client.post("/fhir/Appointment", json=appointment_payload(jane["id"]))
    
    bundle = client.get("/fhir/Appointment/search", params={"patient": john["id"]}).json()
    assert bundle["total"] == 1
    assert bundle["entry"][0]["resource"]["id"] == johns["id"]
    
    assert client.get("/fhir/Appointment/search").json()["total"] == 2

def test_search_appointments_no_records():
    """Test a patient without appointments gives an empty Bundle"""
    patient = create_patient()
    
    response = client.get("/fhir/Appointment/search", params={"patient": patient["id"]})
    assert response.status_code == 200
    assert response.json()["total"] == 0
    assert response.json()["entry"] == []

# ============================================================================
# ENCOUNTER
# ============================================================================

def test_create_encounter():
    """Test encounter creation derives a one-hour period"""
    patient = create_patient()
    
    response = client.post("/fhir/Encounter", json=encounter_payload(patient["id"], "2025-02-10T08:15:30.123Z"))
    assert response.status_code == 201
    data = response.json()
    
    assert data["resourceType"] == "Encounter"
    assert data["status"] == "finished"
    assert data["subject"] == {"reference": f"Patient/{patient['id']}"}
    assert data["period"] == {"start": "2025-02-10T08:15:30.123Z", "end": "2025-02-10T09:15:30.123Z"}
    assert data["text"]["div"] == '<div xmlns="http://www.w3.org/1999/xhtml">Doing well</div>'
    assert response.headers["location"].endswith(f"/fhir/Encounter/{data['id']}")

def test_create_encounter_ignores_client_period_end():
    """Test the period end is always start + 1 hour"""
    patient = create_patient()
    payload = encounter_payload(patient["id"])
    payload["period"]["end"] = "2025-02-12T00:00:00.000Z"
    
    data = client.post("/fhir/Encounter", json=payload).json()
    assert data["period"]["end"] == "2025-02-10T09:00:00.000Z"

def test_create_encounter_without_notes():
    """Test an encounter without narrative has no text element"""
    patient = create_patient()
    payload = encounter_payload(patient["id"])
    del payload["text"]
    
    data = client.post("/fhir/Encounter", json=payload).json()
    assert "text" not in data
    assert data["status"] == "finished"

def test_create_encounter_missing_patient():
    """Test an unknown subject is a 400 carrying the patient id"""
    response = client.post("/fhir/Encounter", json=encounter_payload("ghost"))
    assert response.status_code == 400
    assert response.json()["patientId"] == "ghost"

def test_get_update_delete_encounter():
    """Test the encounter read/replace/delete cycle"""
    patient = create_patient()
    created = client.post("/fhir/Encounter", json=encounter_payload(patient["id"])).json()
    
    assert client.get(f"/fhir/Encounter/{created['id']}").json()["id"] == created["id"]
    
    updated_payload = encounter_payload(
        patient["id"],
        status="cancelled",
        text={"div": '<div xmlns="http://www.w3.org/1999/xhtml">Patient called to cancel</div>'}
    )
    response = client.put(f"/fhir/Encounter/{created['id']}", json=updated_payload)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == created["id"]
    assert data["status"] == "cancelled"
    assert "Patient called to cancel" in data["text"]["div"]
    
    assert client.delete(f"/fhir/Encounter/{created['id']}").status_code == 204
    assert client.get(f"/fhir/Encounter/{created['id']}").status_code == 404

def test_encounter_not_found():
    """Test 404s for unknown encounter ids"""
    assert client.get("/fhir/Encounter/missing").status_code == 404
    assert client.put("/fhir/Encounter/missing", json=encounter_payload("x")).status_code == 404
    assert client.delete("/fhir/Encounter/missing").status_code == 404

def test_list_and_search_encounters_newest_first():
    """Test encounter listings are ordered by start, newest first"""
    john = create_patient()
    jane = create_patient(name=[{"family": "Smith", "given": ["Jane"]}])
    client.post("/fhir/Encounter", json=encounter_payload(john["id"], "2025-01-01T08:00:00.000Z"))
    client.post("/fhir/Encounter", json=encounter_payload(jane["id"], "2025-03-01T08:00:00.000Z"))
    client.post("/fhir/Encounter", json=encounter_payload(john["id"], "2025-02-01T08:00:00.000Z"))
    
    everything = client.get("/fhir/Encounter").json()
    assert [e["resource"]["period"]["start"][:10] for e in everything["entry"]] == [
        "2025-03-01", "2025-02-01", "2025-01-01"
    ]
    
    johns = client.get("/fhir/Encounter/search", params={"patient": john["id"]}).json()
    assert johns["total"] == 2
    assert [e["resource"]["period"]["start"][:10] for e in johns["entry"]] == ["2025-02-01", "2025-01-01"]

def test_search_encounters_unknown_patient():
    """Test searching by an unknown patient returns an empty Bundle"""
    response = client.get("/fhir/Encounter/search", params={"patient": "nobody"})
    assert response.status_code == 200
    assert response.json()["total"] == 0

# ============================================================================
# DATABASE FAILURES
# ============================================================================

def failing_get_db():
    """Session whose commits fail like a lost database connection"""
    db = TestingSessionLocal()
    
    def fail_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
    
    db.commit = fail_commit
    try:
        yield db
    finally:
        db.close()

def test_database_failure_returns_500():
    """Test a failed commit is reported as a 500 persistence failure"""
    app.dependency_overrides[get_db] = failing_get_db
    try:
        response = client.post("/fhir/Patient", json=PATIENT)
    finally:
        app.dependency_overrides[get_db] = override_get_db
    
    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Persistence failure"
    assert "disk I/O error" in data["details"]
    assert set(data) == {"error", "details"}
    assert client.get("/fhir/Patient").json()["total"] == 0

# ============================================================================
# SERVER ENTRY POINT
# ============================================================================

def test_main_runs_uvicorn(monkeypatch):
    """Test emr-serve starts uvicorn with the configured host and port"""
    import uvicorn
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    
    main()
    
    assert calls == [(
        ("emr.main:app",),
        {"host": settings.host, "port": settings.port, "reload": settings.debug}
    )]

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
