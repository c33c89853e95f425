#!/usr/bin/env python3
"""
Database seeding script for demo patients

Loads a few FHIR Patient, Appointment and Encounter resources through
the mappers and the resource store, so the UI has something to show.

Usage:
    python scripts/seed_database.py
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add parent directory to path to import emr modules
sys.path.append(str(Path(__file__).parent.parent))

from emr.database import SessionLocal, engine
from emr.fhir import (
    Appointment,
    AppointmentMapper,
    Encounter,
    EncounterMapper,
    Patient,
    PatientMapper,
    create_formatted_address,
)
from emr.models import Base, PatientEntity
from emr.store import ResourceStore

# Create all tables
Base.metadata.create_all(bind=engine)

DEMO_PATIENTS = [
    {
        "resourceType": "Patient",
        "name": [{"use": "official", "family": "Doe", "given": ["John"]}],
        "birthDate": "1990-05-15",
        "gender": "male",
        "telecom": [
            {"system": "phone", "value": "+1234567890", "use": "mobile"},
            {"system": "email", "value": "john.doe@example.com", "use": "home"},
        ],
        "address": [create_formatted_address({
            "line": ["123 Main St", "Apt 4B"],
            "city": "New York",
            "state": "NY",
            "postalCode": "10001",
            "country": "US",
        })],
    },
    {
        "resourceType": "Patient",
        "name": [{"use": "official", "family": "Smith", "given": ["Jane"]}],
        "birthDate": "1985-12-25",
        "gender": "female",
        "telecom": [{"system": "phone", "value": "+0987654321", "use": "mobile"}],
        "address": [create_formatted_address({
            "line": ["456 Oak Ave", "Suite 7"],
            "city": "Los Angeles",
            "state": "CA",
            "postalCode": "90210",
            "country": "US",
        })],
    },
]


def seed_demo_records():
    """Insert demo patients with one appointment and one encounter each"""
    db = SessionLocal()
    store = ResourceStore(db)
    
    added_count = 0
    skipped_count = 0
    now = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
    
    try:
        for index, payload in enumerate(DEMO_PATIENTS):
            name = payload["name"][0]
            label = f"{name['given'][0]} {name['family']}"
            
            existing = db.query(PatientEntity).filter(
                PatientEntity.family_name == name["family"],
                PatientEntity.given_name == name["given"][0]
            ).first()
            if existing:
                print(f"⊘ Skipped (exists): {label}")
                skipped_count += 1
                continue
            
            patient = store.create(PatientMapper.to_entity(Patient(**payload)))
            reference = {"reference": f"Patient/{patient.id}"}
            
            start = now + timedelta(days=index + 1)
            store.create(AppointmentMapper.to_entity(Appointment(
                status="booked",
                description="Annual physical",
                start=start,
                end=start + timedelta(minutes=30),
                participant=[{"actor": reference}],
            )))
            
            store.create(EncounterMapper.to_entity(Encounter(
                status="finished",
                subject=reference,
                period={"start": (now - timedelta(days=30)).isoformat()},
                text={"status": "generated", "div": "Routine follow-up, no concerns."},
            )))
            
            print(f"✓ Added: {label}")
            added_count += 1
    finally:
        db.close()
    
    print(f"\n✅ Database seeding complete!")
    print(f"   Added: {added_count} patients")
    print(f"   Skipped: {skipped_count} existing patients")

if __name__ == "__main__":
    print("📋 Seeding database with demo patients...\n")
    try:
        seed_demo_records()
    except Exception as e:
        print(f"\n❌ Error seeding database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
