"""EMR FHIR Server: Patient, Appointment and Encounter records behind a FHIR-shaped REST API."""
