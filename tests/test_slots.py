from datetime import date, datetime

from conftest import NEXT_MONDAY, NEXT_SUNDAY, TODAY

from clinic_api.models import Appointment, AppointmentStatus, Doctor, Patient


def add_appointment(db, doctor, on_date, time, status):
    patient = db.query(Patient).filter(Patient.phone == "88001122").first()
    if not patient:
        patient = Patient(phone="88001122", name="Tuya")
        db.add(patient)
        db.commit()
    db.add(Appointment(patient_id=patient.id, doctor_id=doctor.id, date=on_date, time=time, status=status))
    db.commit()


def test_scenario_a_all_slots_free(client, doctor, monday_schedule):
    response = client.get(f"/doctors/{doctor.id}/slots", params={"date": NEXT_MONDAY})

    assert response.status_code == 200
    body = response.json()
    assert body["date"] == NEXT_MONDAY
    assert body["doctorId"] == doctor.id
    assert "message" not in body
    assert body["slots"] == [
        {"time": t, "available": True}
        for t in ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]
    ]


def test_live_appointments_block_slots(client, db, doctor, monday_schedule):
    monday = date(2026, 10, 26)
    add_appointment(db, doctor, monday, "09:00", AppointmentStatus.PENDING)
    add_appointment(db, doctor, monday, "09:30", AppointmentStatus.PAID)
    add_appointment(db, doctor, monday, "10:00", AppointmentStatus.CONFIRMED)
    add_appointment(db, doctor, monday, "10:30", AppointmentStatus.CANCELLED)
    add_appointment(db, doctor, monday, "11:00", AppointmentStatus.COMPLETED)

    slots = client.get(f"/doctors/{doctor.id}/slots", params={"date": NEXT_MONDAY}).json()["slots"]

    availability = {s["time"]: s["available"] for s in slots}
    assert availability == {
        "09:00": False,
        "09:30": False,
        "10:00": False,
        "10:30": True,
        "11:00": True,
        "11:30": True,
    }


def test_today_hides_started_slots(client, clock, doctor, monday_schedule):
    clock.now = datetime(2026, 10, 19, 10, 0)

    slots = client.get(f"/doctors/{doctor.id}/slots", params={"date": TODAY.isoformat()}).json()["slots"]

    availability = {s["time"]: s["available"] for s in slots}
    assert availability["09:30"] is False
    assert availability["10:00"] is False
    assert availability["10:30"] is True
    assert availability["11:30"] is True


def test_day_without_schedule_returns_message(client, doctor, monday_schedule):
    response = client.get(f"/doctors/{doctor.id}/slots", params={"date": NEXT_SUNDAY})

    assert response.status_code == 200
    body = response.json()
    assert body["slots"] == []
    assert body["message"] == "Doctor does not work on this day"


def test_inactive_schedule_counts_as_no_schedule(client, db, doctor, monday_schedule):
    monday_schedule.is_active = False
    db.commit()

    body = client.get(f"/doctors/{doctor.id}/slots", params={"date": NEXT_MONDAY}).json()

    assert body["slots"] == []
    assert body["message"] == "Doctor does not work on this day"


def test_past_date_rejected(client, doctor, monday_schedule):
    response = client.get(f"/doctors/{doctor.id}/slots", params={"date": "2026-10-12"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot select a past date"


def test_malformed_date_rejected(client, doctor):
    response = client.get(f"/doctors/{doctor.id}/slots", params={"date": "26-10-2026"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Date must be in YYYY-MM-DD format"


def test_unknown_or_inactive_doctor(client, db):
    assert client.get("/doctors/missing/slots", params={"date": NEXT_MONDAY}).status_code == 404

    retired = Doctor(name="Retired", is_active=False)
    db.add(retired)
    db.commit()
    response = client.get(f"/doctors/{retired.id}/slots", params={"date": NEXT_MONDAY})
    assert response.status_code == 404
    assert response.json()["detail"] == "Doctor not found"
