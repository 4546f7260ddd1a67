def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").status_code == 200


def test_validation_errors_are_400_with_readable_message(client, doctor):
    response = client.post(
        "/appointments",
        json={
            "doctorId": doctor.id,
            "date": "2026-10-26",
            "time": "10:00",
            "patientName": "Saraa",
            "patientPhone": "12",
        },
    )

    assert response.status_code == 400
    assert response.json() == {"detail": "Phone number must contain 8 to 15 digits"}


def test_domain_errors_use_detail_shape(client):
    response = client.get("/appointments/missing")

    assert response.status_code == 404
    assert response.json() == {"detail": "Appointment not found"}
