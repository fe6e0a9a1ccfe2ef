import pytest

from inforia import appointments
from inforia.auth import AuthenticatedUser
from inforia.errors import ErrorKind, PipelineError

from conftest import PATIENT_ID, REST_URL, USER_ID, auth_header


APPOINTMENT_ID = "a0000000-0000-4000-8000-000000000001"
URL = f"{REST_URL}/appointments"

USER = AuthenticatedUser(id=USER_ID, access_token="jwt")


def appointment(**fields):
    data = {
        "id": APPOINTMENT_ID,
        "user_id": USER_ID,
        "patient_id": PATIENT_ID,
        "title": "Sesión semanal",
        "start_time": "2024-03-15T10:00:00+00:00",
        "end_time": "2024-03-15T11:00:00+00:00",
        "status": "scheduled",
        "appointment_type": "session",
    }
    data.update(fields)
    return data


def new_appointment(**fields):
    data = {
        "patient_id": PATIENT_ID,
        "title": "  Sesión semanal ",
        "start_time": "2024-03-15T10:00:00Z",
        "end_time": "2024-03-15T11:00:00Z",
    }
    data.update(fields)
    return data


def test_list_appointments_in_range(store, requests_mock):
    m = requests_mock.get(URL, json=[appointment()])

    rows = appointments.list_appointments(
        store, USER, "2024-03-01T00:00:00Z", "2024-03-31T23:59:59Z"
    )
    assert rows == [appointment()]
    qs = m.last_request.qs
    assert qs["user_id"] == [f"eq.{USER_ID}"]
    assert qs["start_time"] == ["gte.2024-03-01t00:00:00+00:00"]
    assert qs["end_time"] == ["lte.2024-03-31t23:59:59+00:00"]
    assert qs["order"] == ["start_time.asc"]


def test_list_appointments_bad_range(store, requests_mock):
    with pytest.raises(PipelineError) as excinfo:
        appointments.list_appointments(store, USER, "yesterday")
    assert excinfo.value.kind is ErrorKind.VALIDATION
    assert requests_mock.call_count == 0


def test_create_appointment(store, requests_mock):
    m = requests_mock.post(URL, status_code=201, json=[appointment()])

    created = appointments.create_appointment(
        store, USER, appointments.AppointmentCreate(**new_appointment())
    )
    assert created["id"] == APPOINTMENT_ID
    body = m.last_request.json()
    assert body["user_id"] == USER_ID
    assert body["title"] == "Sesión semanal"
    assert body["status"] == "scheduled"
    assert body["appointment_type"] == "session"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"patient_id": "123"}, "patient_id must be a valid UUID"),
        ({"title": "   "}, "title is required"),
        ({"end_time": "2024-03-15T09:00:00Z"}, "end_time must be after start_time"),
        ({"end_time": "2024-03-15T10:00:00Z"}, "end_time must be after start_time"),
        ({"start_time": "mañana"}, "start_time must be a valid ISO 8601 timestamp"),
    ],
)
def test_create_appointment_validation(store, requests_mock, overrides, message):
    with pytest.raises(PipelineError) as excinfo:
        appointments.create_appointment(
            store, USER, appointments.AppointmentCreate(**new_appointment(**overrides))
        )
    assert excinfo.value.error == message
    assert requests_mock.call_count == 0


def test_get_foreign_appointment_is_not_found(store, requests_mock):
    requests_mock.get(URL, json=[])
    with pytest.raises(PipelineError) as excinfo:
        appointments.get_appointment(store, USER, APPOINTMENT_ID)
    assert excinfo.value.kind is ErrorKind.NOT_FOUND
    assert excinfo.value.error == "Appointment not found"


def test_update_appointment_only_sends_given_fields(store, requests_mock):
    requests_mock.get(URL, json=[appointment()])
    patch = requests_mock.patch(URL, json=[appointment(location="Consulta 2")])

    updated = appointments.update_appointment(
        store, USER, APPOINTMENT_ID, appointments.AppointmentUpdate(location=" Consulta 2 ")
    )
    assert updated["location"] == "Consulta 2"
    assert patch.last_request.json() == {"location": "Consulta 2"}
    assert patch.last_request.qs["user_id"] == [f"eq.{USER_ID}"]


def test_update_appointment_checks_ownership_first(store, requests_mock):
    requests_mock.get(URL, json=[])
    patch = requests_mock.patch(URL, json=[])

    with pytest.raises(PipelineError) as excinfo:
        appointments.update_appointment(
            store, USER, APPOINTMENT_ID, appointments.AppointmentUpdate(title="Nuevo")
        )
    assert excinfo.value.kind is ErrorKind.NOT_FOUND
    assert patch.call_count == 0


def test_update_appointment_requires_fields(store, requests_mock):
    requests_mock.get(URL, json=[appointment()])
    with pytest.raises(PipelineError) as excinfo:
        appointments.update_appointment(store, USER, APPOINTMENT_ID, appointments.AppointmentUpdate())
    assert excinfo.value.error == "No fields to update"


def test_appointment_endpoints(client, requests_mock):
    requests_mock.get(URL, json=[appointment()])
    requests_mock.post(URL, status_code=201, json=[appointment()])
    patch = requests_mock.patch(URL, json=[appointment(status="completed")])
    delete = requests_mock.delete(URL, status_code=204)

    resp = client.get("/appointments", headers=auth_header())
    assert resp.status_code == 200
    assert resp.json()[0]["id"] == APPOINTMENT_ID

    resp = client.post("/appointments", json=new_appointment(), headers=auth_header())
    assert resp.status_code == 201

    resp = client.get(f"/appointments/{APPOINTMENT_ID}", headers=auth_header())
    assert resp.status_code == 200

    resp = client.patch(
        f"/appointments/{APPOINTMENT_ID}/status", json={"status": "completed"}, headers=auth_header()
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert patch.last_request.json() == {"status": "completed"}

    resp = client.delete(f"/appointments/{APPOINTMENT_ID}", headers=auth_header())
    assert resp.status_code == 204
    assert delete.call_count == 1


def test_appointment_status_must_be_known(client, requests_mock):
    resp = client.patch(
        f"/appointments/{APPOINTMENT_ID}/status", json={"status": "lost"}, headers=auth_header()
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation"
    assert requests_mock.call_count == 0


def test_appointment_endpoint_not_found(client, requests_mock):
    requests_mock.get(URL, json=[])
    resp = client.get(f"/appointments/{APPOINTMENT_ID}", headers=auth_header())
    assert resp.status_code == 404
    assert resp.json() == {"error": "Appointment not found", "code": "not_found"}


@pytest.mark.parametrize(
    "method, path, body",
    [
        ("get", "/appointments/abc", None),
        ("patch", "/appointments/abc", {"title": "Nuevo"}),
        ("patch", "/appointments/abc/status", {"status": "completed"}),
        ("delete", "/appointments/abc", None),
    ],
)
def test_malformed_appointment_id_is_rejected_locally(client, requests_mock, method, path, body):
    kwargs = {"headers": auth_header()}
    if body is not None:
        kwargs["json"] = body
    resp = client.request(method.upper(), path, **kwargs)
    assert resp.status_code == 400
    assert resp.json() == {"error": "appointment_id must be a valid UUID", "code": "validation"}
    assert requests_mock.call_count == 0


@pytest.mark.parametrize("field", ["start_time", "end_time"])
def test_update_rejects_unparseable_single_time(store, requests_mock, field):
    with pytest.raises(PipelineError) as excinfo:
        appointments.update_appointment(
            store, USER, APPOINTMENT_ID, appointments.AppointmentUpdate(**{field: "garbage"})
        )
    assert excinfo.value.error == f"{field} must be a valid ISO 8601 timestamp"
    assert requests_mock.call_count == 0


def test_update_single_bound_checked_against_stored_one(store, requests_mock):
    requests_mock.get(URL, json=[appointment()])
    patch = requests_mock.patch(URL, json=[])

    with pytest.raises(PipelineError) as excinfo:
        appointments.update_appointment(
            store,
            USER,
            APPOINTMENT_ID,
            appointments.AppointmentUpdate(start_time="2024-03-15T12:00:00Z"),
        )
    assert excinfo.value.error == "end_time must be after start_time"
    assert patch.call_count == 0


def test_update_single_bound_within_stored_range(store, requests_mock):
    requests_mock.get(URL, json=[appointment()])
    patch = requests_mock.patch(URL, json=[appointment(end_time="2024-03-15T11:30:00+00:00")])

    updated = appointments.update_appointment(
        store, USER, APPOINTMENT_ID, appointments.AppointmentUpdate(end_time="2024-03-15T11:30:00Z")
    )
    assert updated["end_time"] == "2024-03-15T11:30:00+00:00"
    assert patch.last_request.json() == {"end_time": "2024-03-15T11:30:00Z"}
