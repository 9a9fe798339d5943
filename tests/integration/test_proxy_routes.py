import json

import httpx

USERS = "http://users-service:3001"
DOCTORS = "http://doctors-service:3002"
APPOINTMENTS = "http://appointments-service:3003"
NOTIFICATIONS = "http://notifications-service:3004"
PAYMENTS = "http://payments-service:3005"


def sent_json(request: httpx.Request):
    return json.loads(request.content)


class TestForwardedHeaders:
    def test_user_and_tracing_headers(self, client, downstream, auth_headers):
        downstream.add("GET", f"{APPOINTMENTS}/api/v1/appointments/5", json={"id": 5})

        response = client.get(
            "/api/v1/appointments/5",
            headers={**auth_headers, "X-Request-ID": "trace-abc", "X-Forwarded-For": "203.0.113.9"},
        )

        assert response.status_code == 200
        assert response.json() == {"id": 5}
        assert response.headers["X-Request-ID"] == "trace-abc"
        headers = downstream.last_request.headers
        assert headers["X-Request-ID"] == "trace-abc"
        assert headers["X-Forwarded-For"] == "203.0.113.9"
        assert headers["X-User-ID"] == "42"
        assert headers["X-User-Email"] == "patient@example.com"
        assert headers["X-User-Role"] == "patient"
        assert headers["Authorization"] == auth_headers["Authorization"]

    def test_downstream_status_and_body_are_mirrored(self, client, downstream, auth_headers):
        downstream.add(
            "GET", f"{APPOINTMENTS}/api/v1/appointments/9", status_code=404, json={"error": "Appointment not found"}
        )

        response = client.get("/api/v1/appointments/9", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "Appointment not found"}


class TestAppointments:
    def test_requires_authentication(self, client, downstream):
        response = client.get("/api/v1/appointments")

        assert response.status_code == 401
        assert downstream.requests == []

    def test_patient_listing_is_scoped(self, client, downstream, auth_headers):
        downstream.add("GET", f"{APPOINTMENTS}/api/v1/appointments", json={"appointments": []})

        client.get(
            "/api/v1/appointments",
            params={"status": "scheduled", "page": 2, "user_id": 99, "secret": "x"},
            headers=auth_headers,
        )

        params = downstream.last_request.url.params
        assert params["status"] == "scheduled"
        assert params["page"] == "2"
        assert params["user_id"] == "42"
        assert "secret" not in params

    def test_doctor_listing_is_scoped_to_doctor(self, client, downstream, doctor_headers):
        downstream.add("GET", f"{APPOINTMENTS}/api/v1/appointments/upcoming", json=[])

        client.get("/api/v1/appointments/upcoming", headers=doctor_headers)

        params = downstream.last_request.url.params
        assert params["doctor_user_id"] == "7"
        assert "user_id" not in params

    def test_admin_listing_is_unscoped(self, client, downstream, admin_headers):
        downstream.add("GET", f"{APPOINTMENTS}/api/v1/appointments/past", json=[])

        client.get("/api/v1/appointments/past", headers=admin_headers)

        assert dict(downstream.last_request.url.params) == {}

    def test_patient_create_forces_own_user_id(self, client, downstream, auth_headers):
        downstream.add("POST", f"{APPOINTMENTS}/api/v1/appointments", status_code=201, json={"id": 1})

        response = client.post(
            "/api/v1/appointments",
            json={"appointment": {"doctor_id": 3, "user_id": 99, "reason": "checkup", "status": "confirmed"}},
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert sent_json(downstream.last_request) == {
            "appointment": {"doctor_id": 3, "reason": "checkup", "user_id": 42}
        }

    def test_admin_create_keeps_user_id(self, client, downstream, admin_headers):
        downstream.add("POST", f"{APPOINTMENTS}/api/v1/appointments", status_code=201, json={"id": 1})

        client.post("/api/v1/appointments", json={"doctor_id": 3, "user_id": 99}, headers=admin_headers)

        assert sent_json(downstream.last_request) == {"appointment": {"doctor_id": 3, "user_id": 99}}

    def test_update_filters_fields(self, client, downstream, auth_headers):
        downstream.add("PATCH", f"{APPOINTMENTS}/api/v1/appointments/5", json={"id": 5})

        client.patch(
            "/api/v1/appointments/5",
            json={"appointment": {"notes": "bring results", "doctor_id": 8}},
            headers=auth_headers,
        )

        assert sent_json(downstream.last_request) == {"appointment": {"notes": "bring results"}}

    def test_delete_with_empty_response(self, client, downstream, auth_headers):
        downstream.add("DELETE", f"{APPOINTMENTS}/api/v1/appointments/5", status_code=204)

        response = client.delete("/api/v1/appointments/5", headers=auth_headers)

        assert response.status_code == 204
        assert response.content == b""

    def test_member_actions(self, client, downstream, auth_headers):
        downstream.add("POST", f"{APPOINTMENTS}/api/v1/appointments/5/confirm", json={"status": "confirmed"})
        downstream.add("POST", f"{APPOINTMENTS}/api/v1/appointments/5/cancel", json={"status": "cancelled"})
        downstream.add("POST", f"{APPOINTMENTS}/api/v1/appointments/5/reschedule", json={"status": "scheduled"})

        assert client.post("/api/v1/appointments/5/confirm", headers=auth_headers).json() == {"status": "confirmed"}

        client.post("/api/v1/appointments/5/cancel", json={"reason": "sick", "fee": 0}, headers=auth_headers)
        assert sent_json(downstream.last_request) == {"reason": "sick"}

        client.post(
            "/api/v1/appointments/5/reschedule",
            json={"scheduled_at": "2025-03-01T10:00:00Z", "reason": "conflict"},
            headers=auth_headers,
        )
        assert sent_json(downstream.last_request) == {"scheduled_at": "2025-03-01T10:00:00Z", "reason": "conflict"}

    def test_non_object_body_is_rejected(self, client, auth_headers):
        response = client.post("/api/v1/appointments", json=["not", "an", "object"], headers=auth_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_failed"
        assert body["details"][0]["field"] == "body"


class TestUsers:
    def test_listing_requires_admin(self, client, auth_headers):
        response = client.get("/api/v1/users", headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    def test_admin_listing(self, client, downstream, admin_headers):
        downstream.add("GET", f"{USERS}/api/v1/users", json={"users": []})

        response = client.get("/api/v1/users", params={"role": "doctor", "q": "x"}, headers=admin_headers)

        assert response.status_code == 200
        assert dict(downstream.last_request.url.params) == {"role": "doctor"}

    def test_user_can_read_self_only(self, client, downstream, auth_headers):
        downstream.add("GET", f"{USERS}/api/v1/users/42", json={"id": 42})

        assert client.get("/api/v1/users/42", headers=auth_headers).status_code == 200

        other = client.get("/api/v1/users/43", headers=auth_headers)
        assert other.status_code == 403
        assert other.json()["message"] == "You can only access your own user data"

    def test_search_is_not_a_user_id(self, client, downstream, auth_headers):
        downstream.add("GET", f"{USERS}/api/v1/users/search", json={"users": []})

        response = client.get("/api/v1/users/search", params={"q": "ada"}, headers=auth_headers)

        assert response.status_code == 200
        assert downstream.last_request.url.params["q"] == "ada"

    def test_public_registration(self, client, downstream):
        downstream.add("POST", f"{USERS}/api/v1/users", status_code=201, json={"id": 50})

        response = client.post(
            "/api/v1/users",
            json={"user": {"email": "new@example.com", "password": "pw", "is_admin": True}},
        )

        assert response.status_code == 201
        assert sent_json(downstream.last_request) == {"email": "new@example.com", "password": "pw"}

    def test_update_self(self, client, downstream, auth_headers):
        downstream.add("PATCH", f"{USERS}/api/v1/users/42", json={"id": 42})

        response = client.put("/api/v1/users/42", json={"city": "Lyon", "role": "admin"}, headers=auth_headers)

        assert response.status_code == 200
        assert sent_json(downstream.last_request) == {"city": "Lyon"}


class TestDoctors:
    def test_public_listing_without_user_headers(self, client, downstream):
        downstream.add("GET", f"{DOCTORS}/api/v1/doctors", json={"doctors": []})

        response = client.get("/api/v1/doctors", params={"specialty": "cardiology"})

        assert response.status_code == 200
        assert "X-User-ID" not in downstream.last_request.headers
        assert downstream.last_request.url.params["specialty"] == "cardiology"

    def test_optional_user_headers(self, client, downstream, auth_headers):
        downstream.add("GET", f"{DOCTORS}/api/v1/doctors/3", json={"id": 3})

        client.get("/api/v1/doctors/3", headers=auth_headers)

        assert downstream.last_request.headers["X-User-ID"] == "42"

    def test_invalid_token_is_ignored(self, client, downstream):
        downstream.add("GET", f"{DOCTORS}/api/v1/doctors/search", json=["cardiology"])

        response = client.get("/api/v1/doctors/search", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 200
        assert response.json() == ["cardiology"]

    def test_availability_params(self, client, downstream):
        downstream.add("GET", f"{DOCTORS}/api/v1/doctors/3/availability", json={"slots": []})

        client.get("/api/v1/doctors/3/availability", params={"date": "2025-03-01", "user_id": 1})

        assert dict(downstream.last_request.url.params) == {"date": "2025-03-01"}


class TestNotifications:
    def test_listing_scoped_to_user(self, client, downstream, auth_headers):
        downstream.add("GET", f"{NOTIFICATIONS}/notifications", json=[])

        client.get("/api/v1/notifications", params={"unread_only": "true"}, headers=auth_headers)

        assert dict(downstream.last_request.url.params) == {"unread_only": "true", "user_id": "42"}

    def test_mark_as_read(self, client, downstream, auth_headers):
        downstream.add("POST", f"{NOTIFICATIONS}/notifications/8/mark_as_read", json={"read": True})

        response = client.patch("/api/v1/notifications/8", headers=auth_headers)

        assert response.status_code == 200
        assert downstream.last_request.url.params["user_id"] == "42"

    def test_unread_count_and_mark_all(self, client, downstream, auth_headers):
        downstream.add("GET", f"{NOTIFICATIONS}/notifications/unread_count", json={"count": 3})
        downstream.add("POST", f"{NOTIFICATIONS}/notifications/mark_all_as_read", json={"updated": 3})

        assert client.get("/api/v1/notifications/unread_count", headers=auth_headers).json() == {"count": 3}
        assert client.post("/api/v1/notifications/mark_all_read", headers=auth_headers).json() == {"updated": 3}


class TestPayments:
    def test_listing_scoped_unless_admin(self, client, downstream, doctor_headers, admin_headers):
        downstream.add("GET", f"{PAYMENTS}/api/v1/payments", json=[])

        client.get("/api/v1/payments", headers=doctor_headers)
        assert dict(downstream.last_request.url.params) == {"user_id": "7"}

        client.get("/api/v1/payments", headers=admin_headers)
        assert dict(downstream.last_request.url.params) == {}

    def test_create_forces_user_id(self, client, downstream, auth_headers):
        downstream.add("POST", f"{PAYMENTS}/api/v1/payments", status_code=201, json={"id": 1})

        client.post("/api/v1/payments", json={"payment": {"amount": 5000, "currency": "usd"}}, headers=auth_headers)

        assert sent_json(downstream.last_request) == {
            "payment": {"amount": 5000, "currency": "usd", "user_id": 42}
        }

    def test_payment_methods(self, client, downstream, auth_headers):
        downstream.add("GET", f"{PAYMENTS}/api/v1/payment_methods", json=[])
        downstream.add("POST", f"{PAYMENTS}/api/v1/payment_methods", status_code=201, json={})

        client.get("/api/v1/payments/methods", headers=auth_headers)
        assert downstream.last_request.url.params["user_id"] == "42"

        client.post("/api/v1/payments/methods", json={"payment_method_id": "pm_1"}, headers=auth_headers)
        assert sent_json(downstream.last_request) == {"payment_method_id": "pm_1", "user_id": 42}

    def test_create_intent_path(self, client, downstream, auth_headers):
        downstream.add("POST", f"{PAYMENTS}/api/v1/payments/create-intent", json={"client_secret": "cs"})

        response = client.post("/api/v1/payments/create_intent", json={"amount": 100}, headers=auth_headers)

        assert response.json() == {"client_secret": "cs"}
        assert sent_json(downstream.last_request) == {"amount": 100, "user_id": 42}

    def test_refund(self, client, downstream, auth_headers):
        downstream.add("POST", f"{PAYMENTS}/api/v1/payments/3/refund", json={"refunded": True})

        client.post("/api/v1/payments/3/refund", json={"amount": 10, "to": "me"}, headers=auth_headers)

        assert sent_json(downstream.last_request) == {"amount": 10}

    def test_webhook_passes_raw_body_and_signature(self, client, downstream):
        downstream.add("POST", f"{PAYMENTS}/api/v1/payments/webhook", json={"received": True})
        raw = b'{"type":"payment_intent.succeeded","data":{"object":{"id":"pi_1"}}}'

        response = client.post(
            "/api/v1/payments/webhook",
            content=raw,
            headers={"Stripe-Signature": "t=1,v1=abc", "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert downstream.last_request.content == raw
        assert downstream.last_request.headers["Stripe-Signature"] == "t=1,v1=abc"
        assert "X-User-ID" not in downstream.last_request.headers
