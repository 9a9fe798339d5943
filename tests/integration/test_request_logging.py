import logging

import pytest

from gateway.core.shared.sanitization import FILTERED

TRACER_LOGGER = "gateway.api.middleware.request_tracer"


def _events(caplog, event):
    return [
        record.extra_data
        for record in caplog.records
        if record.name == TRACER_LOGGER and getattr(record, "extra_data", {}).get("event") == event
    ]


@pytest.fixture
def tracer_logs(caplog):
    caplog.set_level(logging.INFO, logger=TRACER_LOGGER)
    return caplog


class TestRequestLogging:
    def test_completion_log_carries_filtered_params(self, client, downstream, tracer_logs):
        downstream.add("POST", "http://users-service:3001/api/internal/authenticate", status_code=401, json={})

        client.post(
            "/api/v1/auth/login?remember=1",
            json={"email": "a@b.c", "password": "hunter2", "user": {"new_password": "x"}},
        )

        [completed] = _events(tracer_logs, "request_completed")
        assert completed["status"] == 401
        assert completed["params"] == {
            "remember": "1",
            "email": "a@b.c",
            "password": FILTERED,
            "user": {"new_password": FILTERED},
        }

    def test_started_log_filters_query_string(self, client, tracer_logs):
        client.get("/api/v1/doctors", params={"reset_password_token": "abc", "page": "1"})

        [started] = _events(tracer_logs, "request_started")
        assert started["query_string"] == "reset_password_token=[FILTERED]&page=1"

    def test_health_probes_are_not_logged(self, client, tracer_logs):
        client.get("/up")

        assert _events(tracer_logs, "request_started") == []
        assert _events(tracer_logs, "request_completed") == []
