import importlib
import logging

from fastapi import FastAPI


def test_entry_point_builds_the_app():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        module = importlib.import_module("gateway.main")
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)

    assert isinstance(module.app, FastAPI)
    assert module.app.state.container.settings.ENVIRONMENT == "test"
    paths = {route.path for route in module.app.routes}
    assert {"/up", "/health", "/api/v1/auth/login", "/api/v1/appointments"} <= paths
