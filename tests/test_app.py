from __future__ import annotations

import logging
import socket

import pytest
from werkzeug.serving import BaseWSGIServer

from app import app


def test_index_returns_hello_world() -> None:
    client = app.test_client()
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == "Hello World!"
    assert resp.mimetype == "text/plain"


def test_health_endpoint_ok() -> None:
    client = app.test_client()
    resp = client.get("/health")
    assert resp.status_code == 200

    data = resp.get_json()
    assert data is not None
    assert data.get("status") == "ok"


def test_ready_endpoint_ok() -> None:
    client = app.test_client()
    resp = client.get("/ready")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_unknown_route_is_404() -> None:
    client = app.test_client()
    assert client.get("/nope").status_code == 404


def test_main_logs_bound_port_after_bind(monkeypatch, caplog) -> None:
    import app as app_module

    caplog.set_level(logging.INFO, logger="web")
    monkeypatch.setattr(BaseWSGIServer, "serve_forever", lambda self, *a, **kw: None)

    app_module.main(port=0)

    records = [r.getMessage() for r in caplog.records if r.name == "web"]
    assert len(records) == 1
    assert records[0].startswith("Server is running on http://localhost:")
    assert not records[0].endswith(":0")


def test_main_does_not_log_running_when_port_busy(caplog) -> None:
    import app as app_module

    caplog.set_level(logging.INFO, logger="web")
    busy = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        busy.bind(("0.0.0.0", 0))
        busy.listen(1)
        port = busy.getsockname()[1]
        with pytest.raises((OSError, SystemExit)):
            app_module.main(port=port)
    finally:
        busy.close()

    assert "Server is running" not in caplog.text
