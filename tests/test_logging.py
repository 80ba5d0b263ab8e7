import json
import logging
import sys
from logging.handlers import TimedRotatingFileHandler

from fastapi import FastAPI, Request
from starlette.testclient import TestClient

from app.app_logging import JsonFormatter, current_request_id, init_logging


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


def _create_app() -> FastAPI:
    app = FastAPI()

    @app.post("/echo")
    async def echo(request: Request):
        logging.getLogger("app.echo").warning("echo called")
        return {"rid": request.state.request_id}

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    init_logging(app)
    return app


def test_init_logging_configures_rotation(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_RETENTION_DAYS", "5")
    app_logger = _clear_handlers("app")
    access_logger = _clear_handlers("uvicorn.access")
    stale = logging.StreamHandler()
    access_logger.addHandler(stale)

    init_logging()

    assert stale not in access_logger.handlers
    for logger in (app_logger, access_logger):
        handler = next(h for h in logger.handlers if isinstance(h, TimedRotatingFileHandler))
        assert handler.when == "MIDNIGHT"
        assert handler.backupCount == 5


def test_access_log_scrubs_and_tags_request_id(caplog, monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
    app = _create_app()

    with (
        TestClient(app) as client,
        caplog.at_level(logging.INFO, logger="uvicorn.access"),
    ):
        resp = client.post(
            "/echo?token=abc&page=2",
            json={"password": "hunter2", "nested": {"session_token": "x"}, "a": 1},
            headers={"X-Request-Id": "req-1", "Authorization": "Bearer secret"},
        )

        assert resp.status_code == 200
        assert resp.headers["X-Request-Id"] == "req-1"
        assert resp.json() == {"rid": "req-1"}

        access = [r for r in caplog.records if r.name == "uvicorn.access"]
        data = json.loads(access[-1].getMessage())
        assert data["request_id"] == "req-1"
        assert data["headers"]["authorization"] == "***"
        assert data["query"] == {"token": "***", "page": "2"}
        assert data["body"]["password"] == "***"
        assert data["body"]["nested"]["session_token"] == "***"
        assert data["body"]["a"] == 1

        echo_record = next(r for r in caplog.records if r.name == "app.echo")
        assert echo_record.request_id == "req-1"

        caplog.clear()
        client.get("/api/health")
        assert [r for r in caplog.records if r.name == "uvicorn.access"] == []


def test_request_id_is_generated_when_missing(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    app = _create_app()

    with TestClient(app) as client:
        resp = client.post("/echo", json={})

    assert resp.headers["X-Request-Id"] == resp.json()["rid"]
    assert len(resp.json()["rid"]) == 32


def test_app_log_file_carries_request_id(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_JSON", "true")
    app = _create_app()

    with TestClient(app) as client:
        client.post("/echo", json={}, headers={"X-Request-Id": "trace-me"})

    for handler in logging.getLogger("app").handlers:
        handler.flush()
    lines = (tmp_path / "app.log").read_text().splitlines()
    record = json.loads(lines[-1])
    assert record["logger"] == "app.echo"
    assert record["message"] == "echo called"
    assert record["request_id"] == "trace-me"


def test_json_formatter_includes_exception():
    formatter = JsonFormatter()
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord("app", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
    data = json.loads(formatter.format(record))
    assert data["level"] == "ERROR"
    assert "ValueError: boom" in data["exc_info"]
    assert "request_id" not in data


def test_request_id_does_not_leak_outside_requests(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    app = _create_app()

    with TestClient(app) as client:
        client.post("/echo", json={}, headers={"X-Request-Id": "scoped"})

    assert current_request_id() is None
