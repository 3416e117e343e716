import json
from typing import Any, Dict

from flask import Flask

from sync_app.importer import get_celery_app, init_importer
from sync_app.importer.celery_app import DEFAULT_QUEUE_NAME


def build_importer_app(**overrides) -> Flask:
    """Minimal Flask app with the importer enabled, without a database."""
    instance_path_override = overrides.pop("INSTANCE_PATH", None)
    if instance_path_override:
        app = Flask(__name__, instance_path=instance_path_override)
    else:
        app = Flask(__name__)
    app.config.update(
        SECRET_KEY="test-secret",
        TESTING=True,
        IMPORTER_ENABLED=True,
        IMPORTER_PROVIDERS=("csv",),
    )
    app.config.update(overrides)
    init_importer(app)
    return app


def test_celery_defaults_to_sqlite_transport(tmp_path):
    instance_dir = tmp_path / "instance"
    instance_dir.mkdir()
    sqlite_path = instance_dir / "custom.sqlite"

    app = build_importer_app(
        CELERY_SQLITE_PATH=str(sqlite_path),
        CELERY_CONFIG={"task_always_eager": True, "task_eager_propagates": True},
        INSTANCE_PATH=str(instance_dir),
    )

    celery_app = get_celery_app(app)
    assert celery_app is not None
    assert celery_app.conf.broker_url.startswith("sqla+sqlite:///")
    assert sqlite_path.name in celery_app.conf.broker_url
    assert celery_app.conf.result_backend.startswith("db+sqlite:///")
    assert celery_app.conf.task_default_queue == DEFAULT_QUEUE_NAME
    assert celery_app.conf.worker_prefetch_multiplier == 1


def test_explicit_broker_urls_and_json_config(tmp_path):
    app = build_importer_app(
        CELERY_BROKER_URL="memory://",
        CELERY_RESULT_BACKEND="cache+memory://",
        CELERY_CONFIG='{"task_time_limit": 42}',
        CELERY_SQLITE_PATH=str(tmp_path / "unused.sqlite"),
    )

    celery_app = get_celery_app(app)
    assert celery_app.conf.broker_url == "memory://"
    assert celery_app.conf.result_backend == "cache+memory://"
    assert celery_app.conf.task_time_limit == 42


def test_importer_tasks_are_registered(tmp_path):
    app = build_importer_app(CELERY_SQLITE_PATH=str(tmp_path / "celery.sqlite"))
    celery_app = get_celery_app(app)

    for name in ("importer.healthcheck", "importer.check_source", "importer.check_all_sources"):
        assert name in celery_app.tasks


def test_worker_ping_cli(tmp_path):
    app = build_importer_app(
        IMPORTER_WORKER_ENABLED=True,
        CELERY_SQLITE_PATH=str(tmp_path / "celery.sqlite"),
        CELERY_CONFIG={"task_always_eager": True, "task_eager_propagates": True},
    )

    runner = app.test_cli_runner()
    result = runner.invoke(args=["importer", "worker", "ping"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["status"] == "ok"
    assert "timestamp" in payload
    assert "worker_hostname" in payload


def test_worker_run_invokes_celery(monkeypatch, tmp_path):
    app = build_importer_app(
        IMPORTER_WORKER_ENABLED=True,
        CELERY_SQLITE_PATH=str(tmp_path / "celery.sqlite"),
        CELERY_CONFIG={"task_always_eager": True, "task_eager_propagates": True},
    )
    celery_app = get_celery_app(app)
    assert celery_app is not None

    calls: Dict[str, Any] = {}

    def fake_worker_main(argv=None):
        calls["argv"] = argv

    monkeypatch.setattr(celery_app, "worker_main", fake_worker_main)

    runner = app.test_cli_runner()
    result = runner.invoke(
        args=["importer", "worker", "run", "--loglevel", "debug", "--concurrency", "2", "--pool", "solo"]
    )

    assert result.exit_code == 0, result.output
    assert calls["argv"] == [
        "worker",
        "--loglevel",
        "debug",
        "-Q",
        "imports",
        "--concurrency",
        "2",
        "--pool",
        "solo",
    ]
    assert app.extensions["importer"]["worker_enabled"] is True


def test_disabled_importer_has_no_celery_app():
    app = build_importer_app(IMPORTER_ENABLED=False)
    assert get_celery_app(app) is None
