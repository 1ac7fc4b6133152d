from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI

from jobrunner.api import main as api_main


def test_main_serves_on_configured_host_and_port(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "jobs").mkdir()
    runtime_yaml = tmp_path / "runtime.yaml"
    runtime_yaml.write_text(
        "service:\n"
        "  host: 127.0.0.1\n"
        "  port: 9123\n"
        "jobs:\n"
        "  dir: jobs\n"
        "  watch: false\n"
        "storage:\n"
        "  driver: sqlite\n"
        "  sqlite:\n"
        "    path: state/runtime.sqlite\n"
        "scheduler:\n"
        "  enabled: false\n"
        "executor:\n"
        "  api_key_env: JOBRUNNER_TEST_API_KEY_UNSET\n",
        encoding="utf-8",
    )
    logging_yaml = tmp_path / "logging.yaml"
    logging_yaml.write_text("version: 1\ndisable_existing_loggers: false\n", encoding="utf-8")
    monkeypatch.setenv("JOBRUNNER_RUNTIME_CONFIG", str(runtime_yaml))
    monkeypatch.setenv("JOBRUNNER_LOGGING_CONFIG", str(logging_yaml))
    monkeypatch.delenv("JOBRUNNER_TEST_API_KEY_UNSET", raising=False)

    served: dict = {}

    def fake_run(app, **kwargs):
        served["app"] = app
        served.update(kwargs)

    monkeypatch.setattr(api_main.uvicorn, "run", fake_run)

    api_main.main()

    assert served["host"] == "127.0.0.1"
    assert served["port"] == 9123
    assert served["log_config"] is None
    assert isinstance(served["app"], FastAPI)
