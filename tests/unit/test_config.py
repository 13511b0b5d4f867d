"""Unit tests for ServeSettings — defaults, env overrides, derived launch spec."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from servewatch.config import ServeSettings


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a stray .env or SERVEWATCH_* variable from leaking into tests."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("SERVEWATCH_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_default_values(self):
        s = ServeSettings()
        assert s.port == 8000
        assert s.host == "0.0.0.0"
        assert s.log_path == Path("logs/server.log")
        assert s.journal_path is None
        assert s.log_wait_timeout == 600.0
        assert s.health_wait_timeout == 60.0

    def test_health_url_uses_loopback_for_wildcard(self):
        assert ServeSettings().health_url == "http://127.0.0.1:8000/health"

    def test_policy_mirrors_timing_fields(self):
        s = ServeSettings(health_wait_timeout=120, orphan_sweep=False)
        policy = s.policy()
        assert policy.health_wait_timeout == 120
        assert policy.orphan_sweep is False
        assert policy.startup_poll_interval == s.startup_poll_interval


class TestLaunchCommand:
    def test_argv_carries_serving_flags(self):
        argv = ServeSettings(model_path=Path("/models/ocr"), port=9001).build_argv()
        assert argv[:3] == ["vllm", "serve", "/models/ocr"]
        assert argv[argv.index("--port") + 1] == "9001"
        assert argv[argv.index("--served-model-name") + 1] == "dotsocr-model"
        assert argv[argv.index("--gpu-memory-utilization") + 1] == "0.95"
        assert argv[argv.index("--max-model-len") + 1] == "40000"
        assert "--trust-remote-code" in argv

    def test_trust_remote_code_can_be_disabled(self):
        assert "--trust-remote-code" not in ServeSettings(trust_remote_code=False).build_argv()

    def test_env_points_at_model_and_prepends_pythonpath(self):
        s = ServeSettings(model_path=Path("/models/ocr"), pythonpath_prepend=[Path("/w")])
        env = s.build_env(base={"PYTHONPATH": "/existing"})
        assert env["HF_MODEL_PATH"] == "/models/ocr"
        assert env["PYTHONPATH"] == os.pathsep.join(["/w", "/existing"])

    def test_env_without_existing_pythonpath(self):
        env = ServeSettings(pythonpath_prepend=[Path("/w")]).build_env(base={})
        assert env["PYTHONPATH"] == "/w"

    def test_empty_prepend_leaves_pythonpath_alone(self):
        env = ServeSettings(pythonpath_prepend=[]).build_env(base={"PYTHONPATH": "/x"})
        assert "PYTHONPATH" not in env

    def test_extra_env_wins(self):
        s = ServeSettings(extra_env={"HF_MODEL_PATH": "/override", "CUDA_VISIBLE_DEVICES": "1"})
        env = s.build_env(base={})
        assert env["HF_MODEL_PATH"] == "/override"
        assert env["CUDA_VISIBLE_DEVICES"] == "1"

    def test_verbatim_command_replaces_argv(self):
        spec = ServeSettings(log_path=Path("out/s.log")).build_launch_spec(["my-server", "--fast"])
        assert spec.argv == ["my-server", "--fast"]
        assert spec.log_path == Path("out/s.log")
        assert "HF_MODEL_PATH" in spec.env


class TestOverrides:
    def test_env_var_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SERVEWATCH_PORT", "9000")
        monkeypatch.setenv("SERVEWATCH_HEALTH_WAIT_TIMEOUT", "15")
        s = ServeSettings()
        assert s.port == 9000
        assert s.health_wait_timeout == 15.0
        assert s.health_url.endswith(":9000/health")

    def test_dotenv_file(self, tmp_path: Path):
        (tmp_path / ".env").write_text("SERVEWATCH_LOG_LEVEL=DEBUG\n")
        assert ServeSettings().log_level == "DEBUG"

    def test_unrelated_env_ignored(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SERVEWATCH_NOT_A_FIELD", "x")
        ServeSettings()

    @pytest.mark.parametrize(
        "overrides",
        [{"port": 0}, {"gpu_memory_utilization": 1.5}, {"health_wait_timeout": -1}],
    )
    def test_invalid_values_rejected(self, overrides: dict):
        with pytest.raises(ValidationError):
            ServeSettings(**overrides)
