import json

from page_agent.config.config import Settings, clamp_int
from page_agent.infra.paths import Paths
from page_agent.infra.tracing import NullLog, TextLogger, TraceLogger, generate_step_id


def test_clamp_int():
    assert clamp_int(None, default=12) == 12
    assert clamp_int("abc", default=3) == 3
    assert clamp_int("0", default=3) == 1
    assert clamp_int("-5", default=2, min_value=0) == 0
    assert clamp_int("40", default=12) == 40


def test_load_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("USER_DATA_DIR", str(tmp_path / "profile"))
    monkeypatch.setenv("LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("MAX_STEPS", "5")
    monkeypatch.setenv("MAX_CONSECUTIVE_FAILURES", "junk")
    monkeypatch.setenv("AGENT_BLOCKED_HOSTS", "Bank.example, ,evil.test")
    monkeypatch.setenv("AGENT_CONSENT_INTENTS", "click,typeText")
    monkeypatch.setenv("AUTO_CONSENT", "yes")
    monkeypatch.setenv("CONSENT_TIMEOUT_MS", "10")
    settings = Settings.load()
    assert settings.max_steps == 5
    assert settings.max_failures == 3
    assert settings.blocked_hosts == ["bank.example", "evil.test"]
    assert settings.consent_intents == ["click", "typeText"]
    assert settings.auto_consent is True
    assert settings.consent_timeout_ms == 1000
    assert (tmp_path / "logs").is_dir()
    assert settings.paths.profile_dir == (tmp_path / "profile").resolve()


def test_trace_logger_writes_jsonl(tmp_path):
    trace = TraceLogger(tmp_path / "nested" / "trace.jsonl")
    trace.write({"node": "observe"})
    trace.write("plain")
    lines = (tmp_path / "nested" / "trace.jsonl").read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]
    assert records[0]["node"] == "observe"
    assert records[1]["value"] == "plain"
    assert all("ts" in record for record in records)


def test_text_logger_and_null_log(tmp_path):
    log = TextLogger(tmp_path / "agent.log")
    log.write("first\n")
    log.write("second")
    assert (tmp_path / "agent.log").read_text(encoding="utf-8") == "first\nsecond\n"
    NullLog().write("ignored", extra=1)


def test_generate_step_id():
    step_id = generate_step_id("session")
    assert step_id.startswith("session-")
    assert len(step_id) == len("session-") + 8


def test_paths_from_explicit_env(tmp_path):
    paths = Paths.from_env(tmp_path, env={"LOGS_DIR": str(tmp_path / "custom")})
    assert paths.profile_dir == (tmp_path / "data" / "user_data").resolve()
    assert paths.audit_log == (tmp_path / "custom").resolve() / "audit.jsonl"
    paths.ensure()
    assert paths.profile_dir.is_dir() and paths.logs_dir.is_dir()


def test_trace_logger_does_not_mutate_records(tmp_path):
    record = {"node": "decide"}
    TraceLogger(tmp_path / "t.jsonl").write(record)
    assert record == {"node": "decide"}
