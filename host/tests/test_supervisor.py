import dataclasses
import json
import sys
import textwrap
from datetime import datetime, timezone

import pytest

from scraper_host.core.config_locator import create_context
from scraper_host.core.supervisor import ProcessSupervisor, ensure_config_copy
from scraper_host.errors import ConfigMissing, SpawnFailure, WorkerExitFailure
from scraper_host.models import (
    BusinessRecord,
    Completed,
    MapsFound,
    ProcessOutcome,
    Raw,
    ScrapingComplete,
    ScrapingProgressEvent,
    SearchingMaps,
    SearchRequest,
)
from scraper_host.vendors.worker_cli import SubprocessLauncher

FAKE_WORKER = textwrap.dedent(
    """
    import json
    import os
    import sys

    with open("argv.json", "w", encoding="utf-8") as fh:
        json.dump({"args": sys.argv[1:], "has_config": os.path.exists("config.ini")}, fh)

    mode = os.environ.get("FAKE_WORKER_MODE", "embedded")
    print("Searching for pizza in Austin", flush=True)
    print("Max results: 2", flush=True)
    print("Found 2 businesses.", flush=True)
    print("Processing: Acme Pizza...", flush=True)
    print("Processing: Beta Slice...", flush=True)
    print("Enhanced 2 businesses with website data.", flush=True)

    if mode == "embedded":
        print("--- CSV_DATA_START ---")
        print("Name,Address,Phone Number")
        print('Acme Pizza,"1 Main St, Austin",555-0001')
        print("Beta Slice,2 Side St,555-0002")
        print("--- CSV_DATA_END ---")
        print("Results saved to: somewhere.csv")
    elif mode == "fail":
        sys.stderr.write("x" * 200000 + "\\n")
        sys.stderr.write("Invalid API key\\n")
        sys.exit(3)
    elif mode == "silent_fail":
        sys.exit(4)
    """
)


@pytest.fixture
def worker_script(tmp_path):
    script = tmp_path / "fake_worker.py"
    script.write_text(FAKE_WORKER, encoding="utf-8")
    return script


@pytest.fixture
def configured_context(context):
    context.locator.save({"api_key": "test-key"})
    return context


def make_supervisor(context, script):
    return ProcessSupervisor(
        context,
        SubprocessLauncher([sys.executable, str(script)]),
        clock=lambda: datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )


def request_for(tmp_path, **overrides):
    values = dict(keyword="pizza", location="Austin", max_results=2, output_directory=tmp_path / "out")
    values.update(overrides)
    return SearchRequest(**values)


def test_run_streams_events_in_order_and_extracts_table(configured_context, worker_script, tmp_path):
    supervisor = make_supervisor(configured_context, worker_script)

    items = list(supervisor.iter_run(request_for(tmp_path)))

    outcome = items[-1]
    assert isinstance(outcome, ProcessOutcome)
    events = [item for item in items[:-1] if not isinstance(item, Raw)]
    assert events == [
        SearchingMaps(),
        MapsFound(count=2),
        ScrapingProgressEvent(current=1, total=2, label="Acme Pizza"),
        ScrapingProgressEvent(current=2, total=2, label="Beta Slice"),
        ScrapingComplete(enhanced=2),
        Completed(),
    ]
    assert outcome.exit_code == 0
    assert outcome.succeeded
    assert outcome.table == [
        BusinessRecord(name="Acme Pizza", address="1 Main St, Austin", phone="555-0001"),
        BusinessRecord(name="Beta Slice", address="2 Side St", phone="555-0002"),
    ]
    assert outcome.output_file_path == tmp_path / "out" / "business-results-2024-01-02T03-04-05.csv"
    assert "Found 2 businesses." in outcome.stdout_text


def test_run_passes_arguments_and_uses_config_directory(configured_context, worker_script, tmp_path):
    supervisor = make_supervisor(configured_context, worker_script)

    supervisor.run(request_for(tmp_path, enable_web_scraping=False))

    recorded = json.loads((configured_context.settings.user_data_dir / "argv.json").read_text(encoding="utf-8"))
    assert recorded["has_config"] is True
    assert recorded["args"][:9] == ["-k", "pizza", "-l", "Austin", "-r", "2", "-f", "csv", "--no-web-scraping"]
    assert recorded["args"][-2] == "-o"


def test_run_without_markers_leaves_table_empty(configured_context, worker_script, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_WORKER_MODE", "plain")
    events = []

    outcome = make_supervisor(configured_context, worker_script).run(request_for(tmp_path), on_event=events.append)

    assert outcome.exit_code == 0
    assert outcome.table is None
    assert events[-1] == Completed()


def test_run_failure_carries_stderr(configured_context, worker_script, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_WORKER_MODE", "fail")
    events = []

    outcome = make_supervisor(configured_context, worker_script).run(request_for(tmp_path), on_event=events.append)

    assert outcome.exit_code == 3
    assert not outcome.succeeded
    assert outcome.table is None
    assert "Invalid API key" in outcome.diagnostic
    assert MapsFound(count=2) in events
    assert Completed() not in events
    with pytest.raises(WorkerExitFailure) as excinfo:
        outcome.raise_for_status()
    assert excinfo.value.exit_code == 3


def test_run_failure_without_stderr_uses_generic_message(configured_context, worker_script, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_WORKER_MODE", "silent_fail")

    outcome = make_supervisor(configured_context, worker_script).run(request_for(tmp_path))

    assert outcome.exit_code == 4
    assert outcome.diagnostic == "Unknown error occurred"


def test_missing_config_fails_before_spawning(context, tmp_path):
    class ExplodingLauncher:
        executable = "never"

        def launch(self, args, cwd):
            raise AssertionError("worker must not be spawned")

    supervisor = ProcessSupervisor(context, ExplodingLauncher())

    with pytest.raises(ConfigMissing):
        supervisor.run(request_for(tmp_path))


def test_spawn_failure_is_distinct(configured_context, tmp_path):
    supervisor = ProcessSupervisor(configured_context, SubprocessLauncher([str(tmp_path / "missing-binary")]))

    with pytest.raises(SpawnFailure):
        supervisor.run(request_for(tmp_path))


def test_config_is_copied_into_separate_workdir(settings, worker_script, tmp_path):
    workdir = tmp_path / "work"
    context = create_context(dataclasses.replace(settings, worker_workdir=workdir))
    context.locator.save({"api_key": "test-key"})

    make_supervisor(context, worker_script).run(request_for(tmp_path))

    assert (workdir / "config.ini").read_text(encoding="utf-8") == context.locator.active.config_file.read_text(
        encoding="utf-8"
    )
    assert json.loads((workdir / "argv.json").read_text(encoding="utf-8"))["has_config"] is True
    context.close()


def test_ensure_config_copy_never_overwrites(tmp_path):
    source = tmp_path / "config.ini"
    source.write_text("new", encoding="utf-8")
    workdir = tmp_path / "work"
    workdir.mkdir()
    (workdir / "config.ini").write_text("existing", encoding="utf-8")

    ensure_config_copy(source, workdir)

    assert (workdir / "config.ini").read_text(encoding="utf-8") == "existing"


def test_closing_stream_early_does_not_hang(configured_context, worker_script, tmp_path):
    stream = make_supervisor(configured_context, worker_script).iter_run(request_for(tmp_path))

    assert next(stream) == SearchingMaps()
    stream.close()
