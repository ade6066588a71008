from __future__ import annotations

import json
from types import SimpleNamespace

from conftest import RecordingAdapter, make_linux_adapter
from cursor_sub_agents import server as server_module
from cursor_sub_agents.adapters import UnsupportedPlatformError
from cursor_sub_agents.orchestrator import Orchestrator
from cursor_sub_agents.storage import InMemoryStateStore


class StubFastMCP:
    def __init__(self, *args, **kwargs):
        self.options = kwargs
        self.tools: dict[str, object] = {}
        self.resources: dict[str, object] = {}

    def tool(self, *args, **kwargs):
        def decorator(fn):
            self.tools[kwargs["name"]] = fn
            return SimpleNamespace(fn=fn, name=kwargs["name"])

        return decorator

    def resource(self, uri, **kwargs):
        def decorator(fn):
            self.resources[uri] = fn
            return fn

        return decorator


def _orchestrator(settings, clock, adapter) -> Orchestrator:
    return Orchestrator(
        settings,
        store=InMemoryStateStore(),
        adapter_factory=lambda: adapter,
        sleep=clock.sleep,
        spawner=lambda command: None,
        clock=clock,
    )


def test_status_resource_reports_agents_and_automation(monkeypatch, settings, clock) -> None:
    monkeypatch.setattr(server_module, "FastMCP", StubFastMCP)
    orchestrator = _orchestrator(settings, clock, make_linux_adapter(tools=("xdg-open", "bash")))
    server = server_module.create_server(settings, orchestrator)

    assert server.options["name"] == "Cursor Sub-Agents"
    assert len(server.tools) == 13
    assert server.automation == {
        "platform": "Linux",
        "available": False,
        "missing": ["Keyboard Automation (none)"],
        "error": None,
    }

    orchestrator.lifecycle.create_session(["one", "two"])
    payload = json.loads(server.resources["resource://csa/status"](SimpleNamespace(request_id="req-1")))

    assert payload["agents"]["count"] == 2
    assert payload["agents"]["session_count"] == 1
    assert payload["agents"]["status_counts"]["running"] == 2
    assert payload["request_id"] == "req-1"
    assert payload["state_file"] == str(settings.state_file)


def test_unsupported_platform_is_reported_not_raised(monkeypatch, settings, clock) -> None:
    def unsupported():
        raise UnsupportedPlatformError("Unsupported platform: sunos5")

    monkeypatch.setattr(server_module, "FastMCP", StubFastMCP)
    orchestrator = Orchestrator(settings, store=InMemoryStateStore(), adapter_factory=unsupported, clock=clock)

    server = server_module.create_server(settings, orchestrator)

    assert server.automation["available"] is False
    assert server.automation["error"] == "Unsupported platform: sunos5"
    assert server.tool_handles.spawn_agents.name == "spawn_agents"


def test_recording_adapter_reports_ready(monkeypatch, settings, clock) -> None:
    monkeypatch.setattr(server_module, "FastMCP", StubFastMCP)

    server = server_module.create_server(settings, _orchestrator(settings, clock, RecordingAdapter()))

    assert server.automation["available"] is True
    assert server.automation["missing"] == []
