"""FastMCP server bootstrap for cursor-sub-agents."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .adapters import UnsupportedPlatformError
from .config import CsaSettings, get_settings
from .orchestrator import Orchestrator
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the CLI and the MCP server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_server(
    settings: Optional[CsaSettings] = None,
    orchestrator: Orchestrator | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the agent tools and a status resource."""

    settings = settings or get_settings()
    orchestrator = orchestrator or Orchestrator(settings)

    automation: dict[str, Any] = {"platform": None, "available": False, "missing": [], "error": None}
    try:
        report = _run_sync(orchestrator.check_requirements())
        automation.update(
            {"platform": report.platform, "available": report.available, "missing": report.missing}
        )
    except UnsupportedPlatformError as exc:
        automation["error"] = str(exc)

    server = FastMCP(
        name="Cursor Sub-Agents",
        version=__version__,
        instructions=(
            "Spawn Cursor agent chats, drive them through jobs and track each agent "
            "from submission to approval. Use wait_session to block until agents report."
        ),
    )

    handles = register_tools(server, orchestrator=orchestrator, settings=settings)

    @server.resource(
        "resource://csa/status",
        name="csa_status",
        title="Cursor Sub-Agents Status",
        description="Agent counts by status and the automation requirements report.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing agent state and automation readiness."""

        sessions = orchestrator.status()
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "state_file": str(settings.state_file),
            "agents": {
                "count": len(sessions),
                "status_counts": orchestrator.status_counts(),
                "session_count": len({row.session_id for row in sessions}),
            },
            "automation": automation,
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "orchestrator", orchestrator)
    setattr(server, "automation", automation)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching cursor-sub-agents MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "automation_available": getattr(server, "automation", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
