"""FastMCP server bootstrap for the session workflow."""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import SessionSettings, configure_logging, get_settings
from .gateway import BoardConfigError, GatewayProtocol, GhNotFoundError, GitError, GitRepository
from .services import build_services
from .tools import register_tools


def create_server(
    settings: Optional[SessionSettings] = None,
    gateway: GatewayProtocol | None = None,
    git: GitRepository | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the session tools and a status resource."""

    settings = settings or get_settings()

    setup_metadata: dict[str, object] = {"available": False}
    try:
        services = build_services(settings, gateway=gateway, git=git)
        setup_metadata["available"] = True
    except (GhNotFoundError, GitError, BoardConfigError) as exc:
        services = None
        setup_metadata["error"] = str(exc)
        logging.getLogger(__name__).warning(
            "Session services unavailable", extra={"error": str(exc)}
        )

    server = FastMCP(
        name="Session Workflow",
        version=__version__,
        instructions=(
            "Session workflow tools publish the session branch as a PR and, once the PR "
            "has merged, finalize the session by closing issues and marking tasks done. "
            "Titles and descriptions must be written before calling session_publish."
        ),
    )

    handles = register_tools(
        server, services=services, setup_error=setup_metadata.get("error")
    )

    @server.resource(
        "resource://session-workflow/status",
        name="session_workflow_status",
        title="Session Workflow Status",
        description="The active session and its ledger counts.",
        mime_type="application/json",
        tags={"status", "session"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing the active session."""

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "session_root": str(settings.session_root),
            "setup": setup_metadata,
            "session": services.status() if services is not None else None,
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "services", services)
    setattr(server, "tool_handles", handles)
    setattr(server, "setup_metadata", setup_metadata)
    return server


def main() -> None:
    """Entry point for running the session workflow MCP server."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching session workflow MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "session_root": str(settings.session_root),
            "services_available": getattr(server, "setup_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
