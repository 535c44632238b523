"""Configuration for the MCP client."""

# stdlib imports
import json
import logging
import os
from pathlib import Path
from typing import Annotated, Any, cast

# third party imports
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, model_validator

# local imports
from mcp_client.shared.exceptions import ConfigurationError
from mcp_client.types import TransportType

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000


class ClientConfig(BaseModel):
    """
    How to reach the server and how to behave once connected.

    Exactly one transport has to be resolvable: ``command`` for a server
    spawned as a child process, or ``sse_url`` for a server reachable over
    an HTTP event stream. When both are given ``sse_url`` wins. Validating
    with the context ``{"transport_provided": True}`` drops that requirement
    for clients handed a ready transport.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    command: str | None = None
    """The executable to run to start the server."""

    args: list[str] = Field(default_factory=list)
    """Command line arguments to pass to the executable."""

    env: dict[str, str] | None = None
    """Environment overrides for the server process, on top of a safe inherited default."""

    cwd: str | None = None
    """The working directory to use when spawning the process."""

    sse_url: Annotated[str | None, Field(alias="sseUrl")] = None
    """Event stream URL of the server."""

    headers: dict[str, str] | None = None
    """Extra HTTP headers sent with event-stream requests."""

    timeout: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    """Handshake and per-request timeout, in milliseconds."""

    debug: bool = False
    """Log connect, disconnect and tool-call events at INFO level."""

    strict_capabilities: Annotated[bool, Field(alias="strictCapabilities")] = True
    """Refuse operations the server did not advertise a capability for."""

    client_name: Annotated[str, Field(alias="clientName")] = "mcp-client-example"
    client_version: Annotated[str, Field(alias="clientVersion")] = "1.0.0"

    @model_validator(mode="after")
    def check_transport(self, info: ValidationInfo) -> "ClientConfig":
        transport_provided = bool(info.context and info.context.get("transport_provided"))
        if not self.sse_url and not self.command and not transport_provided:
            raise ValueError("Must provide either command (stdio) or sseUrl (SSE)")
        return self

    @property
    def transport_type(self) -> TransportType:
        return "sse" if self.sse_url else "stdio"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000

    @classmethod
    def build(cls, *, transport_provided: bool = False, **options: Any) -> "ClientConfig":
        """Validate options, reporting any problem as a ``ConfigurationError``.

        With ``transport_provided`` neither ``command`` nor ``sse_url`` is required.
        """
        try:
            config = cls.model_validate(options, context={"transport_provided": transport_provided})
        except ValidationError as exc:
            raise ConfigurationError(_describe(exc)) from exc
        if config.sse_url and config.command:
            logger.warning(f"Both command and sseUrl configured; using SSE transport at {config.sse_url}")
        return config

    @classmethod
    def from_file(cls, config_path: Path | str, server: str | None = None) -> "ClientConfig":
        """Load configuration from a JSON or YAML file.

        The file holds either one client configuration or a ``mcpServers`` (or
        ``servers``) mapping of named configurations, in which case ``server``
        picks one; it may be omitted when the mapping has a single entry.
        ``$VAR`` and ``${VAR}`` references in string values are expanded from
        the environment.

        Args:
            config_path: Path to the configuration file
            server: Name of the entry to use from a server mapping
        """
        config_path = Path(os.path.expandvars(config_path)).expanduser()

        try:
            content = config_path.read_text()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read config file {config_path}: {exc}") from exc

        try:
            if config_path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(content)
            else:
                data = json.loads(_strip_json_comments(content))
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot parse config file {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

        entry = _select_server(cast(dict[str, Any], data), server)
        return cls.build(**_expand_env(entry))


def _select_server(data: dict[str, Any], server: str | None) -> dict[str, Any]:
    servers = data.get("mcpServers", data.get("servers"))
    if servers is None:
        if server is not None:
            raise ConfigurationError(f"Config file has no server mapping to pick {server!r} from")
        return data

    if not isinstance(servers, dict) or not servers:
        raise ConfigurationError("Server mapping must be a non-empty object")
    servers = cast(dict[str, Any], servers)

    if server is None:
        if len(servers) > 1:
            raise ConfigurationError(f"Config file defines several servers, pick one of: {', '.join(servers)}")
        server = next(iter(servers))

    if server not in servers:
        raise ConfigurationError(f"Unknown server {server!r}, expected one of: {', '.join(servers)}")

    entry = servers[server]
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Server {server!r} must be an object")
    entry = dict(cast(dict[str, Any], entry))

    # Editor-style entries name the event stream "url" and carry a "type" tag
    entry.pop("type", None)
    if "url" in entry and "sseUrl" not in entry and "sse_url" not in entry:
        entry["sseUrl"] = entry.pop("url")
    return entry


def _expand_env(data: Any) -> Any:
    """Recursively expand environment variable references in string values."""
    if isinstance(data, str):
        return os.path.expandvars(data)
    if isinstance(data, dict):
        return {key: _expand_env(value) for key, value in cast(dict[str, Any], data).items()}
    if isinstance(data, list):
        return [_expand_env(item) for item in cast(list[Any], data)]
    return data


def _strip_json_comments(content: str) -> str:
    """Strip // comments from JSON content, being careful not to remove // inside strings."""
    result: list[str] = []

    for line in content.split("\n"):
        in_string = False
        escaped = False
        comment_start = -1

        for i, char in enumerate(line):
            if escaped:
                escaped = False
                continue
            if char == "\\" and in_string:
                escaped = True
                continue
            if char == '"':
                in_string = not in_string
                continue
            if not in_string and line.startswith("//", i):
                comment_start = i
                break

        result.append(line[:comment_start].rstrip() if comment_start != -1 else line)

    return "\n".join(result)


def _describe(exc: ValidationError) -> str:
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)
