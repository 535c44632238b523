"""
Types for the MCP client.

The JSON-RPC envelope models describe what travels over a transport. The
descriptor and result models are what the client hands back to callers; their
Python field names are snake_case while the wire names stay camelCase through
aliases, so a payload validated from the server dumps back verbatim with
``model_dump(by_alias=True, exclude_none=True)``.
"""

from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

LATEST_PROTOCOL_VERSION: Final[str] = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS: Final[tuple[str, ...]] = ("2024-11-05", "2025-03-26", LATEST_PROTOCOL_VERSION)

JSONRPC_VERSION: Final[str] = "2.0"

# Standard JSON-RPC error codes
PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603

# SDK error codes
CONNECTION_CLOSED: Final[int] = -32000
REQUEST_TIMEOUT: Final[int] = -32001

RequestId = int | str

TransportType = Literal["stdio", "sse"]


class MCPModel(BaseModel):
    """Base class for all MCP domain types. Allows extra fields for forward compatibility."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class FrozenModel(MCPModel):
    """Immutable value record handed to callers."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)


# =============================================================================
# JSON-RPC envelopes
# =============================================================================


class JSONRPCBase(BaseModel):
    """Base class for all JSON-RPC messages."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class JSONRPCResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCError(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData


JSONRPCMessage = JSONRPCRequest | JSONRPCNotification | JSONRPCResponse | JSONRPCError


# =============================================================================
# Handshake
# =============================================================================


class Implementation(MCPModel):
    """Describes the name and version of an MCP implementation."""

    name: str
    version: str
    title: str | None = None


class ClientCapabilities(MCPModel):
    """Capabilities that a client may support."""

    experimental: dict[str, Any] | None = None
    roots: dict[str, Any] | None = None
    sampling: dict[str, Any] | None = None


class ServerCapabilities(MCPModel):
    """Capabilities that a server may support."""

    experimental: dict[str, Any] | None = None
    logging: dict[str, Any] | None = None
    completions: dict[str, Any] | None = None
    prompts: dict[str, Any] | None = None
    resources: dict[str, Any] | None = None
    tools: dict[str, Any] | None = None


class InitializeRequestParams(MCPModel):
    """Parameters for the initialize request."""

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    capabilities: ClientCapabilities
    client_info: Annotated[Implementation, Field(alias="clientInfo")]


class InitializeResult(MCPModel):
    """Server's response to an initialize request."""

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    capabilities: ServerCapabilities
    server_info: Annotated[Implementation, Field(alias="serverInfo")]
    instructions: str | None = None


class CapabilitySet(BaseModel):
    """Which feature groups the connected server advertised during the handshake."""

    model_config = ConfigDict(frozen=True)

    tools: bool = False
    resources: bool = False
    prompts: bool = False

    @classmethod
    def from_server_capabilities(cls, capabilities: ServerCapabilities) -> "CapabilitySet":
        return cls(
            tools=capabilities.tools is not None,
            resources=capabilities.resources is not None,
            prompts=capabilities.prompts is not None,
        )


# =============================================================================
# Tools
# =============================================================================


class ToolInputSchema(FrozenModel):
    """JSON Schema describing a tool's arguments. Unknown schema keywords are kept as extras."""

    type: Literal["object"] = "object"
    properties: dict[str, Any] | None = None
    required: list[str] | None = None


class Tool(FrozenModel):
    """Definition of a tool the server provides."""

    name: str
    description: str | None = None
    input_schema: Annotated[ToolInputSchema, Field(alias="inputSchema")] = ToolInputSchema()


class ListToolsResult(MCPModel):
    tools: list[Tool]
    next_cursor: Annotated[str | None, Field(alias="nextCursor")] = None


# =============================================================================
# Content blocks
# =============================================================================


class TextContent(FrozenModel):
    """Text provided to or from an LLM."""

    type: Literal["text"] = "text"
    text: str


class ImageContent(FrozenModel):
    """An image provided to or from an LLM."""

    type: Literal["image"] = "image"
    data: str  # base64 encoded
    mime_type: Annotated[str, Field(alias="mimeType")]


class ResourceContents(FrozenModel):
    """The contents of a resource. Exactly one of ``text`` or ``blob`` is normally set."""

    uri: str
    mime_type: Annotated[str | None, Field(alias="mimeType")] = None
    text: str | None = None
    blob: str | None = None  # base64 encoded


class EmbeddedResource(FrozenModel):
    """The contents of a resource, embedded into a prompt or tool call result."""

    type: Literal["resource"] = "resource"
    resource: ResourceContents


class UnknownContent(FrozenModel):
    """A content block of a type this client does not model (audio, resource links, ...)."""

    type: str


def _content_kind(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return kind if kind in ("text", "image", "resource") else "unknown"


ContentBlock = Annotated[
    Annotated[TextContent, Tag("text")]
    | Annotated[ImageContent, Tag("image")]
    | Annotated[EmbeddedResource, Tag("resource")]
    | Annotated[UnknownContent, Tag("unknown")],
    Discriminator(_content_kind),
]


class ToolCallResult(FrozenModel):
    """Server's response to a tools/call request.

    ``is_error`` reports a failure inside the tool; it is data for the caller,
    not an exception.
    """

    content: list[ContentBlock] = Field(default_factory=list)
    is_error: Annotated[bool, Field(alias="isError")] = False
    structured_content: Annotated[dict[str, Any] | None, Field(alias="structuredContent")] = None


# =============================================================================
# Resources
# =============================================================================


class Resource(FrozenModel):
    """A known resource that the server is capable of reading."""

    uri: str
    name: str
    description: str | None = None
    mime_type: Annotated[str | None, Field(alias="mimeType")] = None


class ListResourcesResult(MCPModel):
    resources: list[Resource]
    next_cursor: Annotated[str | None, Field(alias="nextCursor")] = None


class ReadResourceResult(MCPModel):
    contents: list[ResourceContents]


# =============================================================================
# Prompts
# =============================================================================


class PromptArgument(FrozenModel):
    """An argument a prompt template accepts."""

    name: str
    description: str | None = None
    required: bool | None = None


class Prompt(FrozenModel):
    """A prompt or prompt template that the server offers."""

    name: str
    description: str | None = None
    arguments: list[PromptArgument] | None = None


class ListPromptsResult(MCPModel):
    prompts: list[Prompt]
    next_cursor: Annotated[str | None, Field(alias="nextCursor")] = None


class PromptMessage(MCPModel):
    """A message as returned on the wire by prompts/get."""

    role: str
    content: str | ContentBlock | list[ContentBlock]

    def text(self) -> str:
        """Flatten the content to a string. Non-text blocks contribute nothing."""
        if isinstance(self.content, str):
            return self.content
        blocks = self.content if isinstance(self.content, list) else [self.content]
        return "".join(block.text if isinstance(block, TextContent) else "" for block in blocks)


class GetPromptResult(MCPModel):
    description: str | None = None
    messages: list[PromptMessage]


class PromptMessageText(FrozenModel):
    """A prompt message reduced to its role and text."""

    role: str
    content: str


class PromptResult(FrozenModel):
    """A rendered prompt as returned by ``MCPClient.get_prompt``."""

    description: str | None = None
    messages: list[PromptMessageText] = Field(default_factory=list)
