import json
import logging
import structlog
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.models.visualization_models import (
    ClassificationMetadata,
    ClassifyRequest,
    ClassifyResponse,
    MCPToolCallRequest,
    MCPToolCallResponse,
    MCPToolsListResponse,
    HealthResponse,
    RawMessage,
)
from app.mcp.server import mcp_handler
from app.mcp.validators import validate_tool_arguments
from app.visualization.pipeline import pipeline, split_remainder
from app.visualization.query_engine import query_engine
from app.visualization.query_parser import parse_chart_request
from app.visualization.units import UnitParseError

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.log_level.upper())),
)
log = structlog.get_logger()

# ── Rate limiter ──────────────────────────────────────────────────────────────

def _get_user_identity(request: Request) -> str:
    """
    Identify the caller for rate limiting.
    Priority:
      1. X-Api-Client, set by the chat frontend per workspace
      2. X-Forwarded-For first hop, set by the load balancer
      3. direct remote addr fallback (local dev)
    """
    api_client = request.headers.get("X-Api-Client")
    if api_client:
        return api_client
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=_get_user_identity)

# ── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Campaign Chat Visualizer",
    description="Rule-based extraction of charts and tables from ad-campaign chat messages, with an MCP surface",
    version="1.0.0",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins_list,
    allow_credentials=True,
    allow_methods=["POST", "GET"],
    allow_headers=["*"],
)


# ── Classification ────────────────────────────────────────────────────────────

@app.post("/classify", response_model=ClassifyResponse)
@limiter.limit(f"{settings.rate_limit_per_hour}/hour")
async def classify_message(request: Request, body: ClassifyRequest):
    """Split a chat message into visualization descriptors and the remaining plain text."""
    fields = {"role": body.role, "content": body.content}
    if body.created_at is not None:
        fields["created_at"] = body.created_at
    message = RawMessage(**fields)

    descriptors = pipeline.classify(message)
    hint = parse_chart_request(message.content)

    return ClassifyResponse(
        visualizations=descriptors,
        remainder=split_remainder(message.content, descriptors),
        metadata=ClassificationMetadata(
            classified_at=datetime.now(timezone.utc).isoformat(),
            total_count=len(descriptors),
            user_requested_chart=hint["show_chart"],
            chart_type=hint["chart_type"],
        ),
    )


# ── MCP endpoints ─────────────────────────────────────────────────────────────

@app.post("/mcp/tools/list", response_model=MCPToolsListResponse)
async def mcp_list_tools():
    """MCP: return all 5 visualization tools with their JSON schemas."""
    return MCPToolsListResponse(tools=mcp_handler.get_tools_list())


@app.post("/mcp/tools/call", response_model=MCPToolCallResponse)
@limiter.limit(f"{settings.rate_limit_per_hour}/hour")
async def mcp_call_tool(request: Request, body: MCPToolCallRequest):
    """MCP: validate and execute a visualization tool, return result in MCP format."""
    tool_name = body.name

    if not mcp_handler.tool_exists(tool_name):
        raise HTTPException(status_code=404, detail=f"Tool '{tool_name}' not found")

    validate_tool_arguments(tool_name, body.arguments)

    capability = mcp_handler.map_to_capability(tool_name)

    log.info("mcp_tool_call", tool=tool_name, capability=capability)

    try:
        result = await query_engine.execute(capability, body.arguments)
    except UnitParseError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return MCPToolCallResponse(
        content=[{"type": "text", "text": json.dumps(result, default=str)}]
    )


# ── Health ────────────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="healthy",
        service="campaign-chat-visualizer",
    )


@app.get("/")
async def root():
    return {
        "service": "campaign-chat-visualizer backend",
        "docs": "/docs",
        "health": "/health",
        "classify": "/classify",
        "mcp_tools": "/mcp/tools/list",
    }
