# 5 MCP visualization tools with complete inputSchema per tool.

METRIC_KINDS = ["impressions", "clicks", "cost", "conversions", "ctr", "roas", "sales"]

VISUALIZATION_TOOLS: list[dict] = [
    {
        "name": "classify_message",
        "description": "Classify a chat message into visualization descriptors plus the remaining plain text",
        "inputSchema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "content": {"type": "string", "description": "Full message text, markdown allowed"},
                "role": {"type": "string", "enum": ["user", "assistant", "system"], "default": "assistant"},
                "created_at": {"type": "string", "format": "date-time"}
            },
            "required": ["content"]
        }
    },
    {
        "name": "extract_candidates",
        "description": "Run every shape extractor and return all candidates before overlap resolution",
        "inputSchema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "content": {"type": "string"}
            },
            "required": ["content"]
        }
    },
    {
        "name": "detect_visualization_request",
        "description": "Detect a direct chart request in a user prompt and return placeholder data for it",
        "inputSchema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "content": {"type": "string", "description": "User prompt, e.g. 'show me a line chart of clicks'"},
                "created_at": {"type": "string", "format": "date-time"}
            },
            "required": ["content"]
        }
    },
    {
        "name": "normalize_metric_value",
        "description": "Parse a value token such as '$1,234.56' or '8.5%' for a metric kind",
        "inputSchema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "token": {"type": "string", "minLength": 1},
                "kind": {"type": "string", "enum": METRIC_KINDS}
            },
            "required": ["token", "kind"]
        }
    },
    {
        "name": "resolve_metric_label",
        "description": "Resolve a metric label or synonym (e.g. 'Click-Through Rate') to its metric kind",
        "inputSchema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "label": {"type": "string", "minLength": 1}
            },
            "required": ["label"]
        }
    },
]

# Quick lookup by name
TOOLS_BY_NAME: dict[str, dict] = {t["name"]: t for t in VISUALIZATION_TOOLS}
