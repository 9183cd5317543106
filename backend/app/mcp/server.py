from .tools import VISUALIZATION_TOOLS, TOOLS_BY_NAME

# Tool name → internal visualization capability name.
TOOL_CAPABILITY_MAP: dict[str, str] = {
    "classify_message":             "classify",
    "extract_candidates":           "extract",
    "detect_visualization_request": "detect_request",
    "normalize_metric_value":       "normalize",
    "resolve_metric_label":         "resolve_label",
}


class MCPProtocolHandler:
    def get_tools_list(self) -> list[dict]:
        return VISUALIZATION_TOOLS

    def tool_exists(self, tool_name: str) -> bool:
        return tool_name in TOOLS_BY_NAME

    def map_to_capability(self, tool_name: str) -> str:
        return TOOL_CAPABILITY_MAP.get(tool_name, tool_name)


mcp_handler = MCPProtocolHandler()
