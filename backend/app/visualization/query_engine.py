from datetime import datetime
from typing import Any

from app.models.visualization_models import MessageRole, MetricKind, RawMessage
from .pipeline import pipeline, split_remainder
from .query_parser import detect_request, parse_chart_request
from .units import normalize

# Capability name → handler. Arguments arrive already validated against the
# tool's JSON schema, so handlers only convert types.


def _message(arguments: dict[str, Any]) -> RawMessage:
    fields: dict[str, Any] = {
        "role": MessageRole(arguments.get("role", MessageRole.ASSISTANT.value)),
        "content": arguments["content"],
    }
    if arguments.get("created_at"):
        fields["created_at"] = datetime.fromisoformat(arguments["created_at"])
    return RawMessage(**fields)


class VisualizationQueryEngine:
    async def execute(self, capability: str, arguments: dict[str, Any]) -> dict[str, Any]:
        handler = getattr(self, f"_{capability}", None)
        if handler is None:
            raise ValueError(f"Unknown capability '{capability}'")
        return handler(arguments)

    def _classify(self, arguments: dict[str, Any]) -> dict[str, Any]:
        message = _message(arguments)
        descriptors = pipeline.classify(message)
        return {
            "visualizations": [d.model_dump(mode="json") for d in descriptors],
            "remainder": split_remainder(message.content, descriptors),
            "chart_request": parse_chart_request(message.content),
        }

    def _extract(self, arguments: dict[str, Any]) -> dict[str, Any]:
        candidates = pipeline.extract_candidates(arguments["content"])
        return {"candidates": [c.model_dump(mode="json") for c in candidates]}

    def _detect_request(self, arguments: dict[str, Any]) -> dict[str, Any]:
        message = _message({**arguments, "role": MessageRole.USER.value})
        descriptor = detect_request(message, pipeline.vocabulary)
        return {
            "requested": descriptor is not None,
            "visualization": descriptor.model_dump(mode="json") if descriptor else None,
        }

    def _normalize(self, arguments: dict[str, Any]) -> dict[str, Any]:
        # UnitParseError propagates; the API layer maps it to 422
        value = normalize(arguments["token"], MetricKind(arguments["kind"]))
        return value.model_dump(mode="json")

    def _resolve_label(self, arguments: dict[str, Any]) -> dict[str, Any]:
        kind = pipeline.vocabulary.resolve(arguments["label"])
        return {"label": arguments["label"], "kind": kind.value if kind else None}


query_engine = VisualizationQueryEngine()
