# Classification pipeline.
#
# Entry point of the engine. For one message:
#   1. a direct chart request from the user short-circuits everything else
#   2. user prose and short messages are not classified
#   3. every shape extractor runs over the full content
#   4. overlapping candidates are resolved by confidence
#   5. winners become VisualizationDescriptors, each with a chart suggestion

import structlog

from app.config import Settings, settings
from app.models.visualization_models import (
    CandidateMatch,
    ChartSuggestion,
    MessageRole,
    RawMessage,
    ShapeKind,
    VisualizationDescriptor,
)
from .extractors import ShapeExtractor, default_extractors
from .query_parser import detect_request
from .resolver import resolve_overlaps
from .vocabulary import DEFAULT_VOCABULARY, MetricVocabulary

log = structlog.get_logger()

CHART_SUGGESTIONS: dict[ShapeKind, tuple[str, str]] = {
    ShapeKind.KPI_DASHBOARD:   ("cards", "Headline metrics read best as individual cards"),
    ShapeKind.TIME_SERIES:     ("line", "Values indexed by date show a trend"),
    ShapeKind.COMPARISON:      ("bar", "Side-by-side metrics across entities"),
    ShapeKind.DISTRIBUTION:    ("pie", "Parts of a whole expressed as percentages"),
    ShapeKind.TIMELINE:        ("timeline", "Dated events in sequence"),
    ShapeKind.TREEMAP:         ("treemap", "Nested categories sized by value"),
    ShapeKind.TABLE:           ("table", "Tabular data with consistent columns"),
    ShapeKind.CAMPAIGN_RECORD: ("cards", "Per-campaign metric summary"),
}


def suggest_chart(descriptor: VisualizationDescriptor) -> ChartSuggestion:
    chart_type, reason = CHART_SUGGESTIONS.get(descriptor.shape, ("text", "No structured layout detected"))
    return ChartSuggestion(type=chart_type, reason=reason)


def split_remainder(content: str, descriptors: list[VisualizationDescriptor]) -> list[str]:
    """Text outside every descriptor span, in document order, blank pieces dropped."""
    pieces = []
    cursor = 0
    for start, end in sorted(d.span for d in descriptors):
        if start > cursor:
            pieces.append(content[cursor:start])
        cursor = max(cursor, end)
    pieces.append(content[cursor:])
    return [p.strip() for p in pieces if p.strip()]


class ClassificationPipeline:
    def __init__(
        self,
        vocabulary: MetricVocabulary = DEFAULT_VOCABULARY,
        config: Settings = settings,
        extractors: list[ShapeExtractor] | None = None,
    ):
        self.vocabulary = vocabulary
        self.config = config
        self.extractors = extractors if extractors is not None else default_extractors(vocabulary, config)

    def extract_candidates(self, content: str) -> list[CandidateMatch]:
        """All candidates from every extractor, in emission order, before overlap resolution."""
        candidates: list[CandidateMatch] = []
        for extractor in self.extractors:
            candidates.extend(extractor.extract(content))
        return candidates

    def classify(self, message: RawMessage) -> list[VisualizationDescriptor]:
        requested = detect_request(message, self.vocabulary)
        if requested is not None:
            log.info("direct_request_detected", shape=requested.shape.value)
            return [self._with_suggestion(requested)]

        if message.role == MessageRole.USER or len(message.content) < self.config.min_content_length:
            return []

        candidates = self.extract_candidates(message.content)
        winners = resolve_overlaps(candidates)
        descriptors = [self._describe(message.content, c) for c in winners]

        log.info(
            "classification_complete",
            candidates=len(candidates),
            visualizations=len(descriptors),
            shapes=[d.shape.value for d in descriptors],
        )
        return descriptors

    def _describe(self, content: str, candidate: CandidateMatch) -> VisualizationDescriptor:
        start, end = candidate.span
        descriptor = VisualizationDescriptor(
            shape=candidate.shape,
            title=candidate.title,
            description=candidate.description,
            data=candidate.payload,
            original_text=content[start:end],
            span=candidate.span,
        )
        return self._with_suggestion(descriptor)

    @staticmethod
    def _with_suggestion(descriptor: VisualizationDescriptor) -> VisualizationDescriptor:
        return descriptor.model_copy(update={"chart_suggestion": suggest_chart(descriptor)})


pipeline = ClassificationPipeline()


def classify(message: RawMessage) -> list[VisualizationDescriptor]:
    return pipeline.classify(message)
