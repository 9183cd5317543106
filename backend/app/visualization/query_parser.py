# Chart request parsing.
#
# parse_chart_request() gives a keyword-level hint for any query.
# detect_request() recognizes an imperative "show me a <type> chart" prompt and
# synthesizes a placeholder visualization shaped like the requested chart while
# the real answer is still being generated.

import random
import re
import zlib
from datetime import timedelta

from app.models.visualization_models import (
    ComparisonEntity,
    ComparisonPayload,
    DistributionPayload,
    DistributionSlice,
    KpiDashboardPayload,
    KpiItem,
    MessageRole,
    MetricKind,
    MetricValue,
    RawMessage,
    ShapeKind,
    TimelineEvent,
    TimelinePayload,
    TimeSeriesPayload,
    TimeSeriesPoint,
    TreemapNode,
    TreemapPayload,
    VisualizationDescriptor,
)
from .units import normalize
from .vocabulary import DEFAULT_VOCABULARY, MetricVocabulary

CHART_KEYWORDS = ["chart", "graph", "visualize", "visualise", "plot", "show me a", "dashboard"]

CHART_TYPE_HINTS = {
    "pie":  ["pie", "donut", "proportion", "share", "percentage"],
    "line": ["line", "trend", "over time", "daily", "weekly", "monthly"],
    "bar":  ["bar", "compare", "breakdown", "by campaign", "by channel"],
}


def parse_chart_request(query: str) -> dict:
    """
    Return {"show_chart": bool, "chart_type": str | None}.
    chart_type is one of "pie", "bar", "line", or "auto".
    """
    q = query.lower()

    if not any(kw in q for kw in CHART_KEYWORDS):
        return {"show_chart": False, "chart_type": None}

    for chart_type, hints in CHART_TYPE_HINTS.items():
        if any(h in q for h in hints):
            return {"show_chart": True, "chart_type": chart_type}

    return {"show_chart": True, "chart_type": "auto"}


# ── Direct requests ───────────────────────────────────────────────────────────

_VERB = r"\b(?:give|show|create|generate|make|draw)\s+(?:me\s+)?(?:(?:a|an|the|my)\s+)?"

_CHART_REQUEST = re.compile(
    _VERB
    + r"(?P<type>line|area|time[\s-]series|time|pie|donut|doughnut|bar|distribution|comparison|comparative"
      r"|radar|versus|vs|dashboard|overview|summary|kpi|timeline|history|chronology|treemap|hierarchy"
      r"|budget|allocation|scatter|correlation)"
    + r"\s+(?:chart|graph|plot|visualization|visualisation)\b",
    re.IGNORECASE,
)
_VIEW_REQUEST = re.compile(
    _VERB
    + r"(?P<type>kpi\s+dashboard|dashboard|overview|summary|timeline|history|chronology|treemap|hierarchy"
      r"|budget\s+allocation)\b",
    re.IGNORECASE,
)

# None marks request types with no shape to synthesize
REQUEST_SHAPES: dict[str, ShapeKind | None] = {
    "line": ShapeKind.TIME_SERIES,
    "area": ShapeKind.TIME_SERIES,
    "time": ShapeKind.TIME_SERIES,
    "time series": ShapeKind.TIME_SERIES,
    "pie": ShapeKind.DISTRIBUTION,
    "donut": ShapeKind.DISTRIBUTION,
    "doughnut": ShapeKind.DISTRIBUTION,
    "bar": ShapeKind.DISTRIBUTION,
    "distribution": ShapeKind.DISTRIBUTION,
    "comparison": ShapeKind.COMPARISON,
    "comparative": ShapeKind.COMPARISON,
    "radar": ShapeKind.COMPARISON,
    "versus": ShapeKind.COMPARISON,
    "vs": ShapeKind.COMPARISON,
    "dashboard": ShapeKind.KPI_DASHBOARD,
    "kpi dashboard": ShapeKind.KPI_DASHBOARD,
    "overview": ShapeKind.KPI_DASHBOARD,
    "summary": ShapeKind.KPI_DASHBOARD,
    "kpi": ShapeKind.KPI_DASHBOARD,
    "timeline": ShapeKind.TIMELINE,
    "history": ShapeKind.TIMELINE,
    "chronology": ShapeKind.TIMELINE,
    "treemap": ShapeKind.TREEMAP,
    "hierarchy": ShapeKind.TREEMAP,
    "budget": ShapeKind.TREEMAP,
    "allocation": ShapeKind.TREEMAP,
    "budget allocation": ShapeKind.TREEMAP,
    "scatter": None,
    "correlation": None,
}

GRANULARITY_PATTERNS = (
    ("day",     re.compile(r"\b(?:daily|days?)\b", re.IGNORECASE)),
    ("week",    re.compile(r"\b(?:weekly|weeks?)\b", re.IGNORECASE)),
    ("month",   re.compile(r"\b(?:monthly|months?)\b", re.IGNORECASE)),
    ("quarter", re.compile(r"\b(?:quarterly|quarters?)\b", re.IGNORECASE)),
    ("year",    re.compile(r"\b(?:yearly|annual|years?)\b", re.IGNORECASE)),
)

MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# Typical magnitudes used to scale placeholder values
SAMPLE_BASE: dict[MetricKind, float] = {
    MetricKind.IMPRESSIONS: 12000,
    MetricKind.CLICKS:      360,
    MetricKind.COST:        850,
    MetricKind.CONVERSIONS: 28,
    MetricKind.CTR:         3.0,
    MetricKind.ROAS:        4.2,
    MetricKind.SALES:       3600,
}

SAMPLE_DISTRIBUTION = [
    ("Campaign A", 35.0),
    ("Campaign B", 25.0),
    ("Campaign C", 20.0),
    ("Campaign D", 15.0),
    ("Others", 5.0),
]

# (first entity, second entity) per metric
SAMPLE_COMPARISON: dict[MetricKind, tuple[float, float]] = {
    MetricKind.IMPRESSIONS: (15000, 12000),
    MetricKind.CLICKS:      (450, 336),
    MetricKind.COST:        (1250, 1100),
    MetricKind.CONVERSIONS: (45, 32),
    MetricKind.CTR:         (3.2, 2.8),
    MetricKind.ROAS:        (4.5, 3.9),
    MetricKind.SALES:       (5625, 4290),
}
DEFAULT_COMPARISON: dict[MetricKind, tuple[float, float]] = {
    MetricKind.IMPRESSIONS: (15000, 12000),
    MetricKind.CLICKS:      (450, 336),
    MetricKind.CTR:         (3.0, 2.8),
}

KPI_PADDING = [MetricKind.IMPRESSIONS, MetricKind.CLICKS, MetricKind.CTR, MetricKind.COST]

SAMPLE_TREEMAP = [
    ("Search", [("Brand", 25.0), ("Generic", 20.0)]),
    ("Social", [("Prospecting", 18.0), ("Retargeting", 12.0)]),
    ("Display", [("Awareness", 15.0), ("Remarketing", 10.0)]),
]

SAMPLE_EVENTS = [
    (60, "Campaign launched", "Initial budget and targeting went live."),
    (30, "Budget adjusted", "Spend shifted toward the best performing ad groups."),
    (7, "Creative refresh", "New ad variations started serving."),
]


def match_request(content: str) -> tuple[str, ShapeKind | None] | None:
    """Return (request type, shape) for an imperative chart request, or None."""
    match = _CHART_REQUEST.search(content) or _VIEW_REQUEST.search(content)
    if match is None:
        return None
    requested = re.sub(r"[\s-]+", " ", match.group("type").lower())
    return requested, REQUEST_SHAPES[requested]


def detect_granularity(content: str) -> str:
    for granularity, pattern in GRANULARITY_PATTERNS:
        if pattern.search(content):
            return granularity
    return "month"


def period_labels(granularity: str, year: int) -> list[str]:
    if granularity == "day":
        return [f"Day {i}" for i in range(1, 8)]
    if granularity == "week":
        return [f"Week {i}" for i in range(1, 5)]
    if granularity == "quarter":
        return ["Q1", "Q2", "Q3", "Q4"]
    if granularity == "year":
        return [str(y) for y in range(year - 4, year + 1)]
    return list(MONTH_LABELS)


def _sample_value(kind: MetricKind, rng: random.Random) -> float:
    value = SAMPLE_BASE[kind] * rng.uniform(0.8, 1.2)
    if kind in (MetricKind.IMPRESSIONS, MetricKind.CLICKS, MetricKind.CONVERSIONS):
        return float(round(value))
    return round(value, 2)


def _time_series(metrics, message, rng, vocabulary):
    labels = period_labels(detect_granularity(message.content), message.created_at.year)
    points = [
        TimeSeriesPoint(date=label, values={kind: _sample_value(kind, rng) for kind in metrics})
        for label in labels
    ]
    return TimeSeriesPayload(metrics=metrics, points=points)


def _distribution(metrics, message, rng, vocabulary):
    return DistributionPayload(slices=[DistributionSlice(name=n, value=v) for n, v in SAMPLE_DISTRIBUTION])


def _comparison(metrics, message, rng, vocabulary):
    table = {k: SAMPLE_COMPARISON[k] for k in metrics} if metrics else DEFAULT_COMPARISON
    entities = []
    for index, name in enumerate(("Campaign A", "Campaign B")):
        entities.append(ComparisonEntity(
            entity_name=name,
            metrics=[MetricValue(kind=k, value=normalize(str(pair[index]), k)) for k, pair in table.items()],
        ))
    return ComparisonPayload(entities=entities)


def _kpi_dashboard(metrics, message, rng, vocabulary):
    kinds = list(metrics)
    for kind in KPI_PADDING:
        if len(kinds) >= 3:
            break
        if kind not in kinds:
            kinds.append(kind)
    items = [
        KpiItem(
            title=vocabulary.display_name(kind),
            kind=kind,
            value=normalize(str(_sample_value(kind, rng)), kind),
            change_percent=round(rng.uniform(-10, 15), 1),
        )
        for kind in kinds
    ]
    return KpiDashboardPayload(items=items)


def _timeline(metrics, message, rng, vocabulary):
    day = message.created_at.date()
    return TimelinePayload(events=[
        TimelineEvent(date=(day - timedelta(days=ago)).isoformat(), title=title, description=description)
        for ago, title, description in SAMPLE_EVENTS
    ])


def _treemap(metrics, message, rng, vocabulary):
    nodes = []
    for name, children in SAMPLE_TREEMAP:
        leaves = [TreemapNode(name=child, value=value) for child, value in children]
        nodes.append(TreemapNode(name=name, value=sum(c.value for c in leaves), children=leaves))
    return TreemapPayload(nodes=nodes)


SYNTHESIZERS = {
    ShapeKind.TIME_SERIES: _time_series,
    ShapeKind.DISTRIBUTION: _distribution,
    ShapeKind.COMPARISON: _comparison,
    ShapeKind.KPI_DASHBOARD: _kpi_dashboard,
    ShapeKind.TIMELINE: _timeline,
    ShapeKind.TREEMAP: _treemap,
}


def detect_request(
    message: RawMessage,
    vocabulary: MetricVocabulary = DEFAULT_VOCABULARY,
) -> VisualizationDescriptor | None:
    """
    Return a synthetic descriptor when a user message asks for a chart.

    Placeholder values are seeded from the message text, so the same message
    always yields the same descriptor.
    """
    if message.role != MessageRole.USER:
        return None
    matched = match_request(message.content)
    if matched is None:
        return None
    requested, shape = matched
    if shape is None:
        return None

    metrics = vocabulary.find_all(message.content)
    if shape in (ShapeKind.TIME_SERIES, ShapeKind.KPI_DASHBOARD) and not metrics:
        metrics = [MetricKind.IMPRESSIONS]
    rng = random.Random(zlib.crc32(message.content.encode("utf-8")))

    return VisualizationDescriptor(
        shape=shape,
        title=f"Preparing your {requested} chart",
        description="Sample data shown while the analysis is generated.",
        data=SYNTHESIZERS[shape](metrics, message, rng, vocabulary),
        original_text=message.content,
        span=(0, len(message.content)),
        synthetic=True,
    )
