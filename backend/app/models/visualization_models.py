from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MetricKind(str, Enum):
    IMPRESSIONS = "impressions"
    CLICKS = "clicks"
    COST = "cost"
    CONVERSIONS = "conversions"
    CTR = "ctr"
    ROAS = "roas"
    SALES = "sales"


class ValueUnit(str, Enum):
    CURRENCY = "currency"
    PERCENT = "percent"
    RATIO = "ratio"
    COUNT = "count"


class ShapeKind(str, Enum):
    KPI_DASHBOARD = "kpi-dashboard"
    TIME_SERIES = "time-series"
    COMPARISON = "comparison"
    DISTRIBUTION = "distribution"
    TIMELINE = "timeline"
    TREEMAP = "treemap"
    TABLE = "table"
    CAMPAIGN_RECORD = "campaign-record"
    TEXT = "text"


class RawMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ── Values ────────────────────────────────────────────────────────────────────

class NormalizedValue(BaseModel):
    raw: float
    unit: ValueUnit
    display_hint: str


class MetricValue(BaseModel):
    kind: MetricKind
    value: NormalizedValue


# ── Shape payloads (discriminated on "shape") ─────────────────────────────────

class KpiItem(BaseModel):
    title: str
    kind: MetricKind
    value: NormalizedValue
    change_percent: float | None = None


class KpiDashboardPayload(BaseModel):
    shape: Literal["kpi-dashboard"] = "kpi-dashboard"
    items: list[KpiItem]


class TimeSeriesPoint(BaseModel):
    date: str
    values: dict[MetricKind, float]


class TimeSeriesPayload(BaseModel):
    shape: Literal["time-series"] = "time-series"
    metrics: list[MetricKind]
    points: list[TimeSeriesPoint]


class ComparisonEntity(BaseModel):
    entity_name: str
    metrics: list[MetricValue]


class ComparisonPayload(BaseModel):
    shape: Literal["comparison"] = "comparison"
    entities: list[ComparisonEntity]


class DistributionSlice(BaseModel):
    name: str
    value: float  # percentage points


class DistributionPayload(BaseModel):
    shape: Literal["distribution"] = "distribution"
    slices: list[DistributionSlice]


class TimelineEvent(BaseModel):
    date: str
    title: str
    description: str | None = None


class TimelinePayload(BaseModel):
    shape: Literal["timeline"] = "timeline"
    events: list[TimelineEvent]


class TreemapNode(BaseModel):
    name: str
    value: float
    children: list["TreemapNode"] = Field(default_factory=list)


class TreemapPayload(BaseModel):
    shape: Literal["treemap"] = "treemap"
    nodes: list[TreemapNode]


class TablePayload(BaseModel):
    shape: Literal["table"] = "table"
    headers: list[str]
    rows: list[list[str]]

    @model_validator(mode="after")
    def _rows_match_headers(self) -> "TablePayload":
        width = len(self.headers)
        if any(len(row) != width for row in self.rows):
            raise ValueError(f"every table row must have {width} cells")
        return self


class CampaignRecord(BaseModel):
    id: str = Field(pattern=r"^\d{8,}$")
    name: str | None = None
    metrics: list[MetricValue]


class CampaignRecordPayload(BaseModel):
    shape: Literal["campaign-record"] = "campaign-record"
    campaigns: list[CampaignRecord]


class TextPayload(BaseModel):
    shape: Literal["text"] = "text"
    text: str


ShapePayload = Annotated[
    Union[
        KpiDashboardPayload,
        TimeSeriesPayload,
        ComparisonPayload,
        DistributionPayload,
        TimelinePayload,
        TreemapPayload,
        TablePayload,
        CampaignRecordPayload,
        TextPayload,
    ],
    Field(discriminator="shape"),
]


# ── Extraction results ────────────────────────────────────────────────────────

class CandidateMatch(BaseModel):
    """A provisional extraction tied to a span of the message text."""

    model_config = ConfigDict(frozen=True)

    shape: ShapeKind
    confidence: float = Field(ge=0.0, le=1.0)
    span: tuple[int, int]
    title: str | None = None
    description: str | None = None
    payload: ShapePayload

    @model_validator(mode="after")
    def _check_span_and_tag(self) -> "CandidateMatch":
        start, end = self.span
        if start < 0 or start >= end:
            raise ValueError(f"invalid span {self.span}")
        if self.payload.shape != self.shape.value:
            raise ValueError(f"payload shape {self.payload.shape!r} does not match {self.shape.value!r}")
        return self


class ChartSuggestion(BaseModel):
    type: str  # "cards" | "line" | "bar" | "pie" | "timeline" | "treemap" | "table" | "text"
    reason: str


class VisualizationDescriptor(BaseModel):
    shape: ShapeKind
    title: str | None = None
    description: str | None = None
    data: ShapePayload
    original_text: str
    span: tuple[int, int]
    synthetic: bool = False
    chart_suggestion: ChartSuggestion | None = None

    @model_validator(mode="after")
    def _check_tag(self) -> "VisualizationDescriptor":
        if self.data.shape != self.shape.value:
            raise ValueError(f"data shape {self.data.shape!r} does not match {self.shape.value!r}")
        return self


# ── API ───────────────────────────────────────────────────────────────────────

class ClassifyRequest(BaseModel):
    role: MessageRole = MessageRole.ASSISTANT
    content: str
    created_at: datetime | None = None


class ClassificationMetadata(BaseModel):
    classified_at: str
    total_count: int
    user_requested_chart: bool = False
    chart_type: str | None = None


class ClassifyResponse(BaseModel):
    visualizations: list[VisualizationDescriptor]
    remainder: list[str]
    metadata: ClassificationMetadata


class MCPToolCallRequest(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class MCPToolCallResponse(BaseModel):
    content: list[dict[str, Any]]


class MCPToolsListResponse(BaseModel):
    tools: list[dict[str, Any]]


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str = "1.0.0"
