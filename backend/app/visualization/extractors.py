# Shape extractors.
#
# Each extractor scans the full message on its own and emits zero or more
# CandidateMatch objects. All of them follow the same three steps:
#   locate sections -> parse items -> enforce the shape's minimum item count
# A ValueError while parsing one section drops that section only.

import re

import structlog

from app.config import Settings, settings
from app.models.visualization_models import (
    CampaignRecord,
    CampaignRecordPayload,
    CandidateMatch,
    ComparisonEntity,
    ComparisonPayload,
    DistributionPayload,
    DistributionSlice,
    KpiDashboardPayload,
    KpiItem,
    MetricValue,
    ShapeKind,
    TablePayload,
    TimelineEvent,
    TimelinePayload,
    TimeSeriesPayload,
    TimeSeriesPoint,
    TreemapNode,
    TreemapPayload,
)
from .sections import (
    DATE_TOKEN,
    LIST_MARKER,
    VALUE_TOKEN,
    MetricMention,
    MetricMentionScanner,
    Section,
    find_markdown_tables,
    heading_parts,
    locate_sections,
    table_section,
)
from .units import UnitParseError, normalize, parse_number
from .vocabulary import DEFAULT_VOCABULARY, MetricVocabulary

log = structlog.get_logger()


class ShapeExtractor:
    shape: ShapeKind
    confidence: float
    min_items: int = 1
    trigger: re.Pattern | None = None
    default_title: str | None = None

    def __init__(self, vocabulary: MetricVocabulary = DEFAULT_VOCABULARY, config: Settings = settings):
        self.vocabulary = vocabulary
        self.config = config
        self.mentions = MetricMentionScanner(vocabulary)

    def extract(self, content: str) -> list[CandidateMatch]:
        candidates = []
        for section in self.locate_sections(content):
            try:
                items = self.parse_items(section, content)
                if len(items) < self.min_items or not self.accept(items):
                    continue
                candidates.append(self.build_candidate(section, content, items))
            except ValueError as e:
                log.warning(
                    "extractor_section_failed",
                    shape=self.shape.value,
                    start=section.start,
                    error=type(e).__name__,
                )
        return candidates

    def locate_sections(self, content: str) -> list[Section]:
        return locate_sections(content, self.trigger)

    def parse_items(self, section: Section, content: str) -> list:
        raise NotImplementedError

    def accept(self, items: list) -> bool:
        return True

    def build_payload(self, items: list):
        raise NotImplementedError

    def title_for(self, section: Section, content: str) -> str | None:
        title, _ = heading_parts(section.text)
        return title or self.default_title

    def description_for(self, section: Section) -> str | None:
        return None

    def build_candidate(self, section: Section, content: str, items: list) -> CandidateMatch:
        return CandidateMatch(
            shape=self.shape,
            confidence=self.confidence,
            span=(section.start, section.end),
            title=self.title_for(section, content),
            description=self.description_for(section),
            payload=self.build_payload(items),
        )

    def metric_values(self, mentions: list[MetricMention]) -> list[MetricValue]:
        """Normalize mentions, keeping the first parseable value per metric kind."""
        values: list[MetricValue] = []
        for mention in mentions:
            if any(v.kind == mention.kind for v in values):
                continue
            try:
                values.append(MetricValue(kind=mention.kind, value=normalize(mention.token, mention.kind)))
            except UnitParseError:
                continue
        return values


# ── KPI dashboard ─────────────────────────────────────────────────────────────

_CHANGE_WORDS = re.compile(
    r"\b(?P<direction>increased|increase|up|grew|rose|improved|decreased|decrease|down|dropped|fell|declined)"
    r"\s+(?:by\s+)?(?P<pct>\d+(?:\.\d+)?)\s?%",
    re.IGNORECASE,
)
_CHANGE_SIGNED = re.compile(r"\(\s*(?P<sign>[+\-−])\s?(?P<pct>\d+(?:\.\d+)?)\s?%")
_NEGATIVE_WORDS = {"decreased", "decrease", "down", "dropped", "fell", "declined"}


def parse_change(text: str) -> float | None:
    signed = _CHANGE_SIGNED.search(text)
    worded = _CHANGE_WORDS.search(text)
    if signed and (not worded or signed.start() < worded.start()):
        pct = float(signed.group("pct"))
        return pct if signed.group("sign") == "+" else -pct
    if worded:
        pct = float(worded.group("pct"))
        return -pct if worded.group("direction").lower() in _NEGATIVE_WORDS else pct
    return None


class KpiDashboardExtractor(ShapeExtractor):
    shape = ShapeKind.KPI_DASHBOARD
    confidence = 0.80
    min_items = 3
    default_title = "Performance Overview"
    trigger = re.compile(
        r"\b(?:(?:performance|campaign|account)\s+(?:overview|summary|highlights|snapshot)"
        r"|key\s+(?:metrics|performance\s+indicators)|kpis?|metrics\s+(?:summary|overview)|dashboard)\b",
        re.IGNORECASE,
    )

    def parse_items(self, section: Section, content: str) -> list[KpiItem]:
        text = section.text
        mentions = self.mentions.scan(text)
        items: list[KpiItem] = []
        for i, mention in enumerate(mentions):
            if any(item.kind == mention.kind for item in items):
                continue
            try:
                value = normalize(mention.token, mention.kind)
            except UnitParseError:
                continue
            # change text runs to the end of the line or the next mention
            tail_end = text.find("\n", mention.end)
            if tail_end == -1:
                tail_end = len(text)
            if i + 1 < len(mentions):
                tail_end = min(tail_end, mentions[i + 1].start)
            items.append(KpiItem(
                title=self.vocabulary.display_name(mention.kind),
                kind=mention.kind,
                value=value,
                change_percent=parse_change(text[mention.end:tail_end]),
            ))
        return items

    def build_payload(self, items: list[KpiItem]) -> KpiDashboardPayload:
        return KpiDashboardPayload(items=items)


# ── Time series ───────────────────────────────────────────────────────────────

_DATE_HEADER = re.compile(r"\b(?:date|day|week|month|year|period|quarter)\b", re.IGNORECASE)
_DATED_ITEM = re.compile(
    rf"^\s*{LIST_MARKER}\s*\**(?P<date>{DATE_TOKEN})\**\s*[:\-–—]\s*(?P<rest>.+)$",
    re.MULTILINE,
)
_FIRST_VALUE = re.compile(VALUE_TOKEN)


class TimeSeriesExtractor(ShapeExtractor):
    shape = ShapeKind.TIME_SERIES
    confidence = 0.75
    min_items = 3
    default_title = "Performance Over Time"
    trigger = re.compile(
        r"\b(?:trends?|performance\s+over\s+time|historical\s+data|time\s+series"
        r"|(?:daily|weekly|monthly)\s+(?:performance|results|data|metrics))\b",
        re.IGNORECASE,
    )

    def locate_sections(self, content: str) -> list[Section]:
        tables = [table_section(t, content) for t in find_markdown_tables(content)]
        return tables + locate_sections(content, self.trigger)

    def parse_items(self, section: Section, content: str) -> list[TimeSeriesPoint]:
        if section.table is not None:
            return self._table_points(section)
        return self._list_points(section, content)

    def _table_points(self, section: Section) -> list[TimeSeriesPoint]:
        headers = section.table.headers
        date_col = next((i for i, h in enumerate(headers) if _DATE_HEADER.search(h)), None)
        if date_col is None:
            return []
        # unrecognized columns are dropped
        columns = {
            i: kind for i, h in enumerate(headers)
            if i != date_col and (kind := self.vocabulary.resolve(h)) is not None
        }
        if not columns:
            return []

        points = []
        for row in section.table.rows:
            if len(row) != len(headers) or not row[date_col]:
                continue
            values = {}
            for i, kind in columns.items():
                try:
                    values[kind] = normalize(row[i], kind).raw
                except UnitParseError:
                    continue
            if values:
                points.append(TimeSeriesPoint(date=row[date_col], values=values))
        return points

    def _list_points(self, section: Section, content: str) -> list[TimeSeriesPoint]:
        # the metric may only be named in the heading or just before the section
        lookback = self.config.series_context_chars
        context = content[max(0, section.start - lookback):section.start] + section.heading
        context_kinds = self.vocabulary.find_all(context)
        default_kind = context_kinds[0] if context_kinds else None

        points = []
        for match in _DATED_ITEM.finditer(section.text):
            rest = match.group("rest")
            values = {v.kind: v.value.raw for v in self.metric_values(self.mentions.scan(rest))}
            if not values and default_kind is not None:
                token = _FIRST_VALUE.search(rest)
                if token:
                    try:
                        values[default_kind] = normalize(token.group(0), default_kind).raw
                    except UnitParseError:
                        pass
            if values:
                points.append(TimeSeriesPoint(date=match.group("date"), values=values))
        return points

    def build_payload(self, items: list[TimeSeriesPoint]) -> TimeSeriesPayload:
        metrics = []
        for point in items:
            for kind in point.values:
                if kind not in metrics:
                    metrics.append(kind)
        return TimeSeriesPayload(metrics=metrics, points=items)

    def title_for(self, section: Section, content: str) -> str | None:
        return self.default_title


# ── Comparison ────────────────────────────────────────────────────────────────

_ID_ENTITY = re.compile(
    r"Campaign\s+(?:ID\s*:?|\(\s*ID\s*:?|\w+\s+ID\s*:?)\s*(?P<id>\d{8,})",
    re.IGNORECASE,
)
_NAMED_ENTITY = re.compile(
    r"Campaign\s+(?:\"(?P<dq>[^\"\n]+)\"|'(?P<sq>[^'\n]+)'|(?P<bare>[A-Za-z0-9][A-Za-z0-9 ]*?))\s+has\b",
    re.IGNORECASE,
)


class ComparisonExtractor(ShapeExtractor):
    shape = ShapeKind.COMPARISON
    confidence = 0.80
    min_items = 2
    default_title = "Campaign Comparison"
    trigger = re.compile(r"(?:\bcomparison\b|\bversus\b|\bvs\.|\bcomparing\b|\bcompared?\b)", re.IGNORECASE)

    def _entities(self, text: str) -> list[tuple[int, str]]:
        found = []
        for match in _ID_ENTITY.finditer(text):
            found.append((match.start(), match.end(), match.group("id")))
        for match in _NAMED_ENTITY.finditer(text):
            name = (match.group("dq") or match.group("sq") or match.group("bare") or "").strip()
            found.append((match.start(), match.end(), name))
        found.sort()

        entities: list[tuple[int, str]] = []
        last_end = -1
        for start, end, name in found:
            if start < last_end or not name:
                continue
            entities.append((start, name))
            last_end = end
        return entities

    def parse_items(self, section: Section, content: str) -> list[ComparisonEntity]:
        text = section.text
        if "Campaign" not in text or "ID" not in text:
            return []

        entities = self._entities(text)
        items: list[ComparisonEntity] = []
        for i, (start, name) in enumerate(entities):
            end = min(start + self.config.entity_window_chars, len(text))
            blank = text.find("\n\n", start)
            if blank != -1:
                end = min(end, blank)
            if i + 1 < len(entities):
                end = min(end, entities[i + 1][0])

            if any(item.entity_name == name for item in items):
                continue
            metrics = self.metric_values(self.mentions.scan(text[start:end]))
            if metrics:
                items.append(ComparisonEntity(entity_name=name, metrics=metrics))
        return items

    def build_payload(self, items: list[ComparisonEntity]) -> ComparisonPayload:
        return ComparisonPayload(entities=items)

    def description_for(self, section: Section) -> str | None:
        _, rest = heading_parts(section.text)
        description = rest.split(".", 1)[0].strip()
        return description or None


# ── Distribution ──────────────────────────────────────────────────────────────

_PERCENT = r"(?P<value>\d+(?:\.\d+)?)\s?%"
_SLICE_PATTERNS = (
    re.compile(rf"^\s*{LIST_MARKER}\s*(?P<name>[^:\n]+?)\s*:\s*\**{_PERCENT}"),
    re.compile(rf"^\s*{LIST_MARKER}\s*(?P<name>[^:\n]+?)\s*:[^\n%]*?\(\s*{_PERCENT}\s*\)"),
    re.compile(rf"^\s*{LIST_MARKER}\s*(?P<name>[^\n]+?)\s+(?:accounts\s+for|represents|makes\s+up)\s+{_PERCENT}",
               re.IGNORECASE),
)


class DistributionExtractor(ShapeExtractor):
    shape = ShapeKind.DISTRIBUTION
    confidence = 0.75
    min_items = 3
    default_title = "Distribution Breakdown"
    trigger = re.compile(r"\b(?:distribution|breakdown|composition|share|split)\b", re.IGNORECASE)

    def parse_items(self, section: Section, content: str) -> list[DistributionSlice]:
        slices = []
        for line in section.text.split("\n"):
            for pattern in _SLICE_PATTERNS:
                match = pattern.match(line)
                if match is None:
                    continue
                name = match.group("name").replace("**", "").strip()
                try:
                    slices.append(DistributionSlice(name=name, value=parse_number(match.group("value"))))
                except UnitParseError:
                    pass
                break
        return slices

    def accept(self, items: list[DistributionSlice]) -> bool:
        if not self.config.strict_distribution_sum:
            return True
        total = sum(s.value for s in items)
        return abs(total - 100) <= self.config.distribution_sum_tolerance

    def build_payload(self, items: list[DistributionSlice]) -> DistributionPayload:
        return DistributionPayload(slices=items)


# ── Timeline ──────────────────────────────────────────────────────────────────

_EVENT_LINE = re.compile(
    rf"^\s*{LIST_MARKER}\s*\**(?P<date>{DATE_TOKEN})\**[\s:\-–—]+(?P<text>.+)$",
    re.MULTILINE,
)
_EVENT_TITLE = re.compile(r"^[^.,;:!?]+")


class TimelineExtractor(ShapeExtractor):
    shape = ShapeKind.TIMELINE
    confidence = 0.80
    min_items = 2
    default_title = "Campaign Timeline"
    trigger = re.compile(r"\b(?:timeline|history|events|chronology|milestones|key\s+dates)\b", re.IGNORECASE)

    def parse_items(self, section: Section, content: str) -> list[TimelineEvent]:
        events = []
        for match in _EVENT_LINE.finditer(section.text):
            text = match.group("text").replace("**", "").strip()
            title_match = _EVENT_TITLE.match(text)
            title = title_match.group(0).strip() if title_match else "Event"
            rest = text[title_match.end():] if title_match else text
            rest = rest.lstrip(".,;:!? ").strip()
            events.append(TimelineEvent(date=match.group("date"), title=title, description=rest or None))
        return events

    def build_payload(self, items: list[TimelineEvent]) -> TimelinePayload:
        return TimelinePayload(events=items)


# ── Treemap ───────────────────────────────────────────────────────────────────

_TREE_ITEM = re.compile(rf"^(?P<indent>[ \t]*){LIST_MARKER}[ \t]+(?P<name>[^:\n]+?)[ \t]*(?::(?P<value>[^\n]*))?$")


class TreemapExtractor(ShapeExtractor):
    shape = ShapeKind.TREEMAP
    confidence = 0.78
    min_items = 2
    default_title = "Budget Allocation"
    trigger = re.compile(
        r"\b(?:budget\s+allocation|spend(?:ing)?\s+breakdown|distribution\s+by\s+category"
        r"|hierarch(?:y|ical)|allocation)\b",
        re.IGNORECASE,
    )

    def parse_items(self, section: Section, content: str) -> list[TreemapNode]:
        roots: list[dict] = []
        stack: list[tuple[int, dict]] = []
        for line in section.text.split("\n")[1:]:
            match = _TREE_ITEM.match(line)
            if match is None:
                continue
            value = None
            token = _FIRST_VALUE.search(match.group("value") or "")
            if token:
                try:
                    value = parse_number(token.group(0))
                except UnitParseError:
                    value = None
            node = {"name": match.group("name").replace("**", "").strip(), "value": value, "children": []}
            indent = len(match.group("indent").expandtabs(4))

            while stack and stack[-1][0] >= indent:
                stack.pop()
            if stack:
                stack[-1][1]["children"].append(node)
            else:
                roots.append(node)
            stack.append((indent, node))

        return [n for n in (self._to_node(r) for r in roots) if n is not None]

    def _to_node(self, raw: dict) -> TreemapNode | None:
        children = [n for n in (self._to_node(c) for c in raw["children"]) if n is not None]
        value = raw["value"]
        if value is None:
            if not children:
                return None
            value = sum(c.value for c in children)
        return TreemapNode(name=raw["name"], value=value, children=children)

    def accept(self, items: list[TreemapNode]) -> bool:
        return any(node.children for node in items)

    def build_payload(self, items: list[TreemapNode]) -> TreemapPayload:
        return TreemapPayload(nodes=items)


# ── Table ─────────────────────────────────────────────────────────────────────

class TableExtractor(ShapeExtractor):
    shape = ShapeKind.TABLE
    confidence = 0.90
    min_items = 1
    default_title = "Data Table"

    def locate_sections(self, content: str) -> list[Section]:
        return [table_section(t, content) for t in find_markdown_tables(content)]

    def parse_items(self, section: Section, content: str) -> list[list[str]]:
        width = len(section.table.headers)
        return [row for row in section.table.rows if len(row) == width]

    def build_candidate(self, section: Section, content: str, items: list) -> CandidateMatch:
        return CandidateMatch(
            shape=self.shape,
            confidence=self.confidence,
            span=(section.start, section.end),
            title=self.title_for(section, content),
            payload=TablePayload(headers=section.table.headers, rows=items),
        )

    def title_for(self, section: Section, content: str) -> str | None:
        window = content[max(0, section.start - self.config.table_title_lookback_chars):section.start]
        for line in reversed(window.split("\n")):
            if not line.strip():
                continue
            if line.strip().startswith("|"):
                break
            title, _ = heading_parts(line)
            title = title.split(". ")[-1].strip()
            return title or self.default_title
        return self.default_title


# ── Campaign record ───────────────────────────────────────────────────────────

_CAMPAIGN_ID = re.compile(r"\bCampaign\b[^\S\n]*\(?(?:ID)?[^\S\n]*[:#]?[^\S\n]*(?P<id>\d{8,})\b", re.IGNORECASE)
_QUOTED_NAME = re.compile(r"[^\S\n]*\)?[^\S\n]*(?:[-:(]|named)?[^\S\n]*[\"“'](?P<name>[^\"”'\n]{1,80})[\"”']")
_LABELED_NAME = re.compile(r"\b(?:Campaign\s+)?Name\s*:\s*(?P<name>[^\n,;]+)", re.IGNORECASE)
_LEADING_TITLE = re.compile(r"^\s*(Campaign(?:[^.!?\n]|[.!?](?=\S))*)", re.IGNORECASE)


class CampaignRecordExtractor(ShapeExtractor):
    """Catches campaign metrics outside any headed section; spans the whole message."""

    shape = ShapeKind.CAMPAIGN_RECORD
    confidence = 0.90
    min_items = 1
    default_title = "Campaign Performance"

    def locate_sections(self, content: str) -> list[Section]:
        if not content.strip() or not _CAMPAIGN_ID.search(content):
            return []
        return [Section(0, len(content), content)]

    def parse_items(self, section: Section, content: str) -> list[CampaignRecord]:
        matches = list(_CAMPAIGN_ID.finditer(content))
        records: list[CampaignRecord] = []
        for i, match in enumerate(matches):
            campaign_id = match.group("id")
            if any(r.id == campaign_id for r in records):
                continue
            end = min(match.start() + self.config.campaign_lookahead_chars, len(content))
            if i + 1 < len(matches):
                end = min(end, matches[i + 1].start())
            window = content[match.start():end]

            metrics = self.metric_values(self.mentions.scan(window))
            if not metrics:
                continue
            records.append(CampaignRecord(id=campaign_id, name=self._name(content, match, window), metrics=metrics))
        return records

    @staticmethod
    def _name(content: str, match: re.Match, window: str) -> str | None:
        quoted = _QUOTED_NAME.match(content, match.end())
        if quoted:
            return quoted.group("name").strip()
        labeled = _LABELED_NAME.search(window)
        if labeled:
            return labeled.group("name").strip()
        return None

    def title_for(self, section: Section, content: str) -> str | None:
        match = _LEADING_TITLE.match(content)
        return match.group(1).strip() if match else self.default_title

    def build_payload(self, items: list[CampaignRecord]) -> CampaignRecordPayload:
        return CampaignRecordPayload(campaigns=items)


def default_extractors(
    vocabulary: MetricVocabulary = DEFAULT_VOCABULARY,
    config: Settings = settings,
) -> list[ShapeExtractor]:
    """Extractors in emission order; ties in confidence keep this order."""
    return [
        cls(vocabulary, config)
        for cls in (
            KpiDashboardExtractor,
            TimeSeriesExtractor,
            ComparisonExtractor,
            DistributionExtractor,
            TimelineExtractor,
            TreemapExtractor,
            TableExtractor,
            CampaignRecordExtractor,
        )
    ]
