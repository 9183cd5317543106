from app.config import Settings
from app.models.visualization_models import MetricKind, ShapeKind
from app.visualization.extractors import (
    CampaignRecordExtractor,
    ComparisonExtractor,
    DistributionExtractor,
    KpiDashboardExtractor,
    TableExtractor,
    TimelineExtractor,
    TimeSeriesExtractor,
    TreemapExtractor,
    default_extractors,
    parse_change,
)
from app.visualization.vocabulary import MetricVocabulary

KPI_TEXT = (
    "Here is where things stand.\n"
    "\n"
    "## Performance Overview\n"
    "- Impressions: 125,000 (up 12%)\n"
    "- Clicks: 3,400, down 5%\n"
    "- CTR: 2.7%\n"
    "- ROAS: 4.2x\n"
    "\n"
    "Let me know if you need more detail."
)

TABLE_TEXT = (
    "Here are the daily numbers:\n"
    "\n"
    "| Date | Impressions | Clicks |\n"
    "|------|-------------|--------|\n"
    "| 2024-01-01 | 10,000 | 300 |\n"
    "| 2024-01-02 | 12,000 | 350 |\n"
    "| 2024-01-03 | 11,500 | 320 |\n"
)


# ── KPI dashboard ─────────────────────────────────────────────────────────────

def test_kpi_dashboard_items_and_changes():
    [candidate] = KpiDashboardExtractor().extract(KPI_TEXT)
    assert candidate.shape == ShapeKind.KPI_DASHBOARD
    assert candidate.confidence == 0.80
    assert candidate.title == "Performance Overview"
    items = candidate.payload.items
    assert [i.kind for i in items] == [MetricKind.IMPRESSIONS, MetricKind.CLICKS, MetricKind.CTR, MetricKind.ROAS]
    assert items[0].value.raw == 125000
    assert items[0].change_percent == 12
    assert items[1].change_percent == -5
    assert items[2].change_percent is None
    assert items[3].value.display_hint == "4.20x"


def test_kpi_span_covers_section_only():
    [candidate] = KpiDashboardExtractor().extract(KPI_TEXT)
    start, end = candidate.span
    assert KPI_TEXT[start:end].startswith("## Performance Overview")
    assert KPI_TEXT[start:end].endswith("- ROAS: 4.2x")


def test_kpi_below_threshold_is_discarded():
    text = "Performance Overview:\n- Impressions: 125,000\n- Clicks: 3,400\n- Bounce rate: 40%"
    assert KpiDashboardExtractor().extract(text) == []


def test_parse_change_forms():
    assert parse_change(" (+8.5%)") == 8.5
    assert parse_change(" (-3%)") == -3
    assert parse_change(", increased by 20%") == 20
    assert parse_change(", fell 4%") == -4
    assert parse_change("") is None


# ── Time series ───────────────────────────────────────────────────────────────

def test_time_series_from_dated_list_uses_heading_metric():
    text = (
        "Weekly performance for clicks:\n"
        "- Week 1: 1,200\n"
        "- Week 2: 1,350\n"
        "- Week 3: 1,500\n"
    )
    [candidate] = TimeSeriesExtractor().extract(text)
    assert candidate.title == "Performance Over Time"
    assert candidate.payload.metrics == [MetricKind.CLICKS]
    assert [p.date for p in candidate.payload.points] == ["Week 1", "Week 2", "Week 3"]
    assert candidate.payload.points[2].values[MetricKind.CLICKS] == 1500


def test_time_series_from_list_with_labelled_values():
    text = (
        "Here is the trend over the last few days:\n"
        "- 2024-01-01: Impressions: 10,000, Clicks: 300\n"
        "- 2024-01-02: Impressions: 12,000, Clicks: 350\n"
        "- 2024-01-03: Impressions: 11,500, Clicks: 320\n"
    )
    [candidate] = TimeSeriesExtractor().extract(text)
    assert candidate.payload.metrics == [MetricKind.IMPRESSIONS, MetricKind.CLICKS]
    assert candidate.payload.points[1].values == {MetricKind.IMPRESSIONS: 12000, MetricKind.CLICKS: 350}


def test_time_series_needs_three_points():
    text = "Monthly results:\n- Jan 5: 10,000 impressions\n- Feb 5: 12,000 impressions\n"
    assert TimeSeriesExtractor().extract(text) == []


def test_time_series_from_dated_table():
    [candidate] = TimeSeriesExtractor().extract(TABLE_TEXT)
    assert candidate.confidence == 0.75
    assert len(candidate.payload.points) == 3
    assert candidate.payload.points[0].values == {MetricKind.IMPRESSIONS: 10000, MetricKind.CLICKS: 300}


def test_time_series_table_without_date_column_is_ignored():
    text = (
        "| Campaign | Clicks |\n"
        "|---|---|\n"
        "| A | 1 |\n"
        "| B | 2 |\n"
        "| C | 3 |\n"
    )
    assert TimeSeriesExtractor().extract(text) == []


# ── Comparison ────────────────────────────────────────────────────────────────

def test_comparison_by_campaign_id():
    text = (
        "Here is the comparison by campaign ID:\n"
        "Campaign ID: 12345678 has Impressions: 10,000, Clicks: 500\n"
        "Campaign ID: 87654321 has Impressions: 8,000, Clicks: 320\n"
    )
    [candidate] = ComparisonExtractor().extract(text)
    assert candidate.shape == ShapeKind.COMPARISON
    entities = candidate.payload.entities
    assert [e.entity_name for e in entities] == ["12345678", "87654321"]
    assert [m.value.raw for m in entities[1].metrics] == [8000, 320]


def test_comparison_named_campaigns():
    text = (
        "Campaign comparison by ID:\n"
        'Campaign "Alpha" has Clicks: 1,500, CTR: 3.0%\n'
        'Campaign "Beta" has Clicks: 1,100, CTR: 2.6%\n'
    )
    [candidate] = ComparisonExtractor().extract(text)
    assert [e.entity_name for e in candidate.payload.entities] == ["Alpha", "Beta"]


def test_comparison_needs_two_entities():
    text = "Comparison by campaign ID:\nCampaign ID: 12345678 has Impressions: 10,000, Clicks: 500\n"
    assert ComparisonExtractor().extract(text) == []


def test_comparison_requires_campaign_id_wording():
    text = "Compared with last week:\nClicks: 500\nCTR: 5%\n"
    assert ComparisonExtractor().extract(text) == []


# ── Distribution ──────────────────────────────────────────────────────────────

DISTRIBUTION_TEXT = (
    "Channel breakdown of spend:\n"
    "- Search: 45%\n"
    "- Social: 30%\n"
    "- Display accounts for 15%\n"
    "- Video: $1,000 (10%)\n"
)


def test_distribution_item_forms():
    [candidate] = DistributionExtractor().extract(DISTRIBUTION_TEXT)
    assert candidate.title == "Channel breakdown of spend"
    slices = [(s.name, s.value) for s in candidate.payload.slices]
    assert slices == [("Search", 45), ("Social", 30), ("Display", 15), ("Video", 10)]


def test_distribution_sum_not_enforced_by_default():
    text = "Audience split:\n- Mobile: 50%\n- Desktop: 20%\n- Tablet: 5%\n"
    [candidate] = DistributionExtractor().extract(text)
    assert sum(s.value for s in candidate.payload.slices) == 75


def test_distribution_strict_sum():
    text = "Audience split:\n- Mobile: 50%\n- Desktop: 20%\n- Tablet: 5%\n"
    strict = Settings(strict_distribution_sum=True)
    assert DistributionExtractor(config=strict).extract(text) == []
    assert len(DistributionExtractor(config=strict).extract(DISTRIBUTION_TEXT)) == 1


def test_distribution_needs_three_slices():
    assert DistributionExtractor().extract("Share of spend:\n- Search: 60%\n- Social: 40%\n") == []


# ── Timeline ──────────────────────────────────────────────────────────────────

def test_timeline_events():
    text = (
        "Campaign timeline:\n"
        "- 2024-01-05: Campaign launched. Initial budget of $500/day.\n"
        "- 2024-02-01: Budget increased, targeting expanded\n"
        "- 2024-03-10 Creative refresh\n"
    )
    [candidate] = TimelineExtractor().extract(text)
    assert candidate.title == "Campaign timeline"
    events = candidate.payload.events
    assert [e.date for e in events] == ["2024-01-05", "2024-02-01", "2024-03-10"]
    assert events[0].title == "Campaign launched"
    assert events[0].description == "Initial budget of $500/day."
    assert events[1].description == "targeting expanded"
    assert events[2].description is None


def test_timeline_needs_two_events():
    assert TimelineExtractor().extract("Key dates:\n- 2024-01-05: Launch\n") == []


# ── Treemap ───────────────────────────────────────────────────────────────────

def test_treemap_nesting_and_parent_sums():
    text = (
        "Budget allocation by channel:\n"
        "- Search: $5,000\n"
        "  - Brand: $2,000\n"
        "  - Generic: $3,000\n"
        "- Social\n"
        "  - Facebook: $1,500\n"
        "  - Instagram: $1,000\n"
        "- Display: $800\n"
    )
    [candidate] = TreemapExtractor().extract(text)
    assert candidate.confidence == 0.78
    nodes = candidate.payload.nodes
    assert [(n.name, n.value) for n in nodes] == [("Search", 5000), ("Social", 2500), ("Display", 800)]
    assert [c.name for c in nodes[0].children] == ["Brand", "Generic"]
    assert nodes[2].children == []


def test_flat_allocation_is_not_a_treemap():
    text = "Budget allocation:\n- Search: $5,000\n- Social: $2,500\n- Display: $800\n"
    assert TreemapExtractor().extract(text) == []


# ── Table ─────────────────────────────────────────────────────────────────────

def test_table_title_and_rows():
    [candidate] = TableExtractor().extract(TABLE_TEXT)
    assert candidate.confidence == 0.90
    assert candidate.title == "Here are the daily numbers"
    assert candidate.payload.headers == ["Date", "Impressions", "Clicks"]
    assert len(candidate.payload.rows) == 3


def test_table_drops_rows_with_wrong_width():
    text = (
        "| Name | Clicks |\n"
        "|:---|---:|\n"
        "| A | 1 |\n"
        "| B | 2 | extra |\n"
        "| C | 3 |\n"
    )
    [candidate] = TableExtractor().extract(text)
    assert candidate.title == "Data Table"
    assert candidate.payload.rows == [["A", "1"], ["C", "3"]]


def test_table_without_separator_is_ignored():
    assert TableExtractor().extract("| a | b |\n| 1 | 2 |\n") == []


# ── Campaign record ───────────────────────────────────────────────────────────

def test_campaign_record_basic():
    text = "Campaign ID: 12345678 has Impressions: 10,000, Clicks: 500, CTR: 5.0%"
    [candidate] = CampaignRecordExtractor().extract(text)
    assert candidate.span == (0, len(text))
    [record] = candidate.payload.campaigns
    assert record.id == "12345678"
    assert [(m.kind, m.value.raw) for m in record.metrics] == [
        (MetricKind.IMPRESSIONS, 10000),
        (MetricKind.CLICKS, 500),
        (MetricKind.CTR, 5.0),
    ]


def test_campaign_record_name_and_duplicates():
    text = (
        'Campaign 12345678 "Spring Sale" reached Impressions: 10,000 and Clicks: 250.\n'
        "Campaign (ID: 99887766) Name: Retargeting, Cost: $120.50\n"
        "Campaign 12345678 again, Clicks: 999\n"
    )
    [candidate] = CampaignRecordExtractor().extract(text)
    records = candidate.payload.campaigns
    assert [(r.id, r.name) for r in records] == [("12345678", "Spring Sale"), ("99887766", "Retargeting")]
    assert records[0].metrics[1].value.raw == 250


def test_campaign_without_metrics_is_discarded():
    assert CampaignRecordExtractor().extract("Campaign 12345678 is paused.") == []


def test_campaign_lookahead_is_configurable():
    text = "Campaign ID: 12345678 " + "x" * 40 + " Clicks: 500"
    short = Settings(campaign_lookahead_chars=30)
    assert CampaignRecordExtractor(config=short).extract(text) == []
    assert len(CampaignRecordExtractor().extract(text)) == 1


# ── Shared behavior ───────────────────────────────────────────────────────────

def test_extractors_use_injected_vocabulary():
    vocabulary = MetricVocabulary({
        MetricKind.CLICKS: ("taps",),
        MetricKind.IMPRESSIONS: ("views",),
        MetricKind.COST: ("outlay",),
    })
    text = "Performance Overview:\n- Taps: 300\n- Views: 9,000\n- Outlay: $120\n"
    [candidate] = KpiDashboardExtractor(vocabulary).extract(text)
    assert [i.kind for i in candidate.payload.items] == [MetricKind.CLICKS, MetricKind.IMPRESSIONS, MetricKind.COST]
    assert KpiDashboardExtractor().extract(text) == []


def test_no_extractor_raises_on_noise():
    noise = "|||\n- : %\nCampaign 123456789012345678901234567890 ::: $$$ 1e999 CTR: ,%\n## \n\n"
    for extractor in default_extractors():
        assert isinstance(extractor.extract(noise), list)


def test_default_extractor_order():
    shapes = [e.shape for e in default_extractors()]
    assert shapes == [
        ShapeKind.KPI_DASHBOARD,
        ShapeKind.TIME_SERIES,
        ShapeKind.COMPARISON,
        ShapeKind.DISTRIBUTION,
        ShapeKind.TIMELINE,
        ShapeKind.TREEMAP,
        ShapeKind.TABLE,
        ShapeKind.CAMPAIGN_RECORD,
    ]


# ── Section boundaries and value tokens ───────────────────────────────────────

LEAD_IN_TEXT = (
    "## Performance Overview\n"
    "Here are the headline numbers for last week:\n"
    "- Impressions: 125,000\n"
    "- Clicks: 3,400\n"
    "- CTR: 2.7%\n"
    "- Cost: $4,100\n"
    "\n"
    "Overall the account is on track."
)


def test_lead_in_line_under_heading_stays_in_section():
    [candidate] = KpiDashboardExtractor().extract(LEAD_IN_TEXT)
    assert candidate.title == "Performance Overview"
    assert [i.kind for i in candidate.payload.items] == [
        MetricKind.IMPRESSIONS, MetricKind.CLICKS, MetricKind.CTR, MetricKind.COST,
    ]


def test_label_line_after_body_starts_new_block():
    text = (
        "Performance Overview\n"
        "- Impressions: 125,000\n"
        "- Clicks: 3,400\n"
        "Recommendations:\n"
        "- CTR: 2.7%\n"
    )
    assert KpiDashboardExtractor().extract(text) == []


def test_magnitude_suffixes_scale_values():
    text = (
        "Performance Overview\n"
        "- Impressions: 1.2M\n"
        "- Clicks: 45K\n"
        "- Cost: $4.1K\n"
        "- CTR: 3.75%\n"
    )
    [candidate] = KpiDashboardExtractor().extract(text)
    values = [(i.kind, i.value.raw, i.value.display_hint) for i in candidate.payload.items]
    assert values == [
        (MetricKind.IMPRESSIONS, 1200000, "1,200,000"),
        (MetricKind.CLICKS, 45000, "45,000"),
        (MetricKind.COST, 4100, "$4,100.00"),
        (MetricKind.CTR, 3.75, "3.8%"),
    ]


def test_value_glued_to_letters_is_dropped():
    text = (
        "Performance Overview\n"
        "- Impressions: 1.2Q\n"
        "- Clicks: 45abc\n"
        "- Cost: $4,100\n"
        "- CTR: 3.75%\n"
        "- Conversions: 12\n"
    )
    [candidate] = KpiDashboardExtractor().extract(text)
    assert [i.kind for i in candidate.payload.items] == [MetricKind.COST, MetricKind.CTR, MetricKind.CONVERSIONS]


def test_series_context_window_is_configurable():
    text = (
        "Clicks\n"
        "\n"
        "Weekly results:\n"
        "- Week 1: 1,200\n"
        "- Week 2: 1,350\n"
        "- Week 3: 1,500\n"
    )
    [candidate] = TimeSeriesExtractor().extract(text)
    assert candidate.payload.metrics == [MetricKind.CLICKS]
    assert TimeSeriesExtractor(config=Settings(series_context_chars=0)).extract(text) == []
