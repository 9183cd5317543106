# Metric vocabulary.
#
# Maps the labels that show up in model answers ("CTR", "Click-Through Rate",
# "👁️ Impressions", "Ad Spend") onto the closed set of MetricKind values.
# Extractors locate metric mentions through this table only.

import re
from types import MappingProxyType
from typing import Iterable, Mapping

from app.models.visualization_models import MetricKind

DEFAULT_SYNONYMS: Mapping[MetricKind, tuple[str, ...]] = MappingProxyType({
    MetricKind.IMPRESSIONS: ("impressions", "impr", "👁️", "👁"),
    MetricKind.CLICKS:      ("clicks", "👆"),
    MetricKind.COST:        ("cost", "spend", "ad spend", "total spend", "cpc", "cpa",
                             "cost per click", "cost per acquisition", "💸"),
    MetricKind.CONVERSIONS: ("conversions", "conv", "✅"),
    MetricKind.CTR:         ("ctr", "click-through rate", "click through rate",
                             "clickthrough rate", "🎯"),
    MetricKind.ROAS:        ("roas", "return on ad spend", "roi", "return on investment", "📈"),
    MetricKind.SALES:       ("sales", "revenue", "💰"),
})

DISPLAY_NAMES: Mapping[MetricKind, str] = MappingProxyType({
    MetricKind.IMPRESSIONS: "Impressions",
    MetricKind.CLICKS:      "Clicks",
    MetricKind.COST:        "Cost",
    MetricKind.CONVERSIONS: "Conversions",
    MetricKind.CTR:         "CTR",
    MetricKind.ROAS:        "ROAS",
    MetricKind.SALES:       "Sales",
})


def _clean_label(label: str) -> str:
    return label.strip().strip("*_:").strip().lower()


class MetricVocabulary:
    """Immutable synonym table with case-insensitive lookups."""

    def __init__(
        self,
        synonyms: Mapping[MetricKind, Iterable[str]] = DEFAULT_SYNONYMS,
        display_names: Mapping[MetricKind, str] = DISPLAY_NAMES,
    ):
        self._display_names = MappingProxyType({**DISPLAY_NAMES, **display_names})
        lookup: dict[str, MetricKind] = {}
        for kind, words in synonyms.items():
            for word in words:
                lookup[word.lower()] = kind
        if not lookup:
            raise ValueError("vocabulary needs at least one synonym")
        self._lookup = MappingProxyType(lookup)

        # Longest first so "click-through rate" wins over "clicks"-style prefixes
        ordered = sorted(lookup, key=len, reverse=True)
        alternation = "|".join(re.escape(word) for word in ordered)
        self.label_pattern = re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE)

    def lookup(self, synonym: str) -> MetricKind | None:
        return self._lookup.get(synonym.lower())

    def resolve(self, label: str) -> MetricKind | None:
        """Exact match first, then the leftmost whole-word synonym inside the label."""
        exact = self._lookup.get(_clean_label(label))
        if exact is not None:
            return exact
        match = self.label_pattern.search(label)
        if match is None:
            return None
        return self.lookup(match.group(0))

    def find_all(self, text: str) -> list[MetricKind]:
        """Metric kinds mentioned in `text`, in order of first appearance."""
        found: list[MetricKind] = []
        for match in self.label_pattern.finditer(text):
            kind = self.lookup(match.group(0))
            if kind is not None and kind not in found:
                found.append(kind)
        return found

    def display_name(self, kind: MetricKind) -> str:
        return self._display_names[kind]


DEFAULT_VOCABULARY = MetricVocabulary()
