# Lexical building blocks shared by the shape extractors:
#   - locating a triggered section (heading line + body up to the next break)
#   - scanning well-formed markdown tables
#   - finding "Label: value" / "value label" metric mentions via the vocabulary

import re
from typing import NamedTuple

from app.models.visualization_models import MetricKind
from .vocabulary import MetricVocabulary

# Numbers as they appear in answers: 10,000 / 1234.5 / $1,234.56 / 5.0% / 3.2x / 1.2M.
# A token glued to other letters ("45Q", "12abc") does not match at all.
VALUE_TOKEN = (
    r"\$?[^\S\n]?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?"
    r"(?:[^\S\n]?%|[xX]|[kKmMbB])?"
    r"(?![A-Za-z0-9]|[.,]\d)"
)

LIST_MARKER = r"(?:[-*•+]|\d+[.)])"

_MONTHS = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
DATE_TOKEN = (
    r"(?:\d{4}-\d{2}-\d{2}"
    r"|\d{1,2}/\d{1,2}(?:/\d{2,4})?"
    rf"|{_MONTHS}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?"
    r"|(?:Week|Day)\s+\d{1,2}"
    r"|Q[1-4](?:\s+\d{4})?)"
)

_LIST_ITEM = re.compile(rf"^\s*{LIST_MARKER}\s+")
_TABLE_ROW = re.compile(r"^\s*\|")
_HEADING = re.compile(r"^\s*(?:#{1,6}\s|\*\*[^*\n]+\*\*:?\s*$|__[^_\n]+__:?\s*$)")
_HEADING_PREFIX = re.compile(rf"^\s*(?:#{{1,6}}\s*|{LIST_MARKER}\s+)?")


class Section(NamedTuple):
    start: int
    end: int
    text: str
    table: "MarkdownTable | None" = None

    @property
    def heading(self) -> str:
        return self.text.split("\n", 1)[0]


class MarkdownTable(NamedTuple):
    start: int
    end: int
    headers: list[str]
    rows: list[list[str]]


# ── Sections ──────────────────────────────────────────────────────────────────

def _ends_section(line: str, in_body: bool) -> bool:
    if not line.strip():
        return True
    if _HEADING.match(line):
        return True
    if not in_body:
        # a lead-in line such as "Here are last week's numbers:" belongs to the heading
        return False
    # "Recommendations:" style label opening a new block
    return line.rstrip().endswith(":") and not _LIST_ITEM.match(line) and not _TABLE_ROW.match(line)


def _trimmed_end(content: str, start: int, end: int) -> int:
    return start + len(content[start:end].rstrip())


def _section_end(content: str, start: int) -> int:
    heading_end = content.find("\n", start)
    if heading_end == -1:
        return _trimmed_end(content, start, len(content))

    end = heading_end
    in_body = False
    offset = heading_end + 1
    for line in content[offset:].split("\n"):
        line_end = offset + len(line)
        if not line.strip() and not in_body:
            # blank lines directly under the heading
            offset = line_end + 1
            continue
        if _ends_section(line, in_body):
            break
        in_body = True
        end = line_end
        offset = line_end + 1
    return _trimmed_end(content, start, end)


def locate_sections(content: str, trigger: re.Pattern) -> list[Section]:
    """
    Return one Section per trigger hit. A section starts at the line holding
    the trigger and runs to the next blank line or heading. Hits that fall
    inside an earlier section are folded into it.
    """
    sections: list[Section] = []
    covered_until = -1
    for match in trigger.finditer(content):
        start = content.rfind("\n", 0, match.start()) + 1
        if start < covered_until:
            continue
        end = _section_end(content, start)
        if end <= start:
            continue
        sections.append(Section(start, end, content[start:end]))
        covered_until = end
    return sections


def heading_parts(text: str) -> tuple[str, str]:
    """Split a section's first line into (title, remainder after the first colon)."""
    line = text.split("\n", 1)[0]
    line = _HEADING_PREFIX.sub("", line).replace("**", "").replace("__", "").strip()
    title, _, rest = line.partition(":")
    return title.strip().rstrip("."), rest.strip()


# ── Markdown tables ───────────────────────────────────────────────────────────

_TABLE = re.compile(
    r"^[ \t]*\|(?P<header>[^\n]+)\|[ \t]*\n"
    r"[ \t]*\|[ \t]*:?-+:?[ \t]*(?:\|[ \t]*:?-+:?[ \t]*)*\|?[ \t]*\n"
    r"(?P<body>(?:[ \t]*\|[^\n]*\|[ \t]*(?:\n|$))+)",
    re.MULTILINE,
)


def split_row(line: str) -> list[str]:
    inner = line.strip()
    if inner.startswith("|"):
        inner = inner[1:]
    if inner.endswith("|"):
        inner = inner[:-1]
    return [cell.strip() for cell in inner.split("|")]


def find_markdown_tables(content: str) -> list[MarkdownTable]:
    """Well-formed tables only: header row, dash/colon separator, one or more body rows."""
    tables = []
    for match in _TABLE.finditer(content):
        headers = split_row(match.group("header"))
        rows = [split_row(line) for line in match.group("body").split("\n") if line.strip()]
        start = match.start()
        end = _trimmed_end(content, start, match.end())
        tables.append(MarkdownTable(start, end, headers, rows))
    return tables


def table_section(table: MarkdownTable, content: str) -> Section:
    return Section(table.start, table.end, content[table.start:table.end], table)


# ── Metric mentions ───────────────────────────────────────────────────────────

class MetricMention(NamedTuple):
    kind: MetricKind
    token: str
    start: int
    end: int


_LINKING_WORDS = r"(?:is|was|were|of|at|reached|totaled|totalled|stood\s+at|came\s+in\s+at|hit)"


class MetricMentionScanner:
    """Finds metric/value pairs in both "CTR: 5.0%" and "5.0% CTR" order."""

    def __init__(self, vocabulary: MetricVocabulary):
        self.vocabulary = vocabulary
        label = vocabulary.label_pattern.pattern
        self._forward = re.compile(
            rf"(?P<label>{label})(?:[^\S\n]*\([^)\n]{{0,40}}\))?\**[^\S\n]*"
            rf"(?:[:=]|[^\S\n]+{_LINKING_WORDS})[^\S\n]*\**[^\S\n]*"
            rf"(?P<value>{VALUE_TOKEN})",
            re.IGNORECASE,
        )
        self._reverse = re.compile(
            rf"(?P<value>{VALUE_TOKEN})[^\S\n]+(?:total[^\S\n]+|in[^\S\n]+)?(?P<label>{label})",
            re.IGNORECASE,
        )

    def _mentions(self, pattern: re.Pattern, text: str) -> list[MetricMention]:
        found = []
        for match in pattern.finditer(text):
            kind = self.vocabulary.lookup(match.group("label"))
            if kind is None:
                continue
            found.append(MetricMention(kind, match.group("value").strip(), match.start(), match.end()))
        return found

    def scan(self, text: str) -> list[MetricMention]:
        forward = self._mentions(self._forward, text)
        reverse = [
            m for m in self._mentions(self._reverse, text)
            if not any(m.start < f.end and f.start < m.end for f in forward)
        ]
        return sorted(forward + reverse, key=lambda m: m.start)

    def first_per_kind(self, text: str) -> list[MetricMention]:
        seen: set[MetricKind] = set()
        result = []
        for mention in self.scan(text):
            if mention.kind not in seen:
                seen.add(mention.kind)
                result.append(mention)
        return result
