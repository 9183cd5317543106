# Overlap resolver.
#
# Greedy interval selection: highest confidence first, ties in emission order.
# Not globally optimal; a high-confidence candidate may lock out several
# smaller ones.

from app.models.visualization_models import CandidateMatch


def spans_overlap(a: tuple[int, int], b: tuple[int, int]) -> bool:
    """True when either endpoint of one span falls within the other, boundaries included."""
    def inside(point: int, span: tuple[int, int]) -> bool:
        return span[0] <= point <= span[1]

    return (
        inside(a[0], b) or inside(a[1], b)
        or inside(b[0], a) or inside(b[1], a)
    )


def resolve_overlaps(candidates: list[CandidateMatch]) -> list[CandidateMatch]:
    accepted: list[CandidateMatch] = []
    # sorted() is stable
    for candidate in sorted(candidates, key=lambda c: -c.confidence):
        if any(spans_overlap(candidate.span, kept.span) for kept in accepted):
            continue
        accepted.append(candidate)
    return accepted
