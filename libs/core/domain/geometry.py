from libs.core.domain.entities import Box


def overlap_area(first: Box, second: Box) -> float:
    x_overlap = max(
        0.0,
        min(first.x + first.width, second.x + second.width)
        - max(first.x, second.x),
    )
    y_overlap = max(
        0.0,
        min(first.y + first.height, second.y + second.height)
        - max(first.y, second.y),
    )
    return x_overlap * y_overlap


def candidate_coverage(existing: Box, candidate: Box) -> float:
    """Share of the candidate box covered by an existing box.

    Normalized by the candidate's own area, not by the union, so the
    ratio is asymmetric: a small box inside a large one scores 1.0 while
    the large box against the small one scores much lower.
    """
    area = candidate.area
    if area <= 0:
        return 0.0
    return overlap_area(existing, candidate) / area
