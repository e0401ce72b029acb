"""Confidence math for audio-reference resolution.

Resolution outcomes, genre mappings and inferred features all carry a
numeric confidence in [0.0, 1.0].  A resolution step's confidence is the
weighted average of its base confidence and the candidate's normalised
match score.
"""


def calculate_confidence(
    scores: list[float],
    weights: list[float] | None = None,
) -> float:
    """Compute a weighted average confidence score.

    Args:
        scores: Individual confidence scores, each in [0.0, 1.0].
        weights: Optional weights for each score. Defaults to equal weighting.

    Returns:
        Weighted average clamped to [0.0, 1.0].

    Raises:
        ValueError: If scores is empty or lengths of scores and weights differ.
    """
    if not scores:
        raise ValueError("scores must not be empty")

    if weights is None:
        weights = [1.0] * len(scores)

    if len(scores) != len(weights):
        raise ValueError("scores and weights must have the same length")

    total_weight = sum(weights)
    if total_weight == 0:
        return 0.0

    weighted_sum = sum(s * w for s, w in zip(scores, weights, strict=True))
    return max(0.0, min(1.0, weighted_sum / total_weight))


def normalize_score(points: float, scale: float) -> float:
    """Map a rule-table point total onto [0.0, 1.0] by dividing by *scale*."""
    if scale <= 0:
        return 0.0
    return max(0.0, min(1.0, points / scale))
