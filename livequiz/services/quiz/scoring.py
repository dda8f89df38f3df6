MAX_POINTS = 1000
MIN_POINTS = 500


def score(correct: bool, seconds_elapsed: float, seconds_budget: float,
          max_points: int = MAX_POINTS, min_points: int = MIN_POINTS) -> int:
    """Points for one answer.

    A correct answer decays linearly from ``max_points`` (answered instantly)
    to ``min_points`` (answered right at the deadline). Wrong, missing or
    late answers score 0. Elapsed time below zero counts as zero.
    """
    if seconds_budget <= 0:
        raise ValueError('seconds_budget must be positive')
    if not 0 < min_points <= max_points:
        raise ValueError('expected 0 < min_points <= max_points')
    if not correct:
        return 0
    elapsed = max(0.0, float(seconds_elapsed))
    if elapsed > seconds_budget:
        return 0
    return int(round(max_points - (max_points - min_points) * elapsed / seconds_budget))
