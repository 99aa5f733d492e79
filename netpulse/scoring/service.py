"""On-demand live quality score for one probe."""

from datetime import datetime, timedelta
from typing import Optional

from ..metrics import utcnow
from ..store.contracts import MetricsStore
from ..utils.logging import get_logger
from .engine import QualityScore, compute_quality_score
from .profiles import DEFAULT_PROFILE, ScoreProfile

logger = get_logger("scoring.service")

DEFAULT_SCORE_WINDOW = timedelta(hours=1)


async def score_probe(
    store: MetricsStore,
    probe_id: str,
    profile: ScoreProfile = DEFAULT_PROFILE,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Optional[QualityScore]:
    """Average the probe's samples over [start, end] and score them.

    Defaults to the last hour. Returns None when the window holds no samples.
    """
    end = end or utcnow()
    start = start or end - DEFAULT_SCORE_WINDOW

    averages = await store.get_window_averages(probe_id, start, end)
    if averages is None:
        logger.info("score_no_measurements", probe_id=probe_id, start=start.isoformat(), end=end.isoformat())
        return None

    score = compute_quality_score(averages, profile)
    logger.debug("score_computed", probe_id=probe_id, profile=profile, score=score.score, grade=score.grade)
    return score
