"""
Progress reporting helper shared by the analyzers.
"""
from typing import Optional
import logging

from ecomeasure.domain.models import ProgressCallback

logger = logging.getLogger(__name__)


class ProgressReporter:
    """
    Forwards (percent, stage) updates to an optional callback.

    Progress is advisory: a failing callback is logged once and then
    ignored so it can never change the outcome of an analysis.
    """

    def __init__(self, callback: Optional[ProgressCallback]):
        self.callback = callback
        self._failed = False

    def __call__(self, percent: float, stage: str) -> None:
        if self.callback is None or self._failed:
            return
        try:
            self.callback(min(max(float(percent), 0.0), 100.0), stage)
        except Exception:
            self._failed = True
            logger.warning(f"Progress callback failed at stage '{stage}'; disabling it", exc_info=True)
