from .historical import HistoricalScraper, HistoricalScrapeResult, months_ago
from .tracker import ModelBackfillTracker

__all__ = ["HistoricalScraper", "HistoricalScrapeResult", "ModelBackfillTracker", "months_ago"]
