"""burstsift – duplicate, burst and similar-shot analysis for job-site photos."""

from .config import Settings
from .pipeline import AnalysisCancelled, AnalysisReport, InvalidRequestError, PhotoAnalyzer, analyze_request, parse_request

__version__ = "0.1.0"

__all__ = [
    "AnalysisCancelled",
    "AnalysisReport",
    "InvalidRequestError",
    "PhotoAnalyzer",
    "Settings",
    "analyze_request",
    "parse_request",
]
