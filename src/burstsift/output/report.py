"""
JSON report output for batch analyses.

The written file has the same shape as the response returned to API
callers: ``analysisResults``, ``duplicateGroups`` and ``metadata``.
"""

import json
from pathlib import Path
from typing import Union

from ..logging import get_logger
from ..pipeline import AnalysisReport

logger = get_logger(__name__)


def write_report_json(report: AnalysisReport, out_path: Union[str, Path]) -> Path:
    """
    Write an analysis report to disk.

    Args:
        report: Completed analysis report
        out_path: Target file, or a directory to receive ``report.json``

    Returns:
        Path of the written file
    """
    path = Path(out_path)
    if path.is_dir():
        path = path / "report.json"
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)

    logger.info(f"Wrote report with {len(report.results)} results to {path}")
    return path
