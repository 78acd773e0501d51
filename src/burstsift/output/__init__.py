from .report import write_report_json

__all__ = ["write_report_json"]
