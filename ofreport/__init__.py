"""
OmniFocus Report: normalize OmniJS export payloads and render them as a compact
folder/project/task report.
"""

__version__ = "1.0.0"
__author__ = "OmniFocus CLI Team"
__email__ = "contact@omnifocus-cli.com"

from .omnifocus_api.data_models import Database, ReportMode
from .omnifocus_api.normalizer import normalize
from .report.compact_report import ReportOptions, render

__all__ = ["Database", "ReportMode", "ReportOptions", "normalize", "render", "__version__"]
