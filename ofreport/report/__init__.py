"""Text renderers for a normalized OmniFocus database."""

from .compact_report import ReportOptions, render

__all__ = ['ReportOptions', 'render']
