"""Briefing composition."""

from herald.briefing.report_composer import BriefingReport, ReportComposer, Section, SectionSpec, SectionStatus
from herald.briefing.briefings import DAY_END, DAY_START, build_composers

__all__ = [
    'BriefingReport',
    'ReportComposer',
    'Section',
    'SectionSpec',
    'SectionStatus',
    'DAY_START',
    'DAY_END',
    'build_composers',
]
