"""Report composer that assembles a sectioned briefing from many sources.

Sections are visited in a fixed order. A section whose fetch or render fails
is logged, recorded as failed and left out of the rendered report; the
remaining sections are still composed. ``compose`` itself never raises.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Union

from herald.exceptions import SectionError
from herald.utils.asyncio_helpers import maybe_await
from herald.utils.logger import log_error, log_debug


class SectionStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


@dataclass
class Section:
    """One composed section of a briefing."""
    key: str
    title: str
    status: SectionStatus
    content: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SectionSpec:
    """How to fetch and render one section.

    ``render`` turns the fetched value into lines; an empty result renders
    ``placeholder`` instead of dropping the section.
    """
    key: str
    title: str
    fetch: Callable[[], Any]
    render: Callable[[Any], Iterable[str]]
    placeholder: str = "Nothing to show"


TextOrFactory = Union[str, Callable[[datetime], str]]


@dataclass
class BriefingReport:
    """Composed report; produced fresh on every call."""
    variant: str
    generated_at: datetime
    header: str
    footer: str
    sections: List[Section] = field(default_factory=list)

    @property
    def ok_sections(self) -> List[Section]:
        return [s for s in self.sections if s.status == SectionStatus.OK]

    @property
    def failed_sections(self) -> List[Section]:
        return [s for s in self.sections if s.status == SectionStatus.FAILED]

    def render(self) -> str:
        blocks = [self.header]
        for section in self.ok_sections:
            blocks.append(f"<b>{section.title}</b>\n{section.content}")
        blocks.append(self.footer)
        return "\n\n".join(block for block in blocks if block)


class ReportComposer:
    """Composes one briefing variant from an ordered list of section specs."""

    def __init__(
        self,
        variant: str,
        sections: List[SectionSpec],
        header: TextOrFactory,
        footer: TextOrFactory,
        clock: Callable[[], datetime] = datetime.now,
        section_timeout: Optional[float] = None
    ):
        """Initialize the composer.

        Args:
            variant: Name of the briefing ("day_start", "day_end", ...)
            sections: Section specs in output order
            header: Header text, or a function of the generation time
            footer: Footer text, or a function of the generation time
            clock: Source of the generation time
            section_timeout: Seconds a section fetch may take; None waits forever
        """
        self.variant = variant
        self.sections = list(sections)
        self._header = header
        self._footer = footer
        self._clock = clock
        self.section_timeout = section_timeout

    @staticmethod
    def _text(value: TextOrFactory, now: datetime, fallback: str) -> str:
        if not callable(value):
            return value
        try:
            return value(now)
        except Exception as e:
            log_error(f"Briefing header/footer failed: {e}")
            return fallback

    async def compose(self) -> BriefingReport:
        """Build the report. Never raises."""
        now = self._clock()
        report = BriefingReport(
            variant=self.variant,
            generated_at=now,
            header=self._text(self._header, now, self.variant.replace("_", " ").title()),
            footer=self._text(self._footer, now, ""),
        )

        for spec in self.sections:
            try:
                content = await self._compose_section(spec)
            except SectionError as e:
                log_error(f"Briefing {self.variant}: {e}")
                report.sections.append(Section(
                    key=spec.key,
                    title=spec.title,
                    status=SectionStatus.FAILED,
                    error=str(e),
                ))
                continue
            report.sections.append(Section(
                key=spec.key, title=spec.title, status=SectionStatus.OK, content=content,
            ))

        log_debug(
            f"Briefing {self.variant} composed: {len(report.ok_sections)} ok, "
            f"{len(report.failed_sections)} failed"
        )
        return report

    async def _compose_section(self, spec: SectionSpec) -> str:
        try:
            pending = maybe_await(spec.fetch())
            if self.section_timeout is not None:
                data = await asyncio.wait_for(pending, timeout=self.section_timeout)
            else:
                data = await pending
            lines = [line for line in spec.render(data) if line]
        except asyncio.TimeoutError as e:
            if self.section_timeout is None:
                raise SectionError(spec.key, str(e) or "fetch timed out") from e
            raise SectionError(spec.key, f"timed out after {self.section_timeout}s") from e
        except Exception as e:
            raise SectionError(spec.key, str(e)) from e

        if not lines:
            return f"  {spec.placeholder}"
        return "\n".join(lines)
