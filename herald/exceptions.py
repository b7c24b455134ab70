"""Exception hierarchy for herald."""

from typing import Optional


class HeraldError(Exception):
    """Base exception for all herald errors."""
    pass


class ConfigurationError(HeraldError):
    """Configuration could not be loaded or is invalid."""
    pass


class CollaboratorReadError(HeraldError):
    """A domain collaborator could not be read during a poll."""

    def __init__(self, domain: str, message: str):
        super().__init__(f"{domain}: {message}")
        self.domain = domain


class DeliveryError(HeraldError):
    """The outbound channel rejected or failed a send."""

    def __init__(self, message: str, destination: Optional[str] = None):
        super().__init__(message)
        self.destination = destination


class SectionError(HeraldError):
    """A briefing section could not be fetched or rendered."""

    def __init__(self, section: str, message: str):
        super().__init__(f"Section '{section}' failed: {message}")
        self.section = section
