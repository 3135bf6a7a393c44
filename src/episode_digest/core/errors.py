"""
Exception types raised across the digest pipeline
"""


class DigestError(Exception):
    """Base class for pipeline errors."""


class DiscoveryError(DigestError):
    """Episode discovery failed; fatal for the current run."""


class AnalysisError(DigestError):
    """An episode could not be turned into a valid insight."""


class AnalyzerAuthError(AnalysisError):
    """The analysis backend rejected our credentials."""


class ComposeError(DigestError):
    """A period report could not be composed."""
