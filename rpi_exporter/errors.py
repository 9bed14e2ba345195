"""Error taxonomy for a single scrape.

Sources raise :class:`FetchError`, decoders raise :class:`ParseError` or
:class:`PartialDecodeError`. The collector catches all of them at the stage
boundary and turns them into a liveness downgrade.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rpi_exporter.metrics import DecodedFact


class ExporterError(Exception):
    """Base class for errors raised while collecting one source."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(message)
        self.source = source


class FetchError(ExporterError):
    """Raw data could not be obtained from a source.

    ``output`` holds whatever the source managed to read before failing, so
    the caller may still decode it.
    """

    def __init__(self, source: str, message: str, output: str | None = None) -> None:
        super().__init__(source, message)
        self.output = output


class ParseError(ExporterError):
    """Raw data was obtained but is not in the expected format."""

    def __init__(self, source: str, message: str, raw: str) -> None:
        super().__init__(source, message)
        self.raw = raw


class PartialDecodeError(ExporterError):
    """Some values decoded, others were present but unparsable."""

    def __init__(
        self,
        source: str,
        facts: list[DecodedFact],
        invalid: dict[str, str],
    ) -> None:
        keys = ", ".join(sorted(invalid))
        super().__init__(source, f"Skipped unparsable values for: {keys}")
        self.facts = facts
        self.invalid = invalid
