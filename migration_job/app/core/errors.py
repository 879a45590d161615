from __future__ import annotations


class MigrationError(Exception):
    """Base class for every error raised by the migration job."""


class MalformedInputError(MigrationError):
    """Input file is empty or lacks a required header column. Fatal for the run."""


class EnrichmentParseError(MigrationError):
    """A single record's semi-structured field could not be parsed.

    Always recovered where it is raised: the field is treated as absent.
    """


class SourceLookupError(MigrationError):
    """The column store failed a bulk lookup for a batch."""


class DestinationWriteError(MigrationError):
    """The graph store rejected or failed a batch's transaction."""
