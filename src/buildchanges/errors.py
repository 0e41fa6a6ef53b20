"""Errors raised by buildchanges."""


class BuildChangesError(Exception):
    """Base exception for buildchanges errors."""


class ResolutionError(BuildChangesError):
    """Raised when a build type or build range cannot be resolved."""


class TeamCityError(BuildChangesError):
    """Raised when a TeamCity request fails."""


class IssueResolverError(BuildChangesError):
    """Raised when an issue tracker lookup fails."""


class MappingCacheError(BuildChangesError):
    """Raised when a package build mapping file cannot be read."""
