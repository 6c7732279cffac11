"""Exceptions raised while resolving webpackage dependencies."""


class ResolverError(Exception):
    """Base class for all resolver errors."""


class InvalidArgumentError(ResolverError, TypeError):
    """A parameter has the wrong type or shape."""


class ArtifactNotFoundError(ResolverError):
    """A manifest was loaded but does not define the requested artifact."""

    def __init__(self, dep_reference):
        self.dep_reference = dep_reference
        super().__init__(
            f"Artifact '{dep_reference.artifact_id}' is not defined in manifest "
            f"of webpackage '{dep_reference.webpackage_id}'"
        )


class ManifestFetchError(ResolverError):
    """Requesting a manifest.webpackage document failed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(f"Could not fetch manifest from {url}: {reason}")


class ResourceTypeError(ResolverError, ValueError):
    """A resource file could not be mapped to a known resource type."""
