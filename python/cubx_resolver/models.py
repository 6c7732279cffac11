"""Core data models for cubx_resolver."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

ROOT_REFERRER = "root"

Referrer = Union[str, Dict[str, str]]


def is_artifact_identity(value: Any) -> bool:
    """Check whether value looks like {webpackageId, artifactId}."""
    return isinstance(value, dict) and 'webpackageId' in value and 'artifactId' in value


@dataclass(eq=False)
class DepReference:
    """Reference to an artifact within a webpackage, i.e. one dependency edge.

    Two references point to the same artifact if the concatenation of
    webpackage_id and artifact_id is equal. Note that this is a plain string
    comparison, so "ab" + "c" and "a" + "bc" are considered equal.
    """

    webpackage_id: str
    artifact_id: str  # may carry an "#endpoint" suffix
    referrer: Any = None
    manifest: Optional[Dict[str, Any]] = None  # inline manifest, skips fetching
    resources: List[Union[str, Dict[str, str]]] = field(default_factory=list)
    dependency_excludes: List[Dict[str, str]] = field(default_factory=list)

    def __post_init__(self):
        """Normalize referrer into a non-empty list."""
        referrer = self.referrer
        if is_artifact_identity(referrer):
            self.referrer = [referrer]
        elif referrer is None:
            # a root dependency has no referrer
            self.referrer = [ROOT_REFERRER]
        elif isinstance(referrer, list) and referrer:
            self.referrer = list(referrer)
        else:
            logger.warning(
                f"DepReference received referrer of unexpected type '{type(referrer).__name__}', "
                f"using '{ROOT_REFERRER}'"
            )
            self.referrer = [ROOT_REFERRER]

    @property
    def identity_key(self) -> str:
        return self.webpackage_id + self.artifact_id

    def get_id(self) -> str:
        """Return the reference id in webpackageId/artifactId format."""
        return f"{self.webpackage_id}/{self.artifact_id}"

    def get_artifact_id(self) -> str:
        return self.artifact_id

    def referrer_identity(self) -> Dict[str, str]:
        """Identity of this reference as used in the referrer list of its dependencies."""
        return {'webpackageId': self.webpackage_id, 'artifactId': self.artifact_id}

    def equals(self, other) -> bool:
        return self.identity_key == other.webpackage_id + other.artifact_id

    def __eq__(self, other) -> bool:
        if not isinstance(other, DepReference):
            return False
        return self.equals(other)

    def __hash__(self) -> int:
        return hash(self.identity_key)

    def __str__(self) -> str:
        return self.get_id()
