"""cubx-dependency-resolver: resolves artifact dependency trees of webpackages."""

__version__ = "1.0.0"

from .dependency_tree import DependencyTree, Node
from .models import DepReference
from .resolver import ArtifactsDepsResolver
from .resources import Resource, ResourceType

__all__ = [
    "ArtifactsDepsResolver",
    "DependencyTree",
    "DepReference",
    "Node",
    "Resource",
    "ResourceType",
    "__version__",
]
