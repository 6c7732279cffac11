"""Resource classification: maps artifact resource files to resource types."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Union

from .errors import InvalidArgumentError, ResourceTypeError

logger = logging.getLogger(__name__)

RUNTIME_MODES = ('prod', 'dev')
DEFAULT_RUNTIME_MODE = 'prod'

TYPE_QUERY_PREFIX = 'type='


class ResourceType(str, Enum):
    """Kinds of resources an artifact may ship."""

    STYLESHEET = 'stylesheet'
    HTML_IMPORT = 'htmlImport'
    JAVASCRIPT = 'javascript'

    @property
    def file_endings(self) -> List[str]:
        return _FILE_ENDINGS[self]

    @property
    def template(self) -> str:
        """HTML snippet used to include a resource of this type, '#' marks the path."""
        return _TEMPLATES[self]

    @classmethod
    def from_file_ending(cls, ending: str) -> Optional['ResourceType']:
        for resource_type in cls:
            if ending in resource_type.file_endings:
                return resource_type
        return None


_FILE_ENDINGS = {
    ResourceType.STYLESHEET: ['css'],
    ResourceType.HTML_IMPORT: ['html', 'htm'],
    ResourceType.JAVASCRIPT: ['js'],
}

_TEMPLATES = {
    ResourceType.STYLESHEET: '<link rel="stylesheet" href="#">',
    ResourceType.HTML_IMPORT: '<link rel="import" href="#">',
    ResourceType.JAVASCRIPT: '<script src="#"></script>',
}


@dataclass(frozen=True)
class Resource:
    """A resolvable resource file of an artifact."""

    path: str
    type: ResourceType
    referrer: Any = field(default=None, compare=False)

    def __post_init__(self):
        if not isinstance(self.path, str) or not self.path:
            raise InvalidArgumentError('parameter "path" needs to be a non empty string')
        try:
            resource_type = ResourceType(self.type)
        except ValueError:
            raise ResourceTypeError(f"'{self.type}' is not a valid resource type") from None
        # frozen dataclass, normalize plain strings to the enum member
        object.__setattr__(self, 'type', resource_type)

    def to_html(self) -> str:
        return self.type.template.replace('#', self.path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': self.path,
            'type': self.type.value,
            'referrer': self.referrer,
        }


class ResourceTypeMatch(NamedTuple):
    file_name: str
    file_type: Optional[ResourceType]


def determine_resource_type(file_name: str) -> ResourceTypeMatch:
    """
    Determine the resource type of a file.

    A "?type=<ending>" query overrides the file ending, which is needed for
    files without a meaningful name such as blob urls. The query is stripped
    from the returned file name in that case.

    Args:
        file_name: Path or url of the resource

    Returns:
        ResourceTypeMatch with the (possibly stripped) file name and the
        detected type, or None as type if it could not be determined
    """
    base, sep, query = file_name.rpartition('?')
    if sep and query.startswith(TYPE_QUERY_PREFIX):
        ending = query[len(TYPE_QUERY_PREFIX):]
        return ResourceTypeMatch(base, ResourceType.from_file_ending(ending))

    last_segment = file_name.rsplit('/', 1)[-1]
    if sep or '.' not in last_segment:
        return ResourceTypeMatch(file_name, None)
    ending = last_segment.rsplit('.', 1)[-1].lower()
    return ResourceTypeMatch(file_name, ResourceType.from_file_ending(ending))


def create_resource_from_item(
    artifact_path: str,
    item: Union[str, Dict[str, str]],
    runtime_mode: str,
    referrer: Any = None
) -> Resource:
    """
    Create a Resource for an entry of an artifact's resources list.

    Args:
        artifact_path: Prefix joined with the file name, e.g. <baseUrl><webpackageId>/<artifactId>
        item: Either a file name or a {prod, dev} dict of file names
        runtime_mode: 'prod' or 'dev', selects the file of a {prod, dev} item
        referrer: Referrer list of the artifact owning the resource

    Returns:
        Resource instance

    Raises:
        InvalidArgumentError: If the item is neither a string nor a {prod, dev} dict
        ResourceTypeError: If the resource type can not be determined
    """
    if isinstance(item, dict):
        file_name = item.get(runtime_mode)
    else:
        file_name = item
    if not isinstance(file_name, str):
        raise InvalidArgumentError(
            f"Resource item {item!r} needs to be a string or an object with a '{runtime_mode}' file"
        )

    match = determine_resource_type(file_name)
    if match.file_type is None:
        raise ResourceTypeError(f"Could not determine resource type of '{file_name}'")
    return Resource(f"{artifact_path}/{match.file_name}", match.file_type, referrer)
