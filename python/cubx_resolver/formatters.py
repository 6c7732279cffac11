"""Output formatters for resolved dependency trees."""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

from cyclonedx.model import ExternalReference, ExternalReferenceType, XsUri
from cyclonedx.model.bom import Bom
from cyclonedx.model.component import Component, ComponentType
from cyclonedx.output.json import JsonV1Dot6
from packageurl import PackageURL

from .dependency_tree import VERSION_DELIMITER, DependencyTree
from .models import DepReference
from .resources import Resource

logger = logging.getLogger(__name__)

PROJECT_URL = "https://github.com/cubbles/cubx-dependency-resolver"


class OutputFormatter:
    """Formatter for the CLI output types."""

    @staticmethod
    def format_as_json(obj: Any) -> str:
        """Pretty print any JSON serializable object."""
        return json.dumps(obj, indent=2) + '\n'

    @staticmethod
    def format_resources(resources: List[Resource]) -> List[Dict[str, Any]]:
        return [resource.to_dict() for resource in resources]

    @staticmethod
    def format_as_sbom(
        dep_list: List[DepReference],
        dep_tree: DependencyTree,
        command_line: Optional[str] = None
    ) -> str:
        """
        Generate a CycloneDX SBOM in JSON format.

        Every distinct webpackage becomes a library component. Dependencies
        are aggregated on webpackage level from the children and usesExisting
        edges of the resolved tree.

        Args:
            dep_list: Dependency ordered artifacts of the resolved tree
            dep_tree: The resolved tree
            command_line: Optional command line recorded as metadata property

        Returns:
            SBOM as JSON string
        """
        from . import __version__

        bom = Bom()
        bom.serial_number = uuid4()

        tool_purl = PackageURL(type='github', namespace='cubbles', name='cubx-dependency-resolver', version=__version__)
        tool_component = Component(
            name="cubx-dependency-resolver",
            version=__version__,
            type=ComponentType.APPLICATION,
            purl=tool_purl,
            bom_ref=str(tool_purl),
            external_references=[
                ExternalReference(type=ExternalReferenceType.VCS, url=XsUri(PROJECT_URL))
            ]
        )
        bom.metadata.tools.components.add(tool_component)
        bom.metadata.timestamp = datetime.now(timezone.utc).replace(microsecond=0)

        webpackage_ids: List[str] = []
        for dep_reference in dep_list:
            if dep_reference.webpackage_id not in webpackage_ids:
                webpackage_ids.append(dep_reference.webpackage_id)

        for webpackage_id in webpackage_ids:
            bom.components.add(OutputFormatter._webpackage_to_component(webpackage_id))

        sbom = json.loads(JsonV1Dot6(bom).output_as_string())

        dependency_map = OutputFormatter._build_dependency_map(dep_tree)
        dependencies = []
        for webpackage_id in webpackage_ids:
            depends_on = sorted(
                OutputFormatter._build_purl(dep)
                for dep in dependency_map.get(webpackage_id, set())
                if dep in webpackage_ids
            )
            dependencies.append({
                "ref": OutputFormatter._build_purl(webpackage_id),
                "dependsOn": depends_on
            })
        dependencies.sort(key=lambda d: d['ref'])
        sbom['dependencies'] = dependencies

        metadata = sbom.setdefault('metadata', {})
        if command_line:
            metadata.setdefault('properties', []).append({
                'name': 'commandLine',
                'value': command_line
            })
        if 'timestamp' in metadata:
            match = re.match(r'(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})', metadata['timestamp'])
            if match:
                metadata['timestamp'] = match.group(1) + 'Z'

        logger.info(f"Generated SBOM with {len(webpackage_ids)} components")
        return json.dumps(sbom, indent=2) + '\n'

    @staticmethod
    def _split_webpackage_id(webpackage_id: str):
        """Split "name@version" into name and version (None if missing)."""
        name, sep, version = webpackage_id.rpartition(VERSION_DELIMITER)
        if not sep:
            return webpackage_id, None
        return name, version

    @staticmethod
    def _build_purl(webpackage_id: str) -> str:
        name, version = OutputFormatter._split_webpackage_id(webpackage_id)
        return str(PackageURL(type='generic', name=name, version=version))

    @staticmethod
    def _webpackage_to_component(webpackage_id: str) -> Component:
        name, version = OutputFormatter._split_webpackage_id(webpackage_id)
        purl = PackageURL(type='generic', name=name, version=version)
        return Component(
            name=name,
            version=version,
            type=ComponentType.LIBRARY,
            purl=purl,
            bom_ref=str(purl)
        )

    @staticmethod
    def _build_dependency_map(dep_tree: DependencyTree) -> Dict[str, Set[str]]:
        """Map each webpackage id to the ids of the webpackages its artifacts depend on."""
        dependency_map: Dict[str, Set[str]] = {}

        def collect(node):
            source = node.data.webpackage_id
            targets = dependency_map.setdefault(source, set())
            for dependency in node.children + node.uses_existing:
                if dependency.data.webpackage_id != source:
                    targets.add(dependency.data.webpackage_id)

        dep_tree.traverse_bf(collect)
        return dependency_map
