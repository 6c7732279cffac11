"""Resolves root dependencies into dependency trees, resource lists and webpackage lists."""

import logging
from concurrent.futures import FIRST_EXCEPTION, Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .api_client import ManifestClient
from .cache import ResponseCache
from .dependency_tree import DependencyTree, Node
from .errors import ArtifactNotFoundError, InvalidArgumentError
from .models import DepReference, is_artifact_identity
from .resources import (
    DEFAULT_RUNTIME_MODE,
    RUNTIME_MODES,
    Resource,
    ResourceTypeMatch,
    create_resource_from_item,
    determine_resource_type,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = 'manifest.webpackage'
DEFAULT_MAX_WORKERS = 8


@dataclass
class ResolvedArtifact:
    """Result of resolving a single DepReference."""

    resources: List[Union[str, Dict[str, str]]] = field(default_factory=list)
    dependencies: List[DepReference] = field(default_factory=list)


def normalize_base_url(base_url: str) -> str:
    return base_url if base_url.endswith('/') else base_url + '/'


class ArtifactsDepsResolver:
    """
    Resolves the dependencies of a list of root artifacts.

    Resolution runs in phases:

    Phase 1: Build the raw dependency tree
    - Request the manifest of every dependency, one tree level at a time
    - The requests of a level run concurrently, nodes are inserted once the
      whole level is resolved

    Phase 2: Resolve the tree
    - Attach dependencyExcludes from root dependencies and manifests
    - Mark excluded nodes, collapse duplicates (and version conflicts if
      automatic conflict resolution is enabled), drop excluded nodes

    Phase 3: Derive flat lists
    - Order artifacts so that dependencies come before their dependents
    - Build resource, webpackage and manifest lists from that order
    """

    def __init__(
        self,
        runtime_mode: str = DEFAULT_RUNTIME_MODE,
        client: Optional[ManifestClient] = None,
        cache: Optional[ResponseCache] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        acr: bool = False
    ):
        """
        Initialize the resolver.

        Args:
            runtime_mode: 'prod' or 'dev', selects files of {prod, dev} resources
            client: Client used to request manifests, a new ManifestClient if omitted
            cache: Manifest cache, a new one if omitted
            max_workers: Maximum number of concurrent manifest requests
            acr: Enable automatic conflict resolution
        """
        self._runtime_mode = self._validate_runtime_mode(runtime_mode)
        self._client = client if client is not None else ManifestClient()
        self._response_cache = cache if cache is not None else ResponseCache()
        self._max_workers = max_workers
        self._acr = acr
        self._global_excludes: List[Dict[str, str]] = []
        self._base_url = ''

        self.root_dependencies: List[Dict[str, Any]] = []
        self.raw_dep_tree: Optional[DependencyTree] = None
        self.resolved_dep_tree: Optional[DependencyTree] = None
        self.resource_list: List[Resource] = []

    @property
    def runtime_mode(self) -> str:
        return self._runtime_mode

    def enable_acr(self) -> None:
        """Enable automatic resolution of version conflicts."""
        self._acr = True
        logger.info("Automatic conflict resolution enabled")

    def set_global_excludes(self, excludes: List[Dict[str, str]]) -> None:
        """Set exclude rules applied below every root dependency."""
        self._global_excludes = list(excludes or [])
        logger.info(f"Global excludes set with {len(self._global_excludes)} entries")

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_raw_dependency_tree(self, root_dependencies: List[Dict[str, Any]], base_url: str) -> DependencyTree:
        """
        Build the raw dependency tree for the given root dependencies.

        The tree is built level by level. All dependencies of a level are
        resolved concurrently; a single failure aborts the whole build.

        Args:
            root_dependencies: List of {webpackageId?, artifactId, manifest?, dependencyExcludes?}
            base_url: Url of the store the manifests are requested from

        Returns:
            DependencyTree containing every discovered dependency, duplicates included

        Raises:
            InvalidArgumentError: If root_dependencies is not a list
            ArtifactNotFoundError: If a manifest lacks a requested artifact
            ManifestFetchError: If a manifest could not be requested
        """
        if not isinstance(root_dependencies, list):
            raise InvalidArgumentError("Parameter 'root_dependencies' needs to be a list")
        self._check_base_url(base_url)

        dep_tree = DependencyTree(acr=self._acr)
        level = [
            dep_tree.insert_node(Node(dep_reference))
            for dep_reference in self._create_dep_reference_list_from_artifact_dependencies(root_dependencies)
        ]
        logger.info(f"Building raw dependency tree for {len(level)} root dependencies")

        depth = 0
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            while level:
                logger.debug(f"Resolving {len(level)} dependencies on level {depth}")
                for node in level:
                    self._check_dep_reference(node.data)
                results = self._run_batch(
                    executor,
                    lambda node: self._resolve_dep_reference_dependencies(node.data, base_url),
                    level
                )
                next_level = []
                for parent_node, result in zip(level, results):
                    parent_node.data.resources = result.resources
                    for dep_reference in result.dependencies:
                        if self._is_circular(parent_node, dep_reference):
                            logger.warning(
                                f"Circular dependency {parent_node.get_path_as_string()} > "
                                f"{dep_reference.get_id()} skipped"
                            )
                            continue
                        next_level.append(dep_tree.insert_node(Node(dep_reference), parent_node))
                level = next_level
                depth += 1

        logger.info(f"Raw dependency tree built with {depth} levels")
        return dep_tree

    def resolve_dependencies(self, root_dependencies: List[Dict[str, Any]], base_url: str) -> DependencyTree:
        """
        Build the raw dependency tree and resolve excludes, duplicates and conflicts.

        The raw tree is kept as raw_dep_tree, the result as resolved_dep_tree.
        """
        self.root_dependencies = root_dependencies
        self._base_url = normalize_base_url(base_url) if isinstance(base_url, str) else base_url
        try:
            dep_tree = self.build_raw_dependency_tree(root_dependencies, base_url)
            self.raw_dep_tree = dep_tree.clone()
            self._check_dep_tree_for_excludes(dep_tree, base_url)
            dep_tree.apply_excludes()
            dep_tree.remove_duplicates()
            dep_tree.remove_excludes()
        except Exception as e:
            logger.error(f"Error while building and processing DependencyTree: {e}")
            raise

        for conflict in dep_tree.get_conflicted_nodes():
            if not conflict.resolved:
                logger.warning(
                    f"Unresolved {conflict.type.value} conflict: {conflict.node.data.get_id()} "
                    f"and {conflict.conflicted_node.data.get_id()}"
                )
        self.resolved_dep_tree = dep_tree
        return dep_tree

    def resolve_resources_list(
        self,
        root_dependencies: List[Dict[str, Any]],
        base_url: str,
        runtime_mode: Optional[str] = None
    ) -> List[Resource]:
        """
        Resolve dependencies and return the resources of all artifacts.

        Resources of an artifact's dependencies come before its own resources.
        """
        if runtime_mode is not None:
            self._runtime_mode = self._validate_runtime_mode(runtime_mode)
        dep_tree = self.resolve_dependencies(root_dependencies, base_url)
        self.resource_list = self._calculate_resource_list(self._get_dependency_list_from_tree(dep_tree))
        logger.info(f"Resolved {len(self.resource_list)} resources")
        return self.resource_list

    def resolve_wp_list(self, root_dependencies: List[Dict[str, Any]], base_url: str) -> List[str]:
        """Resolve dependencies and return the ids of all required webpackages in dependency order."""
        dep_tree = self.resolve_dependencies(root_dependencies, base_url)
        webpackage_ids = []
        for dep_reference in self._get_dependency_list_from_tree(dep_tree):
            if dep_reference.webpackage_id not in webpackage_ids:
                webpackage_ids.append(dep_reference.webpackage_id)
        return webpackage_ids

    def resolve_manifests_list(self, root_dependencies: List[Dict[str, Any]], base_url: str) -> List[Dict[str, Any]]:
        """Resolve dependencies and return one manifest per required webpackage in dependency order."""
        dep_tree = self.resolve_dependencies(root_dependencies, base_url)
        manifests = []
        seen = set()
        for dep_reference in self._get_dependency_list_from_tree(dep_tree):
            if dep_reference.webpackage_id in seen:
                continue
            seen.add(dep_reference.webpackage_id)
            manifests.append(self._get_manifest_for_dep_reference(dep_reference, base_url))
        return manifests

    def get_dependency_list(self) -> List[DepReference]:
        """Dependency ordered list of the last resolved tree."""
        if self.resolved_dep_tree is None:
            return []
        return self._get_dependency_list_from_tree(self.resolved_dep_tree)

    # ------------------------------------------------------------------
    # Manifest handling
    # ------------------------------------------------------------------

    def _fetch_manifest(self, url: str) -> Dict[str, Any]:
        return self._client.fetch_manifest(url)

    def _manifest_url(self, webpackage_id: str, base_url: str) -> str:
        return f"{normalize_base_url(base_url)}{webpackage_id}/{MANIFEST_FILE_NAME}"

    def _resolve_dep_reference_dependencies(self, dep_reference: DepReference, base_url: str) -> ResolvedArtifact:
        """
        Resolve resources and direct dependencies of a single DepReference.

        The manifest is taken from the response cache, the inline manifest of
        the reference, or requested from base_url, in this order.

        Raises:
            InvalidArgumentError: If dep_reference is not a DepReference or base_url not a string
            ArtifactNotFoundError: If the manifest does not define the artifact
            ManifestFetchError: If requesting the manifest failed
        """
        self._check_dep_reference(dep_reference)
        self._check_base_url(base_url)

        cached = self._response_cache.get(dep_reference.webpackage_id) if dep_reference.webpackage_id else None
        if cached is not None:
            manifest = cached
        elif isinstance(dep_reference.manifest, dict):
            manifest = dep_reference.manifest
        else:
            manifest = self._fetch_manifest(self._manifest_url(dep_reference.webpackage_id, base_url))
            # another worker of the same level may have cached it first
            manifest = self._response_cache.add_item(dep_reference.webpackage_id, manifest)

        artifact = self._extract_artifact(dep_reference, manifest)
        if artifact is None:
            logger.error(f"The artifact '{dep_reference.artifact_id}' is not defined in manifest of '{dep_reference.webpackage_id}'")
            raise ArtifactNotFoundError(dep_reference)

        dependencies = self._create_dep_reference_list_from_artifact_dependencies(
            artifact.get('dependencies') or [],
            dep_reference.referrer_identity()
        )
        self._store_manifest_files(manifest, artifact['artifactId'])
        return ResolvedArtifact(resources=list(artifact.get('resources') or []), dependencies=dependencies)

    def _extract_artifact(self, dep_reference: DepReference, manifest: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Find the artifact of dep_reference in any artifact type section of manifest."""
        if not manifest:
            return None
        for artifacts in (manifest.get('artifacts') or {}).values():
            for artifact in artifacts:
                if artifact.get('artifactId') == dep_reference.artifact_id:
                    return artifact
        return None

    def _store_manifest_files(self, manifest: Dict[str, Any], artifact_id: str) -> None:
        self._response_cache.add_item(artifact_id, manifest)

    def _get_manifest_for_dep_reference(self, dep_reference: DepReference, base_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Return the manifest for dep_reference from cache, inline manifest or base_url.

        Raises:
            InvalidArgumentError: If dep_reference is not a DepReference, or the
                manifest needs to be requested and base_url is not a string
        """
        self._check_dep_reference(dep_reference)
        cached = self._response_cache.get(dep_reference.webpackage_id)
        if cached is not None:
            return cached
        if isinstance(dep_reference.manifest, dict):
            return dep_reference.manifest
        self._check_base_url(base_url)
        manifest = self._fetch_manifest(self._manifest_url(dep_reference.webpackage_id, base_url))
        return self._response_cache.add_item(dep_reference.webpackage_id, manifest)

    # ------------------------------------------------------------------
    # Dependency references
    # ------------------------------------------------------------------

    def _create_dep_reference_list_from_artifact_dependencies(
        self,
        dependencies: Optional[List[Any]],
        referrer: Optional[Dict[str, str]] = None
    ) -> List[DepReference]:
        """
        Create DepReference items from the dependencies array of an artifact.

        Invalid entries are logged and skipped.

        Args:
            dependencies: Entries of the form {webpackageId?, artifactId, manifest?, dependencyExcludes?}
            referrer: Identity of the artifact declaring the dependencies, None for root dependencies
        """
        dep_list: List[DepReference] = []
        if not dependencies:
            return dep_list

        if referrer is not None and not is_artifact_identity(referrer):
            logger.warning(f"Expected parameter 'referrer' to be None or an artifact identity: {referrer!r}. Using 'root'")
            referrer = None

        for dependency in dependencies:
            if not isinstance(dependency, dict) or not isinstance(dependency.get('artifactId'), str):
                logger.error(f"Expected dependency to be an object containing at least string property 'artifactId': {dependency!r}")
                continue
            if 'manifest' in dependency and not isinstance(dependency['manifest'], dict):
                logger.error(f"Expected 'manifest' of dependency to be an object: {dependency!r}")
                continue

            dep_reference = DepReference(
                webpackage_id=self._determine_webpackage_id(dependency, referrer),
                artifact_id=dependency['artifactId'],
                referrer=referrer,
                manifest=dependency.get('manifest'),
            )
            if dependency.get('dependencyExcludes'):
                dep_reference.dependency_excludes = list(dependency['dependencyExcludes'])
            dep_list.append(dep_reference)
        return dep_list

    def _determine_webpackage_id(self, dependency: Dict[str, Any], referrer: Optional[Dict[str, str]]) -> str:
        if isinstance(dependency.get('webpackageId'), str):
            return dependency['webpackageId']
        if is_artifact_identity(referrer):
            # without webpackageId the dependency lives in the referrer's webpackage
            return referrer['webpackageId']
        logger.error(f"Could not determine webpackageId for dependency {dependency!r} and referrer {referrer!r}")
        return ''

    # ------------------------------------------------------------------
    # Excludes
    # ------------------------------------------------------------------

    def _check_dep_tree_for_excludes(self, dep_tree: DependencyTree, base_url: str) -> DependencyTree:
        """
        Attach dependencyExcludes to every node of dep_tree.

        Root nodes first get the excludes of their root dependency declaration,
        then every node gets the excludes its artifact defines in its manifest.
        """
        if not isinstance(dep_tree, DependencyTree):
            raise InvalidArgumentError("Parameter 'dep_tree' needs to be a DependencyTree")
        self._check_base_url(base_url)

        nodes: List[Node] = []
        dep_tree.traverse_bf(nodes.append)
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            manifests = self._run_batch(
                executor,
                lambda node: self._get_manifest_for_dep_reference(node.data, base_url),
                nodes
            )

        for node, manifest in zip(nodes, manifests):
            if node.parent is None:
                self._check_and_add_excludes_for_root_dependencies(node)
            self._check_and_add_excludes_to_dep_reference(node.data, manifest)
        return dep_tree

    def _check_and_add_excludes_for_root_dependencies(self, node: Node) -> Node:
        """Add the excludes declared for node's root dependency and the global excludes."""
        if not isinstance(node, Node):
            raise InvalidArgumentError("Parameter 'node' needs to be a Node")
        for root_dependency in self.root_dependencies or []:
            if not isinstance(root_dependency, dict):
                continue
            webpackage_id = root_dependency.get('webpackageId', '')
            artifact_id = root_dependency.get('artifactId')
            if not isinstance(webpackage_id, str) or not isinstance(artifact_id, str):
                continue
            if webpackage_id + artifact_id == node.data.identity_key:
                self._append_excludes(node.data, root_dependency.get('dependencyExcludes') or [])
        self._append_excludes(node.data, self._global_excludes)
        return node

    def _check_and_add_excludes_to_dep_reference(self, dep_reference: DepReference, manifest: Dict[str, Any]) -> DepReference:
        """Append the dependencyExcludes the manifest defines for dep_reference's artifact."""
        self._check_dep_reference(dep_reference)
        if not isinstance(manifest, dict):
            raise InvalidArgumentError("Parameter 'manifest' needs to be a dict")
        artifact = self._extract_artifact(dep_reference, manifest)
        if artifact is not None:
            self._append_excludes(dep_reference, artifact.get('dependencyExcludes') or [])
        return dep_reference

    @staticmethod
    def _append_excludes(dep_reference: DepReference, excludes: List[Dict[str, str]]) -> None:
        for exclude in excludes:
            if exclude not in dep_reference.dependency_excludes:
                dep_reference.dependency_excludes.append(exclude)

    # ------------------------------------------------------------------
    # Flat lists
    # ------------------------------------------------------------------

    def _get_dependency_list_from_tree(self, dep_tree: DependencyTree) -> List[DepReference]:
        """
        Flatten dep_tree so that all dependencies of an item have a lower index than the item.

        Nodes are visited in breadth-first order; each one is placed right
        before the first already placed node it is a dependency of.
        """
        ordered: List[Node] = []

        def place(node):
            for index, placed in enumerate(ordered):
                if node.is_descendant_of(placed):
                    ordered.insert(index, node)
                    return
            ordered.append(node)

        dep_tree.traverse_bf(place)
        return [node.data for node in ordered]

    def _calculate_resource_list(self, dep_list: List[DepReference]) -> List[Resource]:
        resources = []
        for dep_reference in dep_list:
            # artifacts of converted manifests carry an "#endpoint" suffix which is not part of the path
            artifact_id = dep_reference.artifact_id.split('#', 1)[0]
            artifact_path = f"{self._base_url}{dep_reference.webpackage_id}/{artifact_id}"
            for item in dep_reference.resources:
                resources.append(
                    self._create_resource_from_item(artifact_path, item, self._runtime_mode, dep_reference.referrer)
                )
        return resources

    def _create_resource_from_item(
        self,
        artifact_path: str,
        item: Union[str, Dict[str, str]],
        runtime_mode: str,
        referrer: Any = None
    ) -> Resource:
        return create_resource_from_item(artifact_path, item, runtime_mode, referrer)

    def _determine_resource_type(self, file_name: str) -> ResourceTypeMatch:
        return determine_resource_type(file_name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _run_batch(executor: Executor, func: Callable[[Node], Any], nodes: List[Node]) -> List[Any]:
        """Run func for every node concurrently and return the results in order; fails on the first error."""
        futures = [executor.submit(func, node) for node in nodes]
        done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
        for future in not_done:
            future.cancel()
        for future in futures:
            if future in done and future.exception() is not None:
                raise future.exception()
        return [future.result() for future in futures]

    @staticmethod
    def _is_circular(parent_node: Node, dep_reference: DepReference) -> bool:
        node = parent_node
        while node is not None:
            if node.data.equals(dep_reference):
                return True
            node = node.parent
        return False

    @staticmethod
    def _check_dep_reference(dep_reference: Any) -> None:
        if not isinstance(dep_reference, DepReference):
            raise InvalidArgumentError("Parameter 'dep_reference' needs to be a DepReference")

    @staticmethod
    def _check_base_url(base_url: Any) -> None:
        if not isinstance(base_url, str):
            raise InvalidArgumentError("Parameter 'base_url' needs to be a string")

    @staticmethod
    def _validate_runtime_mode(runtime_mode: str) -> str:
        if runtime_mode in RUNTIME_MODES:
            return runtime_mode
        logger.warning(f"Invalid runtime mode '{runtime_mode}', using '{DEFAULT_RUNTIME_MODE}'")
        return DEFAULT_RUNTIME_MODE
