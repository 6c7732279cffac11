"""Dependency tree of artifacts with duplicate, conflict and exclude handling."""

import copy
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)

VERSION_DELIMITER = '@'
ENDPOINT_DELIMITER = '#'


class NodeRelationship(Enum):
    """How the artifacts of two nodes relate to each other."""

    ARTIFACT_DUPLICATE = 'duplicate'
    ARTIFACT_VERSION_CONFLICT = 'versionConflict'
    ARTIFACT_NAME_CONFLICT = 'nameConflict'
    DISTINCT_ARTIFACT = 'distinct'


class ConflictType(str, Enum):
    VERSION = 'VERSION'
    NAME = 'NAME'


@dataclass
class Conflict:
    """A conflict detected while removing duplicates."""

    node: 'Node'
    conflicted_node: 'Node'
    type: ConflictType
    resolved: bool = False


@dataclass
class ConflictGroup:
    """Nodes referencing different versions of the same artifact."""

    artifact_id: str
    nodes: List['Node']


def webpackage_family(webpackage_id: str) -> str:
    """Return the webpackage name without version, e.g. 'package1' for 'package1@1.0.0'."""
    return webpackage_id.split(VERSION_DELIMITER, 1)[0]


def exclude_matches(rule: Dict[str, str], data) -> bool:
    """Check whether an exclude rule {webpackageId, artifactId, endpointId?} applies to a DepReference."""
    if not isinstance(rule, dict) or rule.get('webpackageId') != data.webpackage_id:
        return False
    artifact_id = rule.get('artifactId')
    if artifact_id == data.artifact_id:
        return True
    endpoint_id = rule.get('endpointId')
    if endpoint_id:
        return f"{artifact_id}{ENDPOINT_DELIMITER}{endpoint_id}" == data.artifact_id
    # a rule without endpoint covers every endpoint of the artifact
    return artifact_id == data.artifact_id.split(ENDPOINT_DELIMITER, 1)[0]


def _identity(node: 'Node') -> Dict[str, str]:
    return {'webpackageId': node.data.webpackage_id, 'artifactId': node.data.artifact_id}


class Node:
    """A node of a DependencyTree.

    Besides the tree edges (parent/children) a node has cross edges created
    when duplicates are merged: uses_existing lists nodes elsewhere in the tree
    this node depends on, used_by is the inverse.
    """

    def __init__(self, data: Any = None):
        self.data = data
        self.parent: Optional['Node'] = None
        self.children: List['Node'] = []
        self.uses_existing: List['Node'] = []
        self.used_by: List['Node'] = []
        self.excluded = False

    def equals_artifact(self, node: 'Node') -> bool:
        """Check whether given node references the same artifact."""
        return self.data.equals(node.data)

    def get_path_as_string(self) -> str:
        """Path from the root down to this node, e.g. 'pkgA/a > pkgC/c'."""
        path = []
        node = self
        while node is not None:
            path.append(node.data.get_id())
            node = node.parent
        return ' > '.join(reversed(path))

    def is_descendant_of(self, node: 'Node') -> bool:
        """Check whether this node is a dependency of given node, following parent and used_by edges."""
        visited = set()
        stack = [self]
        while stack:
            current = stack.pop()
            if id(current) in visited:
                continue
            visited.add(id(current))
            for candidate in [current.parent] + current.used_by:
                if candidate is None:
                    continue
                if candidate is node:
                    return True
                stack.append(candidate)
        return False

    def is_ancestor_of(self, node: 'Node') -> bool:
        """Check whether given node is a dependency of this one, following children and uses_existing edges."""
        visited = set()
        stack = [self]
        while stack:
            current = stack.pop()
            if id(current) in visited:
                continue
            visited.add(id(current))
            for candidate in current.children + current.uses_existing:
                if candidate is node:
                    return True
                stack.append(candidate)
        return False

    def to_json(self, include_resources: bool = False) -> Dict[str, Any]:
        """Plain dict representation of this node and its subtree."""
        result = _identity(self)
        if include_resources:
            result['resources'] = list(self.data.resources)
        result['children'] = [child.to_json(include_resources) for child in self.children]
        result['usesExisting'] = [_identity(node) for node in self.uses_existing]
        result['usedBy'] = [_identity(node) for node in self.used_by]
        result['excluded'] = self.excluded
        return result

    def __repr__(self) -> str:
        label = self.data.get_id() if hasattr(self.data, 'get_id') else repr(self.data)
        return f"Node({label})"


class DependencyTree:
    """Tree of artifact dependencies.

    A raw tree holds one node per declared dependency, so artifacts required
    by multiple parents appear multiple times. remove_duplicates() collapses
    them into a single node and records the other parents as cross edges.
    """

    def __init__(self, acr: bool = False):
        self._root_nodes: List[Node] = []
        self._conflicts: List[Conflict] = []
        self._acr = acr

    @property
    def root_nodes(self) -> List[Node]:
        return self._root_nodes

    def enable_acr(self) -> None:
        """Enable automatic resolution of version conflicts in remove_duplicates()."""
        self._acr = True

    @property
    def acr_enabled(self) -> bool:
        return self._acr

    def insert_node(self, node: Node, parent: Optional[Node] = None, before: Optional[Node] = None) -> Node:
        """
        Insert node as child of parent, or as root node if no parent is given.

        Args:
            node: Node to insert
            parent: Optional parent node
            before: Optional sibling; node is inserted as its left neighbour

        Returns:
            The inserted node
        """
        siblings = parent.children if parent is not None else self._root_nodes
        index = self._index_of(siblings, before) if before is not None else None
        if index is None:
            siblings.append(node)
        else:
            siblings.insert(index, node)
        node.parent = parent
        return node

    def remove_node(self, node: Node) -> Optional[Node]:
        """
        Remove node and its subtree from the tree.

        Cross edges of every removed node are unlinked on both sides.

        Returns:
            The removed node, or None if it is not part of this tree

        Raises:
            InvalidArgumentError: If node is not a Node instance
        """
        if not isinstance(node, Node):
            raise InvalidArgumentError(f"Expected a Node instance, got {type(node).__name__}")
        if not self.contains(node):
            return None

        siblings = node.parent.children if node.parent is not None else self._root_nodes
        del siblings[self._index_of(siblings, node)]
        node.parent = None

        for removed in self._iter_subtree(node):
            for user in list(removed.used_by):
                self._unlink(user, removed)
            for used in list(removed.uses_existing):
                self._unlink(removed, used)
        return node

    def traverse_df(self, callback: Callable[[Node], Any]) -> None:
        """Depth-first pre-order traversal; stops as soon as callback returns False."""
        if not callable(callback):
            logger.error(f"Parameter 'callback' needs to be callable, got {type(callback).__name__}")
            return
        stack = list(reversed(self._root_nodes))
        while stack:
            node = stack.pop()
            if callback(node) is False:
                return
            stack.extend(reversed(node.children))

    def traverse_bf(self, callback: Callable[[Node], Any]) -> None:
        """Breadth-first (level order) traversal; stops as soon as callback returns False."""
        if not callable(callback):
            logger.error(f"Parameter 'callback' needs to be callable, got {type(callback).__name__}")
            return
        self._traverse_bf(self._root_nodes, callback)

    def traverse_subtree_bf(self, node: Node, callback: Callable[[Node], Any]) -> None:
        """Breadth-first traversal of the subtree starting at node (inclusive)."""
        if not isinstance(node, Node):
            logger.error(f"Parameter 'node' needs to be a Node instance, got {type(node).__name__}")
            return
        if not callable(callback):
            logger.error(f"Parameter 'callback' needs to be callable, got {type(callback).__name__}")
            return
        self._traverse_bf([node], callback)

    def contains(self, node: Node) -> bool:
        """Check whether node is reachable from the root nodes."""
        found = False

        def check(current):
            nonlocal found
            if current is node:
                found = True
                return False

        self.traverse_bf(check)
        return found

    def clone(self) -> 'DependencyTree':
        """Deep copy of the tree sharing no nodes or node data with the original.

        Nodes are copied breadth-first, so the depth of the tree is not
        limited by the recursion limit.
        """
        tree = DependencyTree(acr=self._acr)
        copies: Dict[int, Node] = {}
        originals: List[Node] = []

        def copy_node(node):
            new_node = Node(copy.deepcopy(node.data))
            new_node.excluded = node.excluded
            parent = copies[id(node.parent)] if node.parent is not None else None
            tree.insert_node(new_node, parent)
            copies[id(node)] = new_node
            originals.append(node)

        self.traverse_bf(copy_node)

        for node in originals:
            new_node = copies[id(node)]
            new_node.uses_existing = [copies[id(n)] for n in node.uses_existing if id(n) in copies]
            new_node.used_by = [copies[id(n)] for n in node.used_by if id(n) in copies]

        for conflict in self._conflicts:
            if id(conflict.node) in copies and id(conflict.conflicted_node) in copies:
                tree._conflicts.append(Conflict(
                    copies[id(conflict.node)], copies[id(conflict.conflicted_node)], conflict.type, conflict.resolved
                ))
        return tree

    def to_json(self, include_resources: bool = False) -> Dict[str, Any]:
        return {'rootNodes': [node.to_json(include_resources) for node in self._root_nodes]}

    def apply_excludes(self) -> 'DependencyTree':
        """
        Mark nodes excluded by the dependency_excludes of one of their ancestors.

        Excluding a node excludes its whole subtree. Nodes that are excluded on
        one path but required on another are handled in remove_duplicates(),
        which keeps a merged node only excluded if all its occurrences are.
        """
        def mark(node):
            excludes = getattr(node.data, 'dependency_excludes', None)
            if not excludes:
                return
            for descendant in self._iter_subtree(node, include_start=False):
                if descendant.excluded:
                    continue
                if any(exclude_matches(rule, descendant.data) for rule in excludes):
                    self._mark_subtree_excluded(descendant)

        self.traverse_bf(mark)
        return self

    def apply_global_exclude(self, webpackage_id: str, artifact_id: str) -> 'DependencyTree':
        """Exclude every occurrence of the given artifact (and its subtree), un-exclude all other nodes."""
        matches = []

        def reset(node):
            node.excluded = False
            if node.data.webpackage_id == webpackage_id and node.data.artifact_id == artifact_id:
                matches.append(node)

        self.traverse_bf(reset)
        for node in matches:
            self._mark_subtree_excluded(node)
        return self

    def remove_duplicates(self) -> 'DependencyTree':
        """
        Collapse nodes referencing the same artifact into the first one found in breadth-first order.

        Each removed duplicate's parent gets a uses_existing edge to the kept node.
        Version conflicts are removed the same way if automatic conflict
        resolution is enabled, otherwise they are only logged. Name conflicts
        are always only logged.

        Returns:
            The DependencyTree itself
        """
        ordered = self._collect_bf()
        removed = set()
        canonical_by_key: Dict[str, Node] = {}
        kept_by_artifact: Dict[str, List[Node]] = {}

        for node in ordered:
            if id(node) in removed:
                continue
            key = node.data.identity_key
            canonical = canonical_by_key.get(key)
            if canonical is not None:
                removed.update(id(n) for n in self._iter_subtree(node))
                self._remove_duplicate(canonical, node)
                continue

            candidates = kept_by_artifact.get(node.data.artifact_id, [])
            version_conflicts = self._get_related_nodes(node, candidates, NodeRelationship.ARTIFACT_VERSION_CONFLICT)
            for other in self._get_related_nodes(node, candidates, NodeRelationship.ARTIFACT_NAME_CONFLICT):
                logger.warning(
                    f"Name conflict: {node.get_path_as_string()} and {other.get_path_as_string()} "
                    f"reference artifact '{node.data.artifact_id}' of unrelated webpackages"
                )
                self._log_conflict(other, node, ConflictType.NAME, False)

            if version_conflicts and self._acr:
                removed.update(id(n) for n in self._iter_subtree(node))
                self._remove_conflicted_node(version_conflicts[0], node)
                continue
            for other in version_conflicts:
                logger.warning(
                    f"Version conflict: {node.get_path_as_string()} and {other.get_path_as_string()}"
                )
                self._log_conflict(other, node, ConflictType.VERSION, False)

            canonical_by_key[key] = node
            kept_by_artifact.setdefault(node.data.artifact_id, []).append(node)

        return self

    def get_list_of_conflicted_nodes(self, node: Optional[Node] = None) -> Optional[List[ConflictGroup]]:
        """
        List version conflicts in the tree or in the subtree of node.

        Each group holds one node per conflicting webpackage version, in
        breadth-first order.

        Returns:
            List of ConflictGroup, or None if node is not part of this tree
        """
        if node is not None:
            if not isinstance(node, Node) or not self.contains(node):
                logger.error(f"Given node {node!r} is not a member of this DependencyTree")
                return None
            nodes = list(self._iter_subtree(node))
        else:
            nodes = self._collect_bf()

        groups: Dict[tuple, ConflictGroup] = {}
        seen_webpackages: Dict[tuple, set] = {}
        for current in nodes:
            group_key = (current.data.artifact_id, webpackage_family(current.data.webpackage_id))
            if group_key not in groups:
                groups[group_key] = ConflictGroup(current.data.artifact_id, [])
                seen_webpackages[group_key] = set()
            if current.data.webpackage_id not in seen_webpackages[group_key]:
                seen_webpackages[group_key].add(current.data.webpackage_id)
                groups[group_key].nodes.append(current)

        return [group for group in groups.values() if len(group.nodes) > 1]

    def remove_excludes(self) -> 'DependencyTree':
        """Remove every node marked as excluded, including its subtree."""
        for node in self._collect_bf():
            if node.excluded and self.contains(node):
                logger.debug(f"Removing excluded node {node.get_path_as_string()}")
                self.remove_node(node)
        return self

    def get_conflicted_nodes(self) -> List[Conflict]:
        return self._conflicts

    def _determine_node_relationship(self, node_a: Node, node_b: Node) -> NodeRelationship:
        a, b = node_a.data, node_b.data
        if a.artifact_id != b.artifact_id:
            return NodeRelationship.DISTINCT_ARTIFACT
        if a.webpackage_id == b.webpackage_id:
            return NodeRelationship.ARTIFACT_DUPLICATE
        if webpackage_family(a.webpackage_id) == webpackage_family(b.webpackage_id):
            return NodeRelationship.ARTIFACT_VERSION_CONFLICT
        return NodeRelationship.ARTIFACT_NAME_CONFLICT

    def _get_related_nodes(self, node: Node, candidates: List[Node], relationship: NodeRelationship) -> List[Node]:
        return [
            candidate for candidate in candidates
            if candidate is not node and self._determine_node_relationship(node, candidate) is relationship
        ]

    def _remove_duplicate(self, duplicated: Node, duplicate: Node) -> None:
        """
        Merge duplicate into duplicated and remove it from the tree.

        Nodes in the subtree of duplicated stay excluded only if the
        corresponding node in the subtree of duplicate is excluded as well.
        """
        self._merge_subtree_state(duplicated, duplicate)
        for referrer in duplicate.data.referrer:
            if referrer not in duplicated.data.referrer:
                duplicated.data.referrer.append(referrer)

        parent = duplicate.parent
        self.remove_node(duplicate)
        if parent is not None and parent is not duplicated:
            self._link(parent, duplicated)
        logger.debug(f"Removed duplicate {duplicate.data.get_id()}, using existing {duplicated.get_path_as_string()}")

    def _remove_conflicted_node(self, winner: Node, loser: Node) -> None:
        logger.info(
            f"Resolving version conflict: {loser.data.get_id()} replaced by {winner.data.get_id()}"
        )
        self._remove_duplicate(winner, loser)
        self._log_conflict(winner, loser, ConflictType.VERSION, True)

    def _merge_subtree_state(self, target: Node, source: Node) -> None:
        """Merge excluded flags and cross edges of source's subtree into the corresponding nodes of target."""
        target.excluded = target.excluded and source.excluded

        for user in list(source.used_by):
            self._unlink(user, source)
            if user is not target:
                self._link(user, target)
        for used in list(source.uses_existing):
            self._unlink(source, used)
            if used is not target and not self._is_in_subtree(used, target):
                self._link(target, used)

        unmatched = list(source.children)
        for child in target.children:
            for index, candidate in enumerate(unmatched):
                if child.equals_artifact(candidate):
                    del unmatched[index]
                    self._merge_subtree_state(child, candidate)
                    break

    def _log_conflict(self, node: Node, conflicted_node: Node, conflict_type: ConflictType, resolved: bool) -> None:
        for conflict in self._conflicts:
            if conflict.node is node and conflict.conflicted_node is conflicted_node and conflict.type is conflict_type:
                return
        self._conflicts.append(Conflict(node, conflicted_node, conflict_type, resolved))

    def _link(self, user: Node, used: Node) -> None:
        if used not in user.uses_existing:
            user.uses_existing.append(used)
        if user not in used.used_by:
            used.used_by.append(user)

    def _unlink(self, user: Node, used: Node) -> None:
        index = self._index_of(user.uses_existing, used)
        if index is not None:
            del user.uses_existing[index]
        index = self._index_of(used.used_by, user)
        if index is not None:
            del used.used_by[index]

    def _mark_subtree_excluded(self, node: Node) -> None:
        for descendant in self._iter_subtree(node):
            descendant.excluded = True

    def _collect_bf(self) -> List[Node]:
        nodes = []
        self.traverse_bf(nodes.append)
        return nodes

    @staticmethod
    def _traverse_bf(start: List[Node], callback: Callable[[Node], Any]) -> None:
        queue = deque(start)
        while queue:
            node = queue.popleft()
            if callback(node) is False:
                return
            queue.extend(node.children)

    @staticmethod
    def _iter_subtree(node: Node, include_start: bool = True) -> Iterator[Node]:
        """Breadth-first iteration over the subtree of node."""
        queue = deque([node] if include_start else node.children)
        while queue:
            current = queue.popleft()
            yield current
            queue.extend(current.children)

    @staticmethod
    def _is_in_subtree(node: Node, root: Node) -> bool:
        while node is not None:
            if node is root:
                return True
            node = node.parent
        return False

    @staticmethod
    def _index_of(nodes: List[Node], node: Node) -> Optional[int]:
        for index, candidate in enumerate(nodes):
            if candidate is node:
                return index
        return None
