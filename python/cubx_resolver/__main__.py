"""Main CLI entry point for cubx-dependency-resolver."""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .errors import ResolverError
from .formatters import OutputFormatter
from .parsers import DependencyListParser
from .resolver import ArtifactsDepsResolver
from .resources import DEFAULT_RUNTIME_MODE, RUNTIME_MODES

logger = logging.getLogger(__name__)

OUTPUT_TYPES = ('raw', 'resolved', 'list', 'wplist', 'mlist', 'sbom')


def setup_logging(verbose: bool = False, log_level: Optional[str] = None):
    """Configure logging based on verbosity flags."""
    if log_level:
        level = getattr(logging, log_level.upper(), logging.WARNING)
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cubx-dependency-resolver',
        description='Resolve the dependencies of webpackage artifacts'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-u', '--baseUrl', dest='base_url', required=True,
                        help='Base url of the webpackage store, e.g. https://cubbles.world/sandbox/')
    parser.add_argument('-d', '--rootDependencies', dest='root_dependencies', required=True,
                        help='JSON array of root dependencies or path to a file containing one')
    parser.add_argument('-e', '--excludes', dest='excludes',
                        help='JSON array of global exclude rules or path to a file containing one')
    parser.add_argument('-t', '--type', dest='output_type', default='list', choices=OUTPUT_TYPES,
                        help='Output type (default: list)')
    parser.add_argument('-m', '--mode', dest='runtime_mode', default=DEFAULT_RUNTIME_MODE, choices=RUNTIME_MODES,
                        help='Runtime mode used to select resources (default: prod)')
    parser.add_argument('--acr', action='store_true',
                        help='Automatically resolve version conflicts, the first occurrence wins')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose logging')
    parser.add_argument('--loglevel', choices=['TRACE', 'DEBUG', 'INFO', 'WARN', 'ERROR'])
    return parser


def run(args) -> str:
    """Resolve according to the parsed arguments and return the formatted output."""
    root_dependencies = DependencyListParser.parse_root_dependencies(args.root_dependencies)
    excludes = DependencyListParser.parse_excludes(args.excludes) if args.excludes else []

    with ArtifactsDepsResolver(runtime_mode=args.runtime_mode, acr=args.acr) as resolver:
        if excludes:
            resolver.set_global_excludes(excludes)

        output_type = args.output_type
        logger.info(f"Resolving {len(root_dependencies)} root dependencies from {args.base_url} (type={output_type})")

        if output_type == 'raw':
            dep_tree = resolver.build_raw_dependency_tree(root_dependencies, args.base_url)
            return OutputFormatter.format_as_json(dep_tree.to_json(include_resources=True))
        if output_type == 'resolved':
            dep_tree = resolver.resolve_dependencies(root_dependencies, args.base_url)
            return OutputFormatter.format_as_json(dep_tree.to_json(include_resources=True))
        if output_type == 'wplist':
            return OutputFormatter.format_as_json(resolver.resolve_wp_list(root_dependencies, args.base_url))
        if output_type == 'mlist':
            return OutputFormatter.format_as_json(resolver.resolve_manifests_list(root_dependencies, args.base_url))
        if output_type == 'sbom':
            dep_tree = resolver.resolve_dependencies(root_dependencies, args.base_url)
            return OutputFormatter.format_as_sbom(
                resolver.get_dependency_list(),
                dep_tree,
                command_line=' '.join(sys.argv[1:])
            )

        resources = resolver.resolve_resources_list(root_dependencies, args.base_url)
        return OutputFormatter.format_as_json(OutputFormatter.format_resources(resources))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.loglevel)

    try:
        output = run(args)
    except ResolverError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        # invalid JSON arguments
        logger.error(f"Invalid argument: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sys.stdout.write(output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
