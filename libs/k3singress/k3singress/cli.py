"""
CLI tool for K3s Ingress.

Generates NGINX configuration snippets from an ingress.yaml routing model.
"""

import argparse
import logging
import sys

from .generators import build_location, build_upstream_name, generate_all_snippets
from .primitives import is_location_allowed
from .schema import load_ingress_yaml
from .types import IngressConfig


def _load_config(args: argparse.Namespace) -> IngressConfig:
    try:
        return load_ingress_yaml(args.ingress_yaml, validate=not args.no_validate)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


def cmd_generate(args: argparse.Namespace) -> None:
    """Generate the NGINX snippet."""
    config = _load_config(args)

    if not config.servers:
        print("No servers defined in ingress.yaml")
        sys.exit(0)

    print("Generating NGINX snippet")
    print(f"  Servers: {len(config.servers)}")
    print(f"  Backends: {len(config.backends)}")
    print(f"  Resolvers: {', '.join(config.resolvers) or '(none)'}")

    generate_all_snippets(config, output_dir=args.output, filename=args.filename)


def cmd_list(args: argparse.Namespace) -> None:
    """List locations."""
    config = _load_config(args)

    if not config.servers:
        print("No servers defined")
        return

    print("Locations:")
    print("-" * 60)
    for server in config.servers:
        for location in server.locations:
            upstream = build_upstream_name(server.hostname, config.backends, location)
            denied_info = "" if is_location_allowed(location) else " [denied]"
            print(f"  {server.hostname} {build_location(location)} -> {upstream}{denied_info}")

    total = sum(len(s.locations) for s in config.servers)
    print(f"\nTotal: {total} locations")


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="K3s Ingress CLI - Generate NGINX snippets from ingress.yaml"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Generate NGINX snippet")
    gen_parser.add_argument(
        "--output", "-o",
        default="./generated/nginx",
        help="Output directory for the snippet"
    )
    gen_parser.add_argument(
        "--filename", "-f",
        default="ingress.conf",
        help="Snippet file name (default: ingress.conf)"
    )

    # List command
    list_parser = subparsers.add_parser("list", help="List locations")

    for sub in (gen_parser, list_parser):
        sub.add_argument(
            "--ingress-yaml",
            default=None,
            help="Path to ingress.yaml (default: auto-detect)"
        )
        sub.add_argument(
            "--no-validate",
            action="store_true",
            help="Skip schema validation"
        )

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.command == "generate":
        cmd_generate(args)
    elif args.command == "list":
        cmd_list(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
