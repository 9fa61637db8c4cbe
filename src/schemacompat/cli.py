"""schemacompat CLI: compare two package schema snapshots."""

import argparse
import logging
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path


def main():
    """Main CLI entry point for schemacompat commands."""
    try:
        schemacompat_version = get_version("schemacompat")
    except PackageNotFoundError:
        schemacompat_version = "dev"

    parser = argparse.ArgumentParser(
        prog="schemacompat",
        description="schemacompat: backward-compatibility checks for package schemas"
    )
    parser.add_argument("--version", action="version", version=f"schemacompat {schemacompat_version}")
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log normalization decisions to stderr."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    compare_parser = subparsers.add_parser(
        "compare",
        help="Compare two versions of a package schema",
        parents=[parent_parser]
    )
    compare_parser.add_argument(
        "--provider", "-p",
        required=True,
        help="The provider whose schema we are comparing"
    )
    compare_parser.add_argument(
        "--old",
        dest="old_path",
        type=Path,
        required=True,
        help="Path to the old schema.json"
    )
    compare_parser.add_argument(
        "--new",
        dest="new_path",
        type=Path,
        required=True,
        help="Path to the new schema.json"
    )
    compare_parser.add_argument(
        "--max-changes", "-m",
        type=int,
        default=500,
        help="Maximum number of breaking changes to display. Pass -1 to display all changes"
    )
    compare_parser.add_argument(
        "--old-metadata",
        type=Path,
        default=None,
        help="Path to bridge-metadata.json for the old schema"
    )
    compare_parser.add_argument(
        "--new-metadata",
        type=Path,
        default=None,
        help="Path to bridge-metadata.json for the new schema"
    )
    output_group = compare_parser.add_mutually_exclusive_group()
    output_group.add_argument(
        "--json",
        action="store_true",
        help="Write the result as JSON"
    )
    output_group.add_argument(
        "--summary",
        action="store_true",
        help="Write category counts only"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "compare":
        logging.basicConfig(
            level=logging.INFO if args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        if (args.old_metadata is None) != (args.new_metadata is None):
            print("Error: --old-metadata and --new-metadata must be set together", file=sys.stderr)
            sys.exit(1)

        from .api import compare_schemas
        from .kernel.schema import SchemaLoadError
        from .normalize.errors import MetadataError
        from .report import RenderError, render_json, render_summary, render_text

        try:
            result = compare_schemas(
                args.old_path,
                args.new_path,
                provider=args.provider,
                max_changes=args.max_changes,
                old_metadata=args.old_metadata,
                new_metadata=args.new_metadata,
                normalize=args.old_metadata is not None,
            )
            if args.json:
                render_json(sys.stdout, result)
            elif args.summary:
                render_summary(sys.stdout, result)
            else:
                render_text(sys.stdout, result)
        except (SchemaLoadError, MetadataError, RenderError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        sys.exit(0)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
