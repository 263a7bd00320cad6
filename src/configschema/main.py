"""Configuration Schema Main Entry Point

Command-line interface for inspecting a firmware configuration.
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import Optional

# Add project root and src/ to path for local imports
_project_root = str(Path(__file__).parent.parent.parent)
_src_dir = str(Path(__file__).parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)

try:
    from .schema import ConfigSchema
    from .workspace import ConfigWorkspace
except ImportError:
    from configschema.schema import ConfigSchema
    from configschema.workspace import ConfigWorkspace


def _read(path: Path) -> str:
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def load_schema(input_path: Optional[Path], adv_path: Optional[Path] = None,
                conditionals_path: Optional[Path] = None,
                marlin_dir: Optional[Path] = None) -> ConfigSchema:
    """Build the schema to report on.

    With an advanced file (or a Marlin directory that has one) the report
    covers Configuration_adv.h with its Configuration.h prefix.
    """
    if marlin_dir is not None:
        workspace = ConfigWorkspace.from_marlin_dir(marlin_dir)
    else:
        adv_text = _read(adv_path) if adv_path else None
        cond_text = _read(conditionals_path) if conditionals_path else ''
        workspace = ConfigWorkspace(_read(input_path), adv_text, cond_text)
    return workspace.advanced or workspace.basic


def print_report(schema: ConfigSchema, section: Optional[str] = None,
                 inactive: bool = False) -> None:
    """Print a per-section summary, then problems found during evaluation."""
    records = [r for r in schema.records() if section is None or r.section == section]
    shown = [r for r in records if r.writable]

    if section is None:
        counts = {}
        for record in shown:
            counts[record.section] = counts.get(record.section, 0) + 1
        print(f"{len(shown)} options in {len(counts)} sections")
        for name in schema.by_section:
            if name in counts:
                print(f"  {name:<24} {counts[name]}")

    if inactive:
        print("\nInactive options:")
        for record in shown:
            if record.enabled and not record.evaled:
                print(f"  line {record.line_start}: {record.name}  requires {record.requires}")

    errors = [r for r in shown if r.error]
    if errors:
        print("\nEvaluation errors (treated as active):")
        for record in errors:
            print(f"  line {record.line_start}: {record.name}: {record.error}")

    if schema.warnings:
        print("\nWarnings:")
        for warning in schema.warnings:
            print(f"  {warning}")


def main() -> int:
    """Main entry point for the schema tool."""
    parser = argparse.ArgumentParser(
        description="Configuration schema - parse and evaluate firmware configuration headers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mcs-schema Configuration.h                         # Section summary
  mcs-schema Configuration.h --inactive              # List options ruled out by #if blocks
  mcs-schema Configuration.h --adv Configuration_adv.h
  mcs-schema --marlin ~/Marlin --json > schema.json  # Dump the advanced schema as JSON
"""
    )

    parser.add_argument(
        "input",
        type=Path,
        nargs="?",
        help="Configuration header (Configuration.h)"
    )

    parser.add_argument(
        "--adv",
        type=Path,
        help="Advanced configuration header (Configuration_adv.h)"
    )

    parser.add_argument(
        "--conditionals",
        type=Path,
        help="Shared conditionals header used as part of the advanced prefix"
    )

    parser.add_argument(
        "--marlin",
        type=Path,
        help="Marlin source directory to read all configuration files from"
    )

    parser.add_argument(
        "--section",
        help="Only report options from this section"
    )

    parser.add_argument(
        "--inactive",
        action="store_true",
        help="List enabled options whose requirements are not met"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the schema as JSON instead of a report"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Configuration Schema v0.1.0"
    )

    args = parser.parse_args()

    if args.input is None and args.marlin is None:
        parser.error("an input file or --marlin is required")

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        schema = load_schema(args.input, args.adv, args.conditionals, args.marlin)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(schema.to_json(indent=2))
    else:
        print_report(schema, args.section, args.inactive)

    return 1 if schema.warnings else 0


if __name__ == "__main__":
    sys.exit(main())
