#!/usr/bin/env python3
"""
Example usage of the assembly_metadata package.

This script demonstrates how to extract metadata from .NET modules and
read the resulting records.
"""

import argparse
import json
import sys
import traceback

from assembly_metadata import extract


def main():
    """Demonstrate the assembly_metadata package functionality."""
    parser = argparse.ArgumentParser(
        description="Extract metadata from .NET executables and libraries")
    parser.add_argument('paths', nargs='+', metavar='PATH',
                       help='Module files to inspect')
    parser.add_argument('--json', action='store_true',
                       help='Print each result as JSON')
    parser.add_argument('--verbose', '-v', action='store_true',
                       help='Print a traceback for unexpected errors')
    args = parser.parse_args()

    print("=== Assembly Metadata Example ===\n")

    failures = 0
    try:
        for index, path in enumerate(args.paths, 1):
            result = extract(path)
            for warning in result.warnings:
                print(f"Warning: {warning}", file=sys.stderr)

            if not result.success:
                failures += 1
                print(f"Error: {result.error}", file=sys.stderr)
                continue

            module = result.module
            module.id = index
            if args.json:
                print(json.dumps(result.to_dict(), indent=2))
                continue

            print(f"{module.id}. {module.name_and_version}")
            print(f"   Full name:  {module.full_name}")
            print(f"   Location:   {module.location}")
            print(f"   Runtime:    {module.runtime_version}")
            print(f"   Modified:   {module.last_write_time:%Y-%m-%d %H:%M:%S}")
            print(f"   Company:    {module.company or 'N/A'}")
            print(f"   Debug info: {module.debug_info or 'N/A'}")
            print(f"   References ({len(module.references)}):")
            for reference in module.references:
                print(f"      {reference.name} v{reference.version}")
            print()
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        sys.exit(1)

    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
