#!/usr/bin/env python3
"""
Inkwell core - backend service for a small personal publishing platform.
"""

import argparse
import json
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep inkwell imports lazy (inside functions) so `--help` and the schema
# dump don't pull in the web and database stacks.
#


def print_jsonschema() -> None:
    """Print the configuration JSON schema (with defaults) to stdout."""
    from inkwell.configs.models import AppOptions

    schema = AppOptions.model_json_schema(by_alias=True)
    schema["default"] = AppOptions().model_dump(by_alias=True, mode="json")
    print(json.dumps(schema, indent=2, sort_keys=False))


def promote_owner(email: str) -> int:
    """Mark an existing (social-login) user as the site owner."""
    from inkwell.auth.adapter import MongoAdapter
    from inkwell.db import open_resources
    from inkwell.settings import load_app_config

    resources = open_resources(load_app_config())
    try:
        if not MongoAdapter(resources.db).set_owner(email):
            print(f"No user with email {email!r}; sign in once with a social provider first.", file=sys.stderr)
            return 1
        print(f"{email} is now the site owner")
        return 0
    finally:
        resources.close()


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Inkwell core service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP server
  python main.py --serve --port 2333

  # Dump the configuration schema
  python main.py --print-jsonschema

  # Grant owner access to a user who has signed in
  python main.py --promote-owner me@example.com
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=2333, help="Server listen port (default: 2333)")
    parser.add_argument(
        "--print-jsonschema", action="store_true", help="Print the configuration JSON schema and exit"
    )
    parser.add_argument("--promote-owner", metavar="EMAIL", help="Mark the user with EMAIL as site owner")

    args = parser.parse_args()

    if args.print_jsonschema:
        print_jsonschema()
        return

    if args.promote_owner:
        sys.exit(promote_owner(args.promote_owner))

    if args.serve:
        from inkwell.api.app import run

        run(host=args.host, port=args.port)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
