#!/usr/bin/env python3
"""
Generate or validate the plugin manifest.

  python scripts/manifest_tool.py generate --output manifest.json
  python scripts/manifest_tool.py validate manifest.json
  python scripts/manifest_tool.py validate          # checks the built-in manifest
"""
import argparse
import json
import sys

from plugin_api.manifest import build_manifest, validate_manifest
from plugin_api.transforms.base import default_registry

def _load(path):
    if path is None:
        return build_manifest(default_registry())
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

def generate(args) -> int:
    manifest = build_manifest(default_registry(), base_url=args.base_url)
    output = json.dumps(manifest, indent=2)
    with open(args.output, "w", encoding="utf-8") as f:
        f.write(output + "\n")
    print(f"✅ Generated {args.output}")
    return 0

def validate(args) -> int:
    try:
        manifest = _load(args.path)
    except (OSError, json.JSONDecodeError) as e:
        print(f"❌ Could not read manifest: {e}")
        return 1

    errors = validate_manifest(manifest)
    if errors:
        print("❌ Manifest is INVALID!")
        for error in errors:
            print(f"  - {error}")
        return 1

    plugin = manifest["plugin"]
    print("✅ Manifest is VALID!")
    print(f"Plugin ID: {plugin['id']}")
    print(f"Version: {plugin['version']}")
    for t in plugin["transforms"]:
        print(f"  - {t.get('name', t['id'])} ({'async' if t.get('async') else 'sync'})")
    return 0

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Plugin manifest tooling")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Write the manifest to a file")
    gen.add_argument("--output", default="manifest.json")
    gen.add_argument("--base-url", default=None, help="Public base URL for transform endpoints")
    gen.set_defaults(func=generate)

    val = sub.add_parser("validate", help="Validate a manifest file (default: the built-in manifest)")
    val.add_argument("path", nargs="?", default=None)
    val.set_defaults(func=validate)

    args = parser.parse_args(argv)
    return args.func(args)

if __name__ == "__main__":
    sys.exit(main())
