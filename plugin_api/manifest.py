"""
Plugin manifest served to the host platform
"""

from typing import Any, Dict, Optional

from . import config
from .transforms.base import TransformRegistry

MANIFEST_VERSION = "1.0"


def build_manifest(registry: TransformRegistry, base_url: Optional[str] = None) -> Dict[str, Any]:
    base_url = (base_url or config.PLUGIN_BASE_URL).rstrip("/")
    transforms = registry.all()

    input_types, output_types = [], []
    for t in transforms:
        if t.input_type not in input_types:
            input_types.append(t.input_type)
        for out in t.output_types:
            if out not in output_types:
                output_types.append(out)

    return {
        "manifestVersion": MANIFEST_VERSION,
        "plugin": {
            "id": config.PLUGIN_ID,
            "name": config.PLUGIN_NAME,
            "version": config.PLUGIN_VERSION,
            "description": "IP lookup and deep scanning. Demonstrates both sync and async transforms.",
            "author": config.PLUGIN_AUTHOR,
            "category": config.PLUGIN_CATEGORY,
            "tags": ["ip", "geolocation", "network", "security"],
            "capabilities": {
                "inputTypes": input_types,
                "outputTypes": output_types,
                "supportsAsync": any(t.is_async for t in transforms),
            },
            "transforms": [t.describe(base_url) for t in transforms],
            "rateLimit": {
                "maxRequestsPerMinute": config.RATE_LIMIT_PER_MINUTE,
            },
        },
    }


def validate_manifest(manifest: Dict[str, Any]) -> list:
    """Return a list of problems; empty when the manifest is well formed"""
    errors = []
    if manifest.get("manifestVersion") != MANIFEST_VERSION:
        errors.append(f"manifestVersion must be {MANIFEST_VERSION}")
    plugin = manifest.get("plugin") or {}
    for field in ("id", "name", "version", "author", "category"):
        if not plugin.get(field):
            errors.append(f"plugin.{field} is required")
    transforms = plugin.get("transforms") or []
    if not transforms:
        errors.append("plugin.transforms must not be empty")
    seen = set()
    for t in transforms:
        tid = t.get("id")
        if tid in seen:
            errors.append(f"duplicate transform id: {tid}")
        seen.add(tid)
        if not str(t.get("endpoint", "")).startswith(("http://", "https://")):
            errors.append(f"transform {tid}: endpoint must be an absolute URL")
        if t.get("async") and not plugin.get("capabilities", {}).get("supportsAsync"):
            errors.append(f"transform {tid} is async but capabilities.supportsAsync is false")
    return errors
