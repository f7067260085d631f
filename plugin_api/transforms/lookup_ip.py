"""
Synchronous transform: IP lookup.

Returns location and organization info for an IP address. Data comes from a
local MaxMind database when GEOIP_MMDB_PATH is set, otherwise from ipinfo.io
when IPINFO_API_KEY is set, otherwise from fixed mock data.
"""

import ipaddress
import logging
import os
import re
from functools import lru_cache
from typing import Any, Dict, Optional

import geoip2.database
import httpx

from .. import config
from ..errors import WorkFailure
from ..schemas.transform import Edge, Entity, TransformInput, TransformResult
from .base import ProgressSink, Transform

logger = logging.getLogger("transforms.lookup_ip")

MOCK_INFO = {
    "country": "US",
    "region": "California",
    "city": "Mountain View",
    "loc": "37.3860,-122.0838",
    "org": "AS15169 Google LLC",
    "postal": "94035",
    "timezone": "America/Los_Angeles",
    "asn": "AS15169",
}


@lru_cache(maxsize=1)
def _reader(path: str):
    if not path or not os.path.exists(path):
        return None
    return geoip2.database.Reader(path)


def lookup_mmdb(ip: str, path: str) -> Optional[Dict[str, Any]]:
    r = _reader(path)
    if not r:
        return None
    try:
        rec = r.city(ip)
    except Exception as e:
        logger.debug(f"GeoIP lookup failed for {ip}: {e}")
        return None
    lat, lon = rec.location.latitude, rec.location.longitude
    return {
        "country": rec.country.iso_code,
        "region": rec.subdivisions.most_specific.name,
        "city": rec.city.name,
        "loc": f"{lat},{lon}" if lat is not None and lon is not None else None,
        "postal": rec.postal.code,
        "timezone": rec.location.time_zone,
    }


async def lookup_ipinfo(ip: str, token: str, client: Optional[httpx.AsyncClient] = None) -> Dict[str, Any]:
    url = f"https://ipinfo.io/{ip}/json"
    try:
        if client is not None:
            r = await client.get(url, params={"token": token})
        else:
            async with httpx.AsyncClient(timeout=config.IPINFO_TIMEOUT_SEC) as c:
                r = await c.get(url, params={"token": token})
        r.raise_for_status()
        data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"ipinfo lookup failed for {ip}: {e}", extra={
            "component": "transforms",
            "event": "ipinfo_error"
        })
        return {"country": "Unknown", "org": "Unknown"}
    if data.get("org") and not data.get("asn"):
        m = re.match(r"^(AS\d+)\b", data["org"])
        if m:
            data["asn"] = m.group(1)
    return data


def build_result(ip: str, info: Dict[str, Any], source: str) -> TransformResult:
    result = TransformResult()

    if info.get("country"):
        city = info.get("city") or "Unknown"
        result.entities.append(Entity(
            type="location",
            value=f"{city}, {info['country']}",
            properties={
                "country": info.get("country"),
                "region": info.get("region"),
                "city": info.get("city"),
                "coordinates": info.get("loc"),
                "postal": info.get("postal"),
                "timezone": info.get("timezone"),
            },
        ))
        result.edges.append(Edge(from_=ip, to=f"location-{info['country']}-{info.get('city') or 'unknown'}",
                                 label="located_in"))

    if info.get("org"):
        org_id = "org-" + re.sub(r"\s+", "-", info["org"]).lower()
        result.entities.append(Entity(
            type="organization",
            value=info["org"],
            properties={"asn": info.get("asn"), "source": source},
        ))
        result.edges.append(Edge(from_=ip, to=org_id, label="belongs_to"))

    content = "\n".join([
        f"**IP Address**: {ip}",
        f"**Location**: {info.get('city') or 'N/A'}, {info.get('region') or 'N/A'}, {info.get('country') or 'N/A'}",
        f"**Organization**: {info.get('org') or 'N/A'}",
        f"**ASN**: {info.get('asn') or 'N/A'}",
        f"**Timezone**: {info.get('timezone') or 'N/A'}",
        f"**Source**: {source}",
    ])
    result.entities.append(Entity(
        type="note",
        value=f"IP Info: {ip}",
        properties={"content": content, "tags": ["ip-lookup", "geolocation"]},
    ))
    result.edges.append(Edge(from_=ip, to=f"note-ip-{ip}", label="has_info"))
    return result


class LookupIPTransform(Transform):
    id = "lookup-ip"
    name = "IP Information"
    description = "Get geolocation and organization info for an IP address (sync)"
    input_type = "ip"
    output_types = ["location", "note", "organization"]
    is_async = False
    error_code = "LOOKUP_ERROR"

    def __init__(self, mmdb_path: Optional[str] = None, api_key: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.mmdb_path = config.GEOIP_MMDB_PATH if mmdb_path is None else mmdb_path
        self.api_key = config.IPINFO_API_KEY if api_key is None else api_key
        self.client = client

    async def run(self, payload: TransformInput, progress: ProgressSink) -> TransformResult:
        ip = payload.entity.value
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            raise WorkFailure(self.error_code, f"Invalid IP address: {ip}")

        info = lookup_mmdb(ip, self.mmdb_path) if self.mmdb_path else None
        source = "maxmind"
        if info is None and self.api_key:
            info = await lookup_ipinfo(ip, self.api_key, self.client)
            source = "ipinfo"
        if info is None:
            logger.info("No lookup source configured, using mock data", extra={
                "component": "transforms",
                "event": "mock_lookup"
            })
            info = dict(MOCK_INFO)
            source = "mock"

        return build_result(ip, info, source)
