"""
Asynchronous transform: deep IP scan.

Reverse DNS, port scan, reputation and associated domains are mocked; swap
the perform_* helpers for real lookups (dns.reverse, nmap, AbuseIPDB, ...).
"""

import asyncio
import ipaddress
import logging
import random
from typing import Any, Dict, List, Optional

from .. import config
from ..errors import WorkFailure
from ..schemas.transform import Edge, Entity, TransformInput, TransformResult
from .base import ProgressSink, Transform

logger = logging.getLogger("transforms.scan_ip")


async def perform_reverse_dns(ip: str) -> List[str]:
    return [f"host-{ip.replace('.', '-').replace(':', '-')}.example.com", "mail.example.com"]


async def perform_port_scan(ip: str) -> Dict[str, List[Any]]:
    return {"open_ports": [80, 443, 22], "services": ["HTTP", "HTTPS", "SSH"]}


async def check_reputation(ip: str, rng: random.Random) -> Dict[str, Any]:
    score = rng.randrange(100)
    if score > 70:
        category = "clean"
    elif score > 40:
        category = "suspicious"
    else:
        category = "malicious"
    return {
        "score": score,
        "category": category,
        "threats": ["spam", "port-scan"] if score < 40 else [],
    }


async def find_associated_domains(ip: str) -> List[str]:
    last = ip.replace(":", ".").split(".")[-1] or "0"
    return ["example.com", "test.example.com", f"app-{last}.example.com"]


def render_report(ip: str, reverse_dns: List[str], port_scan: Optional[Dict[str, List[Any]]],
                  reputation: Optional[Dict[str, Any]]) -> str:
    content = f"## Deep Scan Results for {ip}\n\n"
    if reverse_dns:
        content += "### Reverse DNS\n" + "\n".join(f"- {d}" for d in reverse_dns) + "\n\n"
    if port_scan:
        content += "### Open Ports\n" + "\n".join(f"- Port {p}" for p in port_scan["open_ports"]) + "\n\n"
        if port_scan["services"]:
            content += "### Detected Services\n" + "\n".join(f"- {s}" for s in port_scan["services"]) + "\n\n"
    if reputation:
        content += "### Reputation\n"
        content += f"- **Score**: {reputation['score']}/100\n"
        content += f"- **Category**: {reputation['category']}\n"
        if reputation["threats"]:
            content += f"- **Threats**: {', '.join(reputation['threats'])}\n"
        content += "\n"
    content += "**Source**: Deep Scan Plugin (example)\n"
    return content


class ScanIPTransform(Transform):
    id = "scan-ip"
    name = "Deep IP Scan"
    description = "Perform deep analysis: reverse DNS, open ports, reputation, threats (async)"
    input_type = "ip"
    output_types = ["note", "domain", "organization"]
    is_async = True
    estimated_time = 120
    error_code = "SCAN_ERROR"
    config_schema = {
        "type": "object",
        "properties": {
            "includePortScan": {
                "type": "boolean",
                "description": "Include port scanning in the analysis",
                "default": True,
            },
            "includeReputation": {
                "type": "boolean",
                "description": "Check IP reputation and threats",
                "default": True,
            },
        },
        "required": [],
    }

    def __init__(self, step_delay: Optional[float] = None, rng: Optional[random.Random] = None):
        self.step_delay = config.SCAN_STEP_DELAY_SEC if step_delay is None else step_delay
        self.rng = rng or random.Random()

    async def _step(self):
        if self.step_delay > 0:
            await asyncio.sleep(self.step_delay)

    async def run(self, payload: TransformInput, progress: ProgressSink) -> TransformResult:
        ip = payload.entity.value
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            raise WorkFailure(self.error_code, f"Invalid IP address: {ip}")
        opts = payload.config or {}

        progress(10, "Starting reverse DNS lookup...")
        await self._step()
        reverse_dns = await perform_reverse_dns(ip)
        progress(30, "Reverse DNS completed")

        await self._step()
        port_scan = await perform_port_scan(ip) if opts.get("includePortScan", True) is not False else None
        progress(60, "Port scan completed")

        await self._step()
        reputation = await check_reputation(ip, self.rng) if opts.get("includeReputation", True) is not False else None
        progress(80, "Reputation check completed")

        await self._step()
        domains = await find_associated_domains(ip)
        progress(95, "Finalizing results...")

        logger.info("Deep scan finished", extra={
            "component": "transforms",
            "event": "scan_done",
            "domains": len(domains),
            "open_ports": len(port_scan["open_ports"]) if port_scan else 0
        })

        result = TransformResult()
        for domain in domains:
            result.entities.append(Entity(type="domain", value=domain, properties={"source": "reverse-dns"}))
            result.edges.append(Edge(from_=ip, to=f"domain-{domain}", label="resolves_to"))

        result.entities.append(Entity(
            type="note",
            value=f"Deep Scan: {ip}",
            properties={
                "content": render_report(ip, reverse_dns, port_scan, reputation),
                "tags": ["deep-scan", "security", "network"],
            },
        ))
        result.edges.append(Edge(from_=ip, to=f"note-scan-{ip}", label="has_analysis"))
        return result
