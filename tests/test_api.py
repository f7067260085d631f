#!/usr/bin/env python3
"""
Endpoint tests for the plugin API
"""
import json
import time

from plugin_api.utils.crypto import SIGNATURE_HEADER, verify

from conftest import CALLBACK_URL

def wait_for_job(client, job_id, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        data = client.get(f"/jobs/{job_id}").json()
        if data["status"] != "running" and data.get("delivery"):
            return data
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} did not finish")

def register(client, org="t1"):
    response = client.post("/register", json={
        "organizationId": org,
        "organizationName": "Tenant One",
        "platformUrl": "https://platform.example.com/",
    })
    assert response.status_code == 200
    return response.json()

def scan_request(org="t1", entity_type="ip", value="8.8.8.8"):
    return {
        "transformId": "scan-ip",
        "input": {
            "entity": {"type": entity_type, "value": value},
            "config": {"includePortScan": True},
            "organizationId": org,
        },
        "callbackUrl": CALLBACK_URL,
    }

def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "version" in data
    assert "X-Request-ID" in response.headers

def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert response.headers["X-Request-ID"] == "trace-123"

def test_manifest_endpoint(client):
    response = client.get("/manifest.json")
    assert response.status_code == 200
    data = response.json()
    assert data["manifestVersion"] == "1.0"
    assert {t["id"] for t in data["plugin"]["transforms"]} == {"lookup-ip", "scan-ip"}

def test_register_issues_secret(client, secret_store):
    data = register(client)
    assert len(data["webhookSecret"]) == 64
    assert data["pluginId"]
    assert data["issuedAt"]
    assert secret_store.resolve("t1") == data["webhookSecret"]
    assert secret_store.get("t1").platform_url == "https://platform.example.com"

def test_register_twice_rotates_secret(client, secret_store):
    first = register(client)["webhookSecret"]
    second = register(client)["webhookSecret"]
    assert first != second
    assert secret_store.resolve("t1") == second

def test_register_rejects_bad_platform_url(client):
    response = client.post("/register", json={"organizationId": "t1", "platformUrl": "ftp://nope"})
    assert response.status_code == 422

def test_unregister(client, secret_store):
    assert client.post("/unregister", json={"organizationId": "t1"}).status_code == 404
    register(client)
    response = client.post("/unregister", json={"organizationId": "t1"})
    assert response.status_code == 200
    assert response.json()["status"] == "unregistered"
    assert secret_store.get("t1") is None

def test_lookup_ip_sync(client):
    response = client.post("/transform/lookup-ip", json={
        "transformId": "lookup-ip",
        "input": {"entity": {"type": "ip", "value": "8.8.8.8"}, "config": {}},
        "callbackUrl": CALLBACK_URL,
    })
    assert response.status_code == 200
    data = response.json()
    assert data["async"] is False
    assert any(e["type"] == "location" for e in data["result"]["entities"])
    assert data["result"]["edges"][0]["from"] == "8.8.8.8"

def test_lookup_ip_wrong_entity_type(client):
    response = client.post("/transform/lookup-ip", json={
        "input": {"entity": {"type": "domain", "value": "example.com"}},
    })
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"

def test_lookup_ip_invalid_address(client):
    response = client.post("/transform/lookup-ip", json={
        "input": {"entity": {"type": "ip", "value": "not-an-ip"}},
    })
    assert response.status_code == 500
    data = response.json()
    assert data["error"]["code"] == "LOOKUP_ERROR"
    assert data["result"]["entities"][0]["properties"]["tags"] == ["error"]

def test_unknown_transform(client):
    response = client.post("/transform/nope", json=scan_request())
    assert response.status_code == 404

def test_transform_id_mismatch(client):
    body = scan_request()
    body["transformId"] = "lookup-ip"
    response = client.post("/transform/scan-ip", json=body)
    assert response.status_code == 400

def test_bad_callback_url(client):
    body = scan_request()
    body["callbackUrl"] = "not a url"
    response = client.post("/transform/scan-ip", json=body)
    assert response.status_code == 422

def test_scan_ip_async_job(client, webhook_sink):
    secret = register(client)["webhookSecret"]

    response = client.post("/transform/scan-ip", json=scan_request())
    assert response.status_code == 200
    data = response.json()
    assert data["async"] is True
    assert data["jobId"].startswith("job-")
    assert data["estimatedTime"] == 120

    job = wait_for_job(client, data["jobId"])
    assert job["status"] == "completed"
    assert job["progress"] == 100
    assert job["delivery"] == "delivered"

    assert len(webhook_sink.requests) == 1
    request = webhook_sink.requests[0]
    assert verify(request.content, request.headers[SIGNATURE_HEADER], secret)
    body = json.loads(request.content)
    assert body["jobId"] == data["jobId"]
    assert body["status"] == "completed"

def test_scan_ip_wrong_entity_type_creates_no_job(client, job_registry, webhook_sink):
    register(client)
    response = client.post("/transform/scan-ip", json=scan_request(entity_type="domain", value="example.com"))
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"
    assert len(job_registry) == 0

def test_scan_ip_missing_organization(client, job_registry):
    body = scan_request()
    del body["input"]["organizationId"]
    response = client.post("/transform/scan-ip", json=body)
    assert response.status_code == 400
    assert len(job_registry) == 0

def test_scan_ip_unregistered_tenant(client, webhook_sink):
    response = client.post("/transform/scan-ip", json=scan_request(org="unknown"))
    assert response.status_code == 200

    job = wait_for_job(client, response.json()["jobId"])
    assert job["status"] == "completed"
    assert job["delivery"] == "skipped"
    assert webhook_sink.requests == []

def test_scan_ip_invalid_address_fails_job(client, webhook_sink):
    register(client)
    response = client.post("/transform/scan-ip", json=scan_request(value="999.0.0.1"))
    job = wait_for_job(client, response.json()["jobId"])
    assert job["status"] == "failed"
    body = json.loads(webhook_sink.requests[0].content)
    assert body["error"]["code"] == "SCAN_ERROR"

def test_job_not_found(client):
    response = client.get("/jobs/job-0-000000000000")
    assert response.status_code == 404

def test_metrics_endpoint(client):
    register(client)
    client.post("/transform/scan-ip", json=scan_request())
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "plugin_jobs_submitted_total" in response.text
    assert "plugin_tenants_registered" in response.text

def test_logs_tail(client):
    register(client)
    response = client.get("/logs/tail?limit=5")
    assert response.status_code == 200
    data = response.json()
    assert data["count"] <= 5
