"""
Vercel Edge Config as the document store.

Read:  GET   {read_url}/{config_id}/item/{key}            (read token)
Write: PATCH {api_url}/v1/edge-config/{config_id}/items   (access token)
       body {"items": [{"operation": "upsert", "key": key, "value": doc}]}
"""

import logging
from typing import Optional

import httpx

from trt_tracker.config import (
    DOCUMENT_KEY,
    EDGE_CONFIG_ID,
    EDGE_CONFIG_READ_TOKEN,
    EDGE_CONFIG_READ_URL,
    HTTP_TIMEOUT_SEC,
    VERCEL_ACCESS_TOKEN,
    VERCEL_API_URL,
)
from trt_tracker.core.errors import TransportFailure

log = logging.getLogger("trt.edge_config")


class EdgeConfigRepository:

    def __init__(
        self,
        config_id: str = EDGE_CONFIG_ID,
        read_token: str = EDGE_CONFIG_READ_TOKEN,
        access_token: str = VERCEL_ACCESS_TOKEN,
        key: str = DOCUMENT_KEY,
        read_url: str = EDGE_CONFIG_READ_URL,
        api_url: str = VERCEL_API_URL,
        client: Optional[httpx.Client] = None,
    ):
        self.config_id = config_id
        self.read_token = read_token
        self.access_token = access_token
        self.key = key
        self.read_url = read_url.rstrip("/")
        self.api_url = api_url.rstrip("/")
        self.client = client or httpx.Client(timeout=HTTP_TIMEOUT_SEC)

    def load(self) -> Optional[dict]:
        if not self.config_id or not self.read_token:
            raise TransportFailure("EDGE_CONFIG_ID / EDGE_CONFIG_READ_TOKEN not configured")
        url = f"{self.read_url}/{self.config_id}/item/{self.key}"
        try:
            r = self.client.get(url, headers={"Authorization": f"Bearer {self.read_token}"})
        except httpx.HTTPError as e:
            raise TransportFailure(f"Edge Config read failed: {e}") from e
        if r.status_code == 404:
            log.info("Edge Config item %s not found, first run", self.key)
            return None
        if r.is_error:
            raise TransportFailure(f"Edge Config read failed: HTTP {r.status_code} {r.text}")
        try:
            return r.json()
        except ValueError:
            log.warning("Edge Config item %s is not JSON, ignoring", self.key)
            return None

    def save(self, document: dict):
        if not self.config_id or not self.access_token:
            raise TransportFailure("EDGE_CONFIG_ID / VERCEL_ACCESS_TOKEN not configured")
        url = f"{self.api_url}/v1/edge-config/{self.config_id}/items"
        body = {"items": [{"operation": "upsert", "key": self.key, "value": document}]}
        try:
            r = self.client.patch(url, json=body, headers={"Authorization": f"Bearer {self.access_token}"})
        except httpx.HTTPError as e:
            raise TransportFailure(f"Edge Config write failed: {e}") from e
        if r.is_error:
            log.error("Edge Config API error: %s", r.text)
            raise TransportFailure(f"Edge Config write failed: HTTP {r.status_code}")
        log.info("Saved %s to Edge Config (%d records)", self.key, len(document.get("records", [])))
