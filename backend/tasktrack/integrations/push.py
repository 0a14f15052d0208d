from __future__ import annotations

from typing import Any

import requests

from tasktrack.core.config import settings


class PushGatewayClient:
    def __init__(self, base_url: str, token: str):
        self.base_url = base_url.rstrip("/")
        self.token = token

    @classmethod
    def from_settings(cls) -> "PushGatewayClient | None":
        if not settings.push_gateway_url or not settings.push_gateway_token:
            return None
        return cls(settings.push_gateway_url, settings.push_gateway_token)

    def send(
        self,
        user_id: int,
        *,
        title: str,
        body: str,
        link: str | None = None,
        data: dict[str, Any] | None = None,
        timeout_s: float = 3.0,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "userId": user_id,
            "title": title,
            "body": body,
            "link": link or "/notifications",
            "data": data or {},
        }
        r = requests.post(
            f"{self.base_url}/push/send",
            headers={"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"},
            json=payload,
            timeout=timeout_s,
        )
        r.raise_for_status()
        return r.json()
