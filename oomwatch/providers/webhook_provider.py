"""Webhook delivery (Slack/Mattermost-style incoming webhook)."""

from __future__ import annotations

from typing import Dict

import requests

from oomwatch.core.errors import DeliveryError
from oomwatch.core.models import Alert


class WebhookNotifier:
    """
    Posts flat JSON payloads to a single webhook URL.

    At most one attempt per call: failures are raised as DeliveryError and never retried.
    """

    def __init__(self, url: str, *, timeout_seconds: int = 10) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds

    def post(self, payload: Dict[str, str]) -> None:
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout_seconds)
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"Failed to POST: {str(e)}") from e

        if response.status_code < 200 or response.status_code > 299:
            raise DeliveryError(f"Failed to POST: {response.status_code} {response.reason or ''}".rstrip())

    def send(self, alert: Alert) -> None:
        self.post(alert.to_payload())
