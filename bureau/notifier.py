"""Slack incoming-webhook notifications for deal pipeline changes."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from bureau import config

log = logging.getLogger(__name__)

_TIMEOUT = 10.0


def _money(value: float | None) -> str:
    return f"${value:,.0f}" if value else ""


def deal_status_message(deal: dict[str, Any], old_status: str) -> dict[str, Any]:
    value = _money(deal.get("deal_value"))
    return {
        "text": f"Deal Updated: {deal['event_title']} → {deal['status']}",
        "blocks": [{
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"*{deal['event_title']}* {value}\n{deal['client_name']}\n\n"
                    f"_Status changed: {old_status} → *{deal['status']}*_"
                ),
            },
        }],
    }


def deal_won_message(deal: dict[str, Any]) -> dict[str, Any]:
    value = _money(deal.get("deal_value")) or "TBD"
    company = f" • {deal['company']}" if deal.get("company") else ""
    fields = [{"type": "mrkdwn", "text": f"*Value:*\n{value}"}]
    if deal.get("event_date"):
        fields.append({"type": "mrkdwn", "text": f"*Event Date:*\n{deal['event_date']}"})
    if deal.get("speaker_requested"):
        fields.append({"type": "mrkdwn", "text": f"*Speaker:*\n{deal['speaker_requested']}"})
    return {
        "text": f"Deal Won: {deal['event_title']}",
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": "DEAL WON!"}},
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*{deal['event_title']}*\n{deal['client_name']}{company}"}},
            {"type": "section", "fields": fields},
        ],
    }


async def send_webhook(message: dict[str, Any]) -> bool:
    """POST to the Slack webhook. Returns False (never raises) when unset or failing."""
    url = config.SLACK_WEBHOOK_URL
    if not url:
        log.debug("SLACK_WEBHOOK_URL not configured; skipping notification")
        return False
    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
            resp = await client.post(url, json=message)
        if resp.status_code >= 400:
            log.warning("Slack webhook returned %s: %s", resp.status_code, resp.text[:200])
            return False
        return True
    except httpx.HTTPError as exc:
        log.warning("Slack webhook failed: %s", exc)
        return False


async def notify_deal_status_change(deal: dict[str, Any], old_status: str) -> bool:
    if deal["status"] == "won":
        return await send_webhook(deal_won_message(deal))
    return await send_webhook(deal_status_message(deal, old_status))
