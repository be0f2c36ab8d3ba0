"""
Lightweight alerting module.

Routes sync failures through logging + optional Slack webhook.
"""
import logging

import requests
from django.conf import settings

logger = logging.getLogger("alerting")


def send_alert(severity: str, title: str, detail: str = "") -> None:
    """
    Send alert through configured channels.

    Args:
        severity: "critical", "warning", or "info"
        title: Short alert title
        detail: Additional context
    """
    log_fn = {
        "critical": logger.critical,
        "warning": logger.warning,
    }.get(severity, logger.info)
    log_fn("ALERT [%s]: %s -- %s", severity.upper(), title, detail)

    webhook = getattr(settings, "SLACK_WEBHOOK_URL", "")
    if not webhook:
        return

    emoji = {
        "critical": ":red_circle:",
        "warning": ":warning:",
    }.get(severity, ":information_source:")
    try:
        requests.post(
            webhook,
            json={"text": f"{emoji} *[Contact Sync] {title}*\n{detail}"},
            timeout=5,
        )
    except requests.RequestException:
        logger.exception("Failed to send Slack alert")
