import logging

import httpx

logger = logging.getLogger(__name__)


async def send_discord_webhook(
    webhook_url: str,
    title: str,
    description: str,
    color: int = 0x6366F1,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Best effort: returns False instead of raising when delivery fails."""
    if not webhook_url:
        return False
    payload = {
        "embeds": [
            {
                "title": title,
                "description": description,
                "color": color,
            }
        ]
    }
    async with httpx.AsyncClient(transport=transport) as client:
        try:
            resp = await client.post(webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Discord webhook failed: {e!r}")
            return False
    if resp.status_code != 204:
        logger.warning(f"Discord webhook returned {resp.status_code}")
    return resp.status_code == 204
