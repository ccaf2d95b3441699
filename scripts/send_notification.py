"""Post one provider notification to a running notification service.

Useful for manual duplicate-delivery and out-of-order testing. When an HMAC
key is given the item is signed before sending.
"""

import argparse
import asyncio
import json
from pathlib import Path

import httpx

from pspsync.services.notification.schemas import Notification
from pspsync.services.notification.signature import HMAC_SIGNATURE_FIELD, calculate_hmac_signature


def sign_item(item: dict, hmac_key: str) -> dict:
    """Return a copy of one NotificationRequestItem with its HMAC signature set."""

    notification = Notification.model_validate(item)
    signed = dict(item)
    signed["additionalData"] = {
        **(item.get("additionalData") or {}),
        HMAC_SIGNATURE_FIELD: calculate_hmac_signature(notification, hmac_key),
    }
    return signed


async def send(base_url: str, item: dict, repeat: int) -> None:
    """Deliver the same envelope `repeat` times and print each response."""

    envelope = {"live": "false", "notificationItems": [{"NotificationRequestItem": item}]}
    async with httpx.AsyncClient(timeout=30.0) as client:
        for _ in range(repeat):
            resp = await client.post(f"{base_url}/notifications", json=envelope)
            print(f"status={resp.status_code} body={resp.text}")


def main() -> None:
    """Parse CLI args and send one notification item."""

    parser = argparse.ArgumentParser(description="Send a provider notification to the service.")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--json", dest="json_inline", default=None, help="Inline NotificationRequestItem JSON")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to NotificationRequestItem JSON")
    parser.add_argument("--hmac-key", default=None, help="Hex HMAC key used to sign the item")
    parser.add_argument("--repeat", type=int, default=1, help="Number of identical deliveries")
    args = parser.parse_args()

    if bool(args.json_inline) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --json or --file")

    if args.json_inline:
        item = json.loads(args.json_inline)
    else:
        item = json.loads(Path(args.json_file).read_text())
    if args.hmac_key:
        item = sign_item(item, args.hmac_key)

    asyncio.run(send(args.base_url, item, args.repeat))


if __name__ == "__main__":
    main()
