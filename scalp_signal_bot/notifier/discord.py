from __future__ import annotations

import logging

import aiohttp

log = logging.getLogger("discord")

# Discord rejects message content above this length.
MAX_CONTENT = 2000


class DiscordNotifier:
    def __init__(self, *, webhook_url: str, timeout_s: int = 10):
        self.webhook_url = (webhook_url or "").strip()
        self.timeout_s = int(timeout_s) if timeout_s is not None else 10

    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, text: str) -> None:
        if not self.enabled():
            return
        payload = {"content": text[:MAX_CONTENT]}
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_s)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.webhook_url, json=payload) as resp:
                    if resp.status >= 400:
                        body = await resp.text()
                        log.warning("discord_bad_status status=%s body=%s", resp.status, body[:200])
        except Exception as e:
            # Log but do not crash
            log.warning("discord_post_failed err=%s", e)
