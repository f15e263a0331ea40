from __future__ import annotations

import argparse
import asyncio
import logging

from .bridge import export_ea
from .config import load_config
from .runner import ScalpRunner


def _setup_logging(level: str) -> None:
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Scalp Agent - sell-only pullback signal bot")
    p.add_argument("--config", default=None, help="Path to YAML config (defaults + env when omitted)")
    p.add_argument("--export-ea", metavar="DIR", default=None, help="Write ScalpBridgeEA.mq5 into DIR and exit")
    args = p.parse_args(argv)

    if args.export_ea:
        print(export_ea(args.export_ea))
        return 0

    cfg = load_config(args.config)
    _setup_logging(cfg.app.log_level)

    runner = ScalpRunner(cfg)

    async def _run() -> None:
        try:
            await runner.run_forever()
        finally:
            # Close shared REST session cleanly.
            await runner.provider.close()

    try:
        asyncio.run(_run())
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        logging.getLogger("main").exception("fatal err=%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
