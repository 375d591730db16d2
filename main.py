#!/usr/bin/env python3
"""
OOM watcher - attribute kernel OOM kills on Kubernetes nodes to pods.

Watches OOMKilling node events, looks the killed PID up in the process-record
database, maps its cgroup to a pod UID and posts the result to a webhook.
"""

import argparse
import logging
import sys
from typing import List, Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

logger = logging.getLogger("oomwatch")

EXIT_WATCH_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Report OOM-killed processes per pod to a webhook",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # In-cluster, settings from the environment (DB_URL, WEBHOOK_URL)
  python main.py

  # Local kubeconfig, explicit settings
  python main.py --kubeconfig ~/.kube/config --db-url postgres://... --webhook-url https://hooks.example/...
        """,
    )
    parser.add_argument("--master", help="Kubernetes API server URL (overrides kubeconfig host)")
    parser.add_argument("--kubeconfig", help="Path to kubeconfig file (default: in-cluster, then ~/.kube/config)")
    parser.add_argument("--db-url", help="Process-record database URL (env: DB_URL / POSTGRES_DSN)")
    parser.add_argument("--webhook-url", help="Webhook URL for alerts (env: WEBHOOK_URL)")
    parser.add_argument("--username", help="Webhook username / source tag (default: 'OOM watcher')")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    from oomwatch.config import load_config
    from oomwatch.core.errors import ConfigError, WatchFailed
    from oomwatch.worker import build_watcher

    cfg = load_config().with_overrides(
        master_url=args.master,
        kubeconfig_path=args.kubeconfig,
        db_url=args.db_url,
        webhook_url=args.webhook_url,
        username=args.username,
    )
    try:
        cfg.validate()
    except ConfigError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR

    watcher = build_watcher(cfg)
    try:
        watcher.run_forever()
    except WatchFailed as e:
        logger.error(f"Exiting: {e}")
        return EXIT_WATCH_FAILED
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
