#!/usr/bin/env python3
"""
Cluster Diagnostics Gatherer
Collects pod, node, helm and service diagnostics from a cluster into one .tar.gz bundle
for offline support analysis.
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

#
# NOTE: Keep gather imports lazy (inside functions) so `--help` works without the
# kubernetes client installed.
#


def run_log_path_for(output_directory: str, context: str, now: datetime) -> str:
    """Activity log lives next to the archive: <root>/gather_<context>_<timestamp>.log."""
    base = os.path.abspath(output_directory or os.getcwd())
    return os.path.join(base, f"gather_{context}_{now.strftime('%Y%m%d%H%M%S')}.log")


def configure_logging(level: str, run_log_path: Optional[str] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if run_log_path:
        os.makedirs(os.path.dirname(run_log_path), exist_ok=True)
        handlers.append(logging.FileHandler(run_log_path, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # The kubernetes client logs every request at DEBUG through urllib3.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser(default_kubeconfig: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gather useful information for debugging issues raised by the support team.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Collect using a config file and the default kubeconfig
  python main.py --config gather.json

  # Use a custom kubeconfig
  python main.py -c gather.yaml -k ~/.kube/prod-config
        """,
    )
    parser.add_argument(
        "-c", "--config", required=True, metavar="CONFIG_FILE_PATH", help="Config file path (JSON or YAML)"
    )
    parser.add_argument(
        "-k",
        "--kube-config-path",
        default=default_kubeconfig,
        metavar="KUBE_CONFIG_PATH",
        help=f"Kubernetes config file path (default: {default_kubeconfig})",
    )
    parser.add_argument("--output-directory", help="Override output_directory_path from the config file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console and activity log level (default: INFO)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns 0 on success, 1 if a phase failed, 2 on a fatal error."""
    from gather.core.config import default_kubeconfig_path, load_profile
    from gather.core.errors import GatherError

    parser = build_parser(default_kubeconfig_path())
    args = parser.parse_args(argv)

    try:
        profile = load_profile(args.config, overrides={"output_directory_path": args.output_directory})
    except GatherError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    now = datetime.now(timezone.utc)
    run_log_path = run_log_path_for(profile.output_directory, profile.context_name, now)
    try:
        configure_logging(args.log_level, run_log_path)
    except OSError as e:
        print(f"❌ Cannot create activity log {run_log_path}: {e}", file=sys.stderr)
        return 2

    logger = logging.getLogger("gather")
    logger.info("Starting log collection...")
    logger.info("The following kube config path will be used: %s", args.kube_config_path)

    from gather.pipeline.pipeline import run_collection
    from gather.providers.k8s_provider import build_cluster_client

    try:
        cluster = build_cluster_client(args.kube_config_path, profile.context_name)
        report = run_collection(
            profile,
            cluster,
            kubeconfig=args.kube_config_path,
            run_log_path=run_log_path,
            now=now,
        )
    except GatherError as e:
        logger.error("Collection aborted: %s", e)
        print(f"❌ {e}", file=sys.stderr)
        return 2

    print(f"📦 Bundle: {report.archive_path}")
    if report.phase_errors:
        print(f"⚠️ {len(report.phase_errors)} phase(s) failed, see {run_log_path}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
