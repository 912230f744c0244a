from __future__ import annotations

import argparse
import json

from services.observability import configure_logging
from services.reconcile import run_reconcile
from settings import settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one reconciliation sweep over in-flight transactions.")
    parser.add_argument("--json", action="store_true", help="print the full sweep report as JSON")
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL)
    result = run_reconcile()
    summary = result["summary"]

    if args.json:
        print(json.dumps(result, indent=2, default=str))
        return

    print("run_at:", result["run_at"])
    print(
        "counts:",
        f"processed={result['processed_count']}",
        f"transitioned={summary['transitioned']}",
        f"unchanged={summary['unchanged']}",
        f"errors={summary['errors']}",
    )
    for item in result["results"]:
        if not item.get("ok"):
            print("error:", item["id"], item.get("status"), item.get("error"))


if __name__ == "__main__":
    main()
