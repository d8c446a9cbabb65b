from __future__ import annotations

import argparse
import logging
import os

from salonbook import create_app
from salonbook.relay import main as run_relay


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the salonbook API or the email relay.")
    parser.add_argument("--relay", action="store_true", help="Run the email relay instead of the API")
    parser.add_argument("--routes", action="store_true", help="Print the URL map before starting")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if args.relay:
        run_relay()
        return

    logging.basicConfig(level=logging.INFO)
    flask_app = create_app()

    if args.routes:
        for rule in sorted(flask_app.url_map.iter_rules(), key=lambda r: r.rule):
            print(f"{','.join(sorted(rule.methods - {'HEAD', 'OPTIONS'})):<10} {rule.rule}")

    debug_enabled = os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"}
    # Appointment streams hold a worker each
    flask_app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=debug_enabled, threaded=True)


if __name__ == "__main__":
    main()
