from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
import urllib.error
import urllib.parse
import urllib.request


DEFAULT_BASE_URL = os.getenv("ESTATE_BASE_URL", "http://localhost:8000")
DEFAULT_ADMIN_KEY = os.getenv("INTERNAL_ADMIN_KEY", "")

DEFAULT_TIMEOUT_SECONDS = 30


def http_put(url: str, payload: dict[str, Any], admin_key: str) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(
        url=url,
        data=data,
        method="PUT",
        headers={
            "Content-Type": "application/json",
            "X-Internal-Admin-Key": admin_key,
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=DEFAULT_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        body = e.read().decode("utf-8", errors="replace")
        print(f"HTTP {e.code} {e.reason} for {url}", file=sys.stderr)
        if body:
            print(body, file=sys.stderr)
        return {"error": {"status": e.code, "reason": e.reason, "body": body}}
    except urllib.error.URLError as e:
        print(f"Network error for {url}: {e}", file=sys.stderr)
        return {"error": {"reason": str(e)}}


def plan_requests(body: dict[str, Any], base_url: str) -> list[tuple[str, dict[str, Any]]]:
    """
    Turn a geo file into (url, payload) upserts, cities before their areas.

    File shape: {"cities": [{"slug", "name", "region", "areas": [{"slug", "name"}]}]}
    """
    base = base_url.rstrip("/")
    out: list[tuple[str, dict[str, Any]]] = []
    for city in body.get("cities", []):
        city_slug = urllib.parse.quote(str(city["slug"]).strip().lower(), safe="")
        out.append((f"{base}/v1/admin/geo/cities/{city_slug}", {"name": city["name"], "region": city.get("region")}))
        for area in city.get("areas", []):
            area_slug = urllib.parse.quote(str(area["slug"]).strip().lower(), safe="")
            out.append((f"{base}/v1/admin/geo/cities/{city_slug}/areas/{area_slug}", {"name": area["name"]}))
    return out


def main() -> int:
    p = argparse.ArgumentParser(description="Load cities and sub-localities through the admin API.")
    p.add_argument("--file", required=True, help="path to json file")
    p.add_argument("--base-url", default=DEFAULT_BASE_URL)
    p.add_argument("--admin-key", default=DEFAULT_ADMIN_KEY)
    p.add_argument("--dry-run", action="store_true", help="print the requests without sending them")
    args = p.parse_args()

    if not args.admin_key and not args.dry_run:
        print("Missing INTERNAL_ADMIN_KEY (env) or --admin-key", file=sys.stderr)
        return 2

    try:
        with open(args.file, "r", encoding="utf-8") as f:
            body = json.load(f)
    except (OSError, ValueError) as e:
        print(f"Failed to read JSON file: {e}", file=sys.stderr)
        return 2

    if not isinstance(body, dict) or not isinstance(body.get("cities"), list):
        print("Invalid payload: expected JSON object with a 'cities' list.", file=sys.stderr)
        return 2

    try:
        requests = plan_requests(body, args.base_url)
    except KeyError as e:
        print(f"Invalid payload: missing {e}", file=sys.stderr)
        return 2

    failures = 0
    for url, payload in requests:
        if args.dry_run:
            print(f"PUT {url} {json.dumps(payload, ensure_ascii=False)}")
            continue
        resp = http_put(url, payload, args.admin_key)
        if "error" in resp:
            failures += 1

    print(f"{len(requests)} upserts, {failures} failed", file=sys.stderr)
    return 0 if failures == 0 else 1

if __name__ == "__main__":
    raise SystemExit(main())
