#!/usr/bin/env python3
"""
Smoke test for a running submission console.

Walks the list view, pages through it, opens the first task's detail and
goes back to the list. Only reads state on the pipeline side.

Env vars:
  BASE_URL       (default http://localhost:8000)
  TIMEOUT_SEC    (default 30)
  POLL_INTERVAL  (default 3)
"""
from __future__ import annotations

import json
import os
import sys
import time
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000").rstrip("/")
TIMEOUT_SEC = int(os.environ.get("TIMEOUT_SEC", "30"))
POLL_INTERVAL = int(os.environ.get("POLL_INTERVAL", "3"))

# ── Helpers ──────────────────────────────────────────────────

class SmokeError(Exception):
    pass


def _req(method: str, path: str, body: dict | None = None) -> dict:
    url = f"{BASE_URL}{path}"
    data = json.dumps(body).encode() if body is not None else None
    req = Request(url, data=data, headers={"Content-Type": "application/json"}, method=method)
    try:
        with urlopen(req, timeout=TIMEOUT_SEC) as resp:
            raw = resp.read().decode()
            return json.loads(raw) if raw else {}
    except HTTPError as e:
        raw = e.read().decode()[:500]
        raise SmokeError(f"{method} {path} → {e.code}: {raw}")
    except URLError as e:
        raise SmokeError(f"{method} {path} → URLError: {e}")


def GET(path: str) -> dict:
    return _req("GET", path)


def POST(path: str, body: dict | None = None) -> dict:
    return _req("POST", path, body)


def step(name: str):
    print(f"\n{'='*60}")
    print(f"  STEP: {name}")
    print(f"{'='*60}")


def ok(msg: str):
    print(f"  ✅ {msg}")


def fail(msg: str):
    print(f"  ❌ {msg}")
    raise SmokeError(msg)


# ── Steps ────────────────────────────────────────────────────

def step1_ping():
    step("1. Ping")
    data = GET("/ping")
    if data.get("status") != "ok":
        fail(f"Unexpected ping response: {data}")
    ok("Console is up")


def step2_list() -> dict:
    step("2. Task list")
    state = POST("/api/console/views/list")
    listing = state["list"]
    if state["view"] != "list":
        fail(f"Expected list view, got {state['view']}")
    ok(f"{listing['total']} tasks, page {listing['page']}/{listing['totalPages']}")
    if state.get("message"):
        print(f"  ⚠ banner: {state['message']}")
    return state


def step3_paging(state: dict):
    step("3. Paging clamp")
    listing = state["list"]
    beyond = listing["totalPages"] + 5
    paged = POST("/api/console/list/page", {"page": beyond})
    served = paged["list"]["page"]
    if served > paged["list"]["totalPages"]:
        fail(f"Page {served} served beyond last page {paged['list']['totalPages']}")
    ok(f"Requested page {beyond}, served page {served}")
    POST("/api/console/list/page", {"page": 1})


def step4_detail(state: dict):
    step("4. First task detail")
    items = state["list"]["items"]
    if not items:
        ok("No tasks, skipping detail")
        return
    task_id = items[0]["taskId"]
    detail_state = POST(f"/api/console/views/detail/{task_id}")
    if detail_state["session"]["taskId"] != task_id:
        fail(f"Session opened {detail_state['session']['taskId']} instead of {task_id}")
    time.sleep(POLL_INTERVAL)
    detail = GET("/api/console/state")["session"]["detail"]
    if not detail:
        fail(f"Detail for {task_id} did not load")
    ok(f"Task {task_id}: {len(detail.get('outputSegments', []))} segments, "
       f"actions={items[0].get('actions')}")


def step5_back():
    step("5. Back to list")
    state = POST("/api/console/views/list")
    if state["session"]["mode"] is not None:
        fail(f"Session still open in {state['session']['mode']} mode")
    jobs = [job["id"] for job in state.get("jobs", [])]
    if "task_detail_poll" in jobs:
        fail("Detail poll still scheduled after leaving detail")
    ok(f"Back on list, jobs={jobs}")


# ── Main ─────────────────────────────────────────────────────

def main():
    print(f"\n🔬 Console smoke test — {BASE_URL}")
    print(f"   TIMEOUT={TIMEOUT_SEC}s  POLL={POLL_INTERVAL}s\n")

    try:
        step1_ping()
        state = step2_list()
        step3_paging(state)
        step4_detail(state)
        step5_back()
        print("\n  ✅ Smoke passed\n")
    except SmokeError as e:
        print(f"\n{'='*60}")
        print(f"  ❌ FAIL: {e}")
        print(f"{'='*60}\n")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\n  ⏹ Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
