#!/usr/bin/env python3
"""
Smoke test for a running powcaptcha deployment.

Plays the widget's role against a live server, stdlib only so it runs
anywhere the server is reachable:

1. Health check
2. Fetch a challenge (GET /altcha)
3. Solve it and submit (POST /submit)
4. Submit a wrong number and expect a 400

Usage:
    ./scripts/smoke-test.py http://localhost:3000
    ./scripts/smoke-test.py http://localhost:3000 --health-only
"""

import argparse
import base64
import hashlib
import json
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

DEFAULT_TIMEOUT_SECONDS = 30.0
BODY_PREVIEW_CHARS = 200

HASHLIB_NAMES = {"SHA-1": "sha1", "SHA-256": "sha256", "SHA-512": "sha512"}


class ApiError(RuntimeError):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"API error {status_code}: {body[:BODY_PREVIEW_CHARS]}")
        self.status_code = status_code
        self.body = body


def log(msg: str) -> None:
    """Print timestamped log message."""
    print(f"[{datetime.now().strftime('%H:%M:%S')}] {msg}", flush=True)


@dataclass
class HttpClient:
    base_url: str
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def request(
        self, method: str, path: str, *, form: dict[str, str] | None = None
    ) -> tuple[int, bytes]:
        headers = {}
        body = None
        if form is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            body = urlencode(form).encode()

        request = Request(f"{self.base_url}{path}", data=body, headers=headers, method=method)
        try:
            with urlopen(request, timeout=self.timeout_seconds) as response:
                return response.getcode(), response.read()
        except HTTPError as e:
            return e.code, e.read() if e.fp else b""
        except (URLError, TimeoutError) as e:
            raise RuntimeError(f"Network error: {e}") from e

    def json(
        self, method: str, path: str, *, form: dict[str, str] | None = None
    ) -> dict[str, Any]:
        status, body = self.request(method, path, form=form)
        if status < 200 or status >= 300:
            raise ApiError(status, body.decode("utf-8", errors="replace"))
        return json.loads(body.decode())


def wait_for_health(client: HttpClient, max_attempts: int = 30, delay: float = 2.0) -> bool:
    """Wait for /health to return healthy status."""
    for attempt in range(1, max_attempts + 1):
        try:
            status, body = client.request("GET", "/health")
            if status == 200 and json.loads(body.decode()).get("status") == "healthy":
                log(f"Health check passed (attempt {attempt})")
                return True
        except (json.JSONDecodeError, RuntimeError):
            pass

        if attempt < max_attempts:
            time.sleep(delay)

    return False


def solve_challenge(challenge: dict[str, Any]) -> int:
    """Linear search over [0, maxnumber] for the number behind the challenge hash."""
    name = HASHLIB_NAMES[challenge["algorithm"]]
    start_time = time.time()

    for number in range(challenge["maxnumber"] + 1):
        digest = hashlib.new(name, f"{challenge['salt']}{number}".encode()).hexdigest()
        if digest == challenge["challenge"]:
            log(f"Challenge solved: number={number} ({time.time() - start_time:.2f}s)")
            return number

    raise RuntimeError("Challenge has no solution within maxnumber")


def encode_solution(challenge: dict[str, Any], number: int) -> str:
    solution = {
        "algorithm": challenge["algorithm"],
        "challenge": challenge["challenge"],
        "number": number,
        "salt": challenge["salt"],
        "signature": challenge["signature"],
    }
    return base64.b64encode(json.dumps(solution).encode()).decode()


@dataclass
class SmokeContext:
    client: HttpClient
    max_health_attempts: int

    challenge: dict[str, Any] | None = None
    number: int | None = None

    def require_challenge(self) -> dict[str, Any]:
        if self.challenge is None:
            raise RuntimeError("Missing challenge (step ordering bug)")
        return self.challenge

    def require_number(self) -> int:
        if self.number is None:
            raise RuntimeError("Missing solved number (step ordering bug)")
        return self.number


@dataclass(frozen=True)
class Step:
    name: str
    run: Callable[[SmokeContext], None]


def run_steps(ctx: SmokeContext, steps: list[Step]) -> bool:
    overall_start = time.time()

    for step in steps:
        log(f"STEP: {step.name}")
        start = time.time()
        try:
            step.run(ctx)
        except Exception as e:
            log(f"FAILED: {step.name} ({time.time() - start:.2f}s) - {e}")
            return False
        log(f"OK: {step.name} ({time.time() - start:.2f}s)")

    log(f"Total: {time.time() - overall_start:.2f}s")
    return True


def step_health(ctx: SmokeContext) -> None:
    if not wait_for_health(ctx.client, max_attempts=ctx.max_health_attempts):
        raise RuntimeError("Health check failed")


def step_challenge(ctx: SmokeContext) -> None:
    challenge = ctx.client.json("GET", "/altcha")
    missing = {"algorithm", "challenge", "maxnumber", "salt", "signature"} - set(challenge)
    if missing:
        raise RuntimeError(f"Challenge missing fields: {sorted(missing)}")
    log(f"Got challenge: algorithm={challenge['algorithm']} maxnumber={challenge['maxnumber']}")
    ctx.challenge = challenge


def step_submit(ctx: SmokeContext) -> None:
    challenge = ctx.require_challenge()
    ctx.number = solve_challenge(challenge)
    result = ctx.client.json(
        "POST",
        "/submit",
        form={"altcha": encode_solution(challenge, ctx.number), "name": "smoke-test"},
    )
    if result.get("success") is not True:
        raise RuntimeError(f"Unexpected submit response: {result}")


def step_wrong_number(ctx: SmokeContext) -> None:
    challenge = ctx.require_challenge()
    wrong = (ctx.require_number() + 1) % (challenge["maxnumber"] + 1)
    status, body = ctx.client.request(
        "POST", "/submit", form={"altcha": encode_solution(challenge, wrong)}
    )
    if status != 400:
        raise RuntimeError(f"Expected 400 for wrong number, got {status}: {body[:200]!r}")


def main() -> int:
    parser = argparse.ArgumentParser(description="powcaptcha smoke test")
    parser.add_argument("base_url", help="Base URL (e.g., http://localhost:3000)")
    parser.add_argument(
        "--health-only",
        action="store_true",
        help="Only run health check, skip full flow",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"HTTP timeout seconds (default: {DEFAULT_TIMEOUT_SECONDS:g})",
    )
    parser.add_argument(
        "--max-health-attempts",
        type=int,
        default=30,
        help="Max health check attempts (default: 30)",
    )
    args = parser.parse_args()

    try:
        client = HttpClient(base_url=args.base_url.rstrip("/"), timeout_seconds=args.timeout)
        ctx = SmokeContext(client=client, max_health_attempts=args.max_health_attempts)

        steps = [Step("health", step_health)]
        if args.health_only:
            log("Health-only mode: skipping full flow")
        else:
            steps.extend(
                [
                    Step("challenge", step_challenge),
                    Step("submit solution", step_submit),
                    Step("reject wrong number", step_wrong_number),
                ]
            )

        return 0 if run_steps(ctx, steps) else 1
    except Exception as e:
        log(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
