#!/usr/bin/env python3
"""
Setup Verification Script

Checks configuration, the prompt/detector contract and the backing
services before the mediator is started.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv(project_root / ".env")

GREEN, RED, YELLOW, RESET = "\033[92m", "\033[91m", "\033[93m", "\033[0m"


def print_header(title: str) -> None:
    print(f"\n{'='*60}\n {title}\n{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    status = f"{GREEN}[PASS]{RESET}" if success else f"{RED}[FAIL]{RESET}"
    msg = f" - {message}" if message else ""
    print(f"  {status} {name}{msg}")


def mask(value: str) -> str:
    return f"{value[:8]}...{value[-4:]}" if len(value) > 12 else "***"


def check_environment() -> dict[str, bool]:
    """Required variables; REDIS_URL is reported but optional."""
    results = {}
    for var, secret in (("ANTHROPIC_API_KEY", True), ("DATABASE_URL", False), ("REDIS_URL", False)):
        value = os.getenv(var, "")
        ok = bool(value) and value != "your-api-key-here"
        shown = (mask(value) if secret else value) if ok else "not set"
        print_result(var, ok, shown)
        results[var] = ok

    from app.config import settings
    print_result("CLAUDE_MEDIATOR_MODEL", True, settings.claude_mediator_model)
    print_result("STARTER_POLICY", True, settings.starter_policy)
    print_result("STATUS_MAX_WAIT_SECONDS", True, str(settings.status_max_wait_seconds))
    return results


def check_prompt_markers() -> bool:
    """Both prompts must ask for a phrase the summary detector recognizes."""
    from app.core.mediation.detector import MarkerSummaryDetector
    from app.core.mediation.prompts import FIRST_PARTNER_PROMPT, SECOND_PARTNER_PROMPT

    detector = MarkerSummaryDetector()
    ok = True
    for name, template in (
        ("First partner prompt", FIRST_PARTNER_PROMPT),
        ("Second partner prompt", SECOND_PARTNER_PROMPT),
    ):
        marker = detector.matching_marker(template)
        print_result(name, marker is not None, marker or "no SUMMARY_MARKERS phrase found")
        ok = ok and marker is not None
    return ok


async def check_postgres() -> bool:
    from app.infra.database import check_db_health, close_db

    healthy = await check_db_health()
    print_result("PostgreSQL", healthy, "connected" if healthy else "connection failed")
    await close_db()
    return healthy


async def check_redis() -> bool:
    from app.infra.redis import RedisClient, check_redis_health

    healthy = await check_redis_health()
    print_result(
        "Redis",
        healthy,
        "connected" if healthy else "unavailable, status waits stay in-process",
    )
    await RedisClient.close()
    return healthy


async def check_anthropic() -> bool:
    """One tiny completion through the mediator's own client."""
    from app.infra.claude import ClaudeClient, ClaudeClientError

    try:
        client = ClaudeClient()
        response = await client.complete(
            messages=[{"role": "user", "content": "Hi"}],
            max_tokens=10,
            use_fallback_on_error=False,
        )
        await client.close()
    except ClaudeClientError as e:
        print_result("Anthropic API", False, str(e)[:60])
        return False

    print_result("Anthropic API", True, f"{response.model} answered in {response.latency_ms:.0f}ms")
    return True


async def main() -> int:
    print_header("Partner Mediator - Setup Verification")

    print_header("Environment")
    env = check_environment()

    print_header("Prompt Contract")
    markers_ok = check_prompt_markers()

    print_header("Service Connections")
    db_ok = await check_postgres() if env["DATABASE_URL"] else False
    if env["REDIS_URL"]:
        await check_redis()
    claude_ok = await check_anthropic() if env["ANTHROPIC_API_KEY"] else False

    print_header("Summary")
    if not (db_ok and claude_ok):
        print(f"\n  {RED}CRITICAL: PostgreSQL and the Anthropic API are required.{RESET}")
        if not env["ANTHROPIC_API_KEY"]:
            print("  Add to .env: ANTHROPIC_API_KEY=sk-ant-...")
        return 1
    if not markers_ok:
        print(f"\n  {YELLOW}WARNING: summaries will not be detected with these prompts.{RESET}")
        return 1

    print(f"\n  {GREEN}All checks passed!{RESET}")
    print("  Start the mediator with: uvicorn app.main:app --reload\n")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
