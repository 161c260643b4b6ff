#!/usr/bin/env python3
"""
Grade a landing page from the command line.

Runs the full client flow (preview screenshot, analysis, optional email
capture) either in-process or against a running API server, then prints the
report as JSON.

Usage:
    python3 scripts/analyze_url.py https://example.com
    python3 scripts/analyze_url.py https://example.com --force-rescan --component cta
    python3 scripts/analyze_url.py https://example.com --email me@example.com --api http://localhost:8000
"""

import argparse
import asyncio
import json
import os
import sys

# Add parent directory to path to import project modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv

load_dotenv()

from core.log_config import setup_logging
from session import HttpBackend, LocalBackend, SessionController, SessionState


def build_backend(api_base_url):
    if api_base_url:
        return HttpBackend(api_base_url)

    from analyzer.pipeline import create_pipeline
    from core.browser import get_browser_provider
    from core.cache import get_report_store
    from utils.email import EmailDeliveryClient
    from utils.screenshots import ScreenshotService

    provider = get_browser_provider()
    return LocalBackend(
        pipeline=create_pipeline(provider),
        screenshot_service=ScreenshotService(provider),
        email_client=EmailDeliveryClient(),
        report_store=get_report_store(),
    )


async def run(args) -> int:
    backend = build_backend(args.api)
    controller = SessionController(
        backend,
        on_change=lambda s: print(f"[{s.state.value}] {s.current_url or ''}", file=sys.stderr),
    )

    try:
        analysis = asyncio.create_task(
            controller.submit(args.url, force_rescan=args.force_rescan, component=args.component)
        )
        # Email may be given before the analysis id exists; it is flushed on completion
        if args.email:
            await asyncio.sleep(0)
            await controller.submit_email(args.email)

        session = await analysis
        await controller.drain()
    finally:
        await backend.close()
        if not args.api:
            from core.browser import close_browser_provider

            await close_browser_provider()

    if session.state == SessionState.ERRORED:
        print(json.dumps({"error": session.error}, indent=2))
        return 1

    output = session.report.model_dump(mode="json", by_alias=True)
    output["screenshotUrl"] = session.screenshot_url
    output["email"] = session.email.status.value
    print(json.dumps(output, indent=2))
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Grade a landing page")
    parser.add_argument("url", help="URL of the page to analyze")
    parser.add_argument(
        "--force-rescan",
        action="store_true",
        help="Ignore any cached report and analyze again",
    )
    parser.add_argument(
        "--component",
        default="all",
        help="Analyzer to run: all, speed, font, image or cta (default: all)",
    )
    parser.add_argument("--email", help="Email address to attach to the analysis")
    parser.add_argument(
        "--api",
        help="Base URL of a running API server (default: analyze in-process)",
    )
    args = parser.parse_args()

    setup_logging()

    try:
        sys.exit(asyncio.run(run(args)))
    except ValueError as e:
        print(json.dumps({"error": str(e)}, indent=2))
        sys.exit(2)


if __name__ == "__main__":
    main()
