from __future__ import annotations

# Load .env before other imports that use env vars
from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import json

from gateway.config import GatewaySettings
from gateway.errors import PipelineError, problem
from gateway.logging_utils import log_event
from gateway.pipeline import GatewayPipeline


def build_pipeline() -> GatewayPipeline:
    return GatewayPipeline(settings=GatewaySettings.from_env())


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Run one URL through the gateway pipeline.")
    p.add_argument("--url", required=True)
    p.add_argument("--region", default=None, help="Region name, e.g. 'Germany'")
    p.add_argument("--out", default=None, help="Write the rewritten HTML here instead of stdout")
    args = p.parse_args(argv)

    pipeline = build_pipeline()
    try:
        result = asyncio.run(pipeline.fetch_page(args.url, args.region))
    except PipelineError as exc:
        payload = problem(code=exc.code, message=exc.message)
        print(json.dumps(payload.model_dump(exclude_none=True)))
        return 1

    log_event("fetch_page_job", url=result.source_url, region=result.region, ms=result.processing_time_ms)

    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(result.sanitized_html)
        print(f"WROTE path={args.out} title={result.title!r} fallback={result.used_fallback}")
    else:
        print(result.sanitized_html)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
