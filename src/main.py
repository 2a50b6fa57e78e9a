from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from src.artifacts.writers import write_files, write_session_log, write_validation_report
from src.pipeline_generation import GenerationPipeline, ProgressEvent, create_adapter
from src.stack_config import get_stack_config, list_stack_ids, load_prompt_overrides, load_stack_config
from src.utils.io import write_json, write_text
from src.utils.time import utc_timestamp

logger = logging.getLogger(__name__)

DEFAULT_BRIEF_TEMPLATE = """# Project Brief

Describe the front-end project you want generated: its purpose, the pages it
needs, the sections on each page and any features (dark mode, animations,
forms) it should support.
"""

_API_KEYS = {"openai": "OPENAI_API_KEY", "gemini": "GEMINI_API_KEY"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scaffold Orchestrator")
    parser.add_argument("--mode", choices=["mock", "live"], required=True)
    parser.add_argument("--provider", choices=sorted(_API_KEYS), default="openai")
    parser.add_argument("--name", required=True, help="Project name")
    parser.add_argument("--brief", required=True, help="Markdown file with the project request")
    parser.add_argument("--stack", choices=list_stack_ids(), default="react-vite-tailwind")
    parser.add_argument("--stack-config", help="YAML or JSON stack file")
    parser.add_argument("--prompts-dir", help="Directory of <stage>.md prompt overrides")
    parser.add_argument("--feature", action="append", default=[], help="Enable a feature")
    parser.add_argument("--max-output-tokens", type=int)
    parser.add_argument("--temperature", type=float, default=0.2)
    parser.add_argument("--timeout", type=float, help="Overall timeout in seconds")
    parser.add_argument("--output-dir", default="runs")
    return parser


def _ensure_env(base_dir: Path, provider: str) -> None:
    load_dotenv(base_dir / ".env")
    key = _API_KEYS[provider]
    if not os.getenv(key):
        raise RuntimeError(
            f"Missing required API key: {key}. Create a .env file from .env.example and set the key."
        )


def _log_progress(event: ProgressEvent) -> None:
    logger.info("[progress] %3d%% %s", event.percentage, event.message)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    base_dir = Path(__file__).resolve().parents[1]
    run_dir = Path(args.output_dir) / utc_timestamp()
    inputs_dir = run_dir / "inputs"
    files_dir = run_dir / "files"
    inputs_dir.mkdir(parents=True, exist_ok=True)

    if args.max_output_tokens:
        os.environ["ORCH_MAX_OUTPUT_TOKENS"] = str(args.max_output_tokens)
    os.environ["ORCH_TEMPERATURE"] = str(args.temperature)

    if args.mode == "live":
        _ensure_env(base_dir, args.provider)

    brief_path = Path(args.brief)
    if not brief_path.exists():
        write_text(brief_path, DEFAULT_BRIEF_TEMPLATE)
        logger.warning("Brief template created at %s. Please edit it with project details.", brief_path)
    brief = brief_path.read_text(encoding="utf-8")
    write_text(inputs_dir / "brief.md", brief)

    stack = load_stack_config(Path(args.stack_config)) if args.stack_config else get_stack_config(args.stack)
    if args.prompts_dir:
        stack = stack.with_prompts(load_prompt_overrides(Path(args.prompts_dir)))

    adapter = create_adapter(args.mode, args.provider)
    pipeline = GenerationPipeline(stack, adapter, on_progress=_log_progress)
    result = asyncio.run(
        pipeline.generate(
            args.name,
            brief,
            enabled_features=args.feature,
            timeout=args.timeout,
        )
    )

    summary = result.to_dict()
    summary.pop("files", None)
    if result.report is not None and result.report.quality is not None:
        summary["quality"] = result.report.quality.to_dict()
    write_json(run_dir / "result.json", summary)
    write_session_log(run_dir / "session.json", pipeline.session)
    if not result.success:
        logger.error("Generation failed: %s", result.error)
        return 1

    write_files(files_dir, result.files)
    if result.report is not None:
        write_validation_report(run_dir / "quality_report.md", result.report, title=f"{args.name} Quality Report")
    logger.info("Wrote %d files to %s (valid=%s)", len(result.files), files_dir, result.valid)
    return 0 if result.valid else 2


if __name__ == "__main__":
    sys.exit(main())
