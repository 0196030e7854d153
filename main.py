"""Main CLI entrypoint for the study planner."""
import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file BEFORE importing modules that depend on them
load_dotenv()

from pydantic import ValidationError

from database.connection import get_db_path, init_db
from shared.config import Configuration
from shared.logs import enable_planner_logging
from workflows.study_plan import PlanRequest, PlanningInputError, StudyPlanOrchestrator

LOG_LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}


async def plan(request_path: Path, provider: str = None, model: str = None, save: bool = False) -> int:
    """Generate a study plan for the request file and print it as JSON."""
    try:
        request = PlanRequest.model_validate_json(request_path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        print(f"Invalid request file {request_path}: {e}")
        return 2

    if provider:
        request.provider = provider
    if model:
        request.model = model

    config = Configuration()
    if provider:
        config.provider = provider
    try:
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}")
        print("\nPlease ensure:")
        print("1. You have a .env file with the API key for your provider")
        print("2. LLM_PROVIDER is one of anthropic, google, openai")
        return 2

    init_db()
    orchestrator = StudyPlanOrchestrator(config)
    try:
        outcome = await orchestrator.generate(request)
    except PlanningInputError as e:
        print(f"Cannot plan: {e}")
        return 2

    print(outcome.summary())
    print(f"Provider: {outcome.provider} ({outcome.model}) | "
          f"tokens in={outcome.usage.input_tokens} out={outcome.usage.output_tokens} | "
          f"cost=${outcome.usage.cost_usd:.4f}")
    print(json.dumps({
        "status": outcome.status,
        "events": outcome.events,
        "unscheduled": outcome.unscheduled,
        "reasoning": outcome.reasoning,
    }, indent=2, ensure_ascii=False))

    if outcome.status == "failed":
        return 1

    if save:
        saved = orchestrator.save(outcome)
        print(f"Saved schedule {saved.schedule_id}: {saved.saved} events, {len(saved.skipped)} skipped")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Calendar-aware study planner")
    parser.add_argument("--log", action="store_true", help="Enable planner logging to console and logs/planner.log")
    parser.add_argument("--log-level", default="info", choices=list(LOG_LEVELS), help="Logging level when --log is set")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Generate a study plan from a JSON request file")
    plan_parser.add_argument("request", type=Path, help="Path to the plan request JSON")
    plan_parser.add_argument("--provider", help="Override LLM_PROVIDER (anthropic, google, openai, claude, gemini)")
    plan_parser.add_argument("--model", help="Override the model name")
    plan_parser.add_argument("--save", action="store_true", help="Persist the plan to the database")

    subparsers.add_parser("init-db", help="Create the database tables")

    args = parser.parse_args(argv)
    if args.log:
        enable_planner_logging(level=LOG_LEVELS[args.log_level])

    if args.command == "init-db":
        init_db()
        print(f"Database initialized at: {get_db_path()}")
        return 0

    return asyncio.run(plan(args.request, provider=args.provider, model=args.model, save=args.save))


if __name__ == "__main__":
    sys.exit(main())
