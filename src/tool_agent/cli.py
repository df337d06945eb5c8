"""
Command-line interface for Tool-Agent.
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path

import structlog
from pydantic import ValidationError

from .config import get_settings

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="tool-agent",
        description="Tool-Agent - a tool-using assistant with long-term memory",
    )
    parser.add_argument("--owner", default="local", help="Owner id used for memory and history")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Start an interactive chat")
    chat_parser.add_argument("--conversation", help="Conversation id to resume")

    ask_parser = subparsers.add_parser("ask", help="Ask a single question")
    ask_parser.add_argument("query", help="The question to ask")
    ask_parser.add_argument("--conversation", help="Conversation id to continue")

    tools_parser = subparsers.add_parser("tools", help="Show the tool reference given to the model")
    tools_parser.add_argument("--json", action="store_true", help="Print parameter schemas as JSON")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    subparsers.add_parser("init", help="Initialize (create .env, database, artifacts directory)")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        settings = get_settings()
    except ValidationError as e:
        print("Configuration errors:")
        for error in e.errors():
            print(f"   - {error['msg']}")
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(message)s",
    )

    if args.command == "chat":
        asyncio.run(run_chat(args.owner, args.conversation))
    elif args.command == "ask":
        asyncio.run(run_ask(args.query, args.owner, args.conversation))
    elif args.command == "tools":
        show_tools(args.json)
    elif args.command == "config":
        if not show_config(args.check):
            sys.exit(1)
    elif args.command == "init":
        asyncio.run(init_agent())
    else:
        parser.print_help()


def _print_reply(reply) -> None:
    print(f"\n{reply.content}\n")
    details = [f"state={reply.state.value}", f"iterations={reply.iterations}"]
    if reply.tools_used:
        details.append(f"tools={', '.join(reply.tools_used)}")
    if reply.artifact:
        details.append(f"artifact={reply.artifact}")
    print(f"[{' | '.join(details)}]")


async def run_ask(query: str, owner_id: str, conversation_id: str | None) -> None:
    """Answer one question and exit."""
    from .agent import build_orchestrator

    orchestrator = await build_orchestrator()
    try:
        reply = await orchestrator.handle(query, owner_id, conversation_id or uuid.uuid4().hex)
        _print_reply(reply)
    finally:
        await orchestrator.aclose()


async def run_chat(owner_id: str, conversation_id: str | None) -> None:
    """Interactive read-eval-print loop."""
    from .agent import build_orchestrator

    conversation_id = conversation_id or uuid.uuid4().hex
    orchestrator = await build_orchestrator()
    print(f"Conversation {conversation_id}. Type 'exit' or press Ctrl-D to quit.")

    try:
        while True:
            try:
                query = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break
            query = query.strip()
            if not query:
                continue
            if query.lower() in ("exit", "quit"):
                break

            reply = await orchestrator.handle(query, owner_id, conversation_id)
            _print_reply(reply)
    finally:
        await orchestrator.aclose()


def show_tools(as_json: bool) -> None:
    """Print the tool catalog."""
    from .tools import ToolRegistry

    registry = ToolRegistry()
    if as_json:
        payload = [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.get_parameters_schema(),
            }
            for tool in registry.definitions()
        ]
        print(json.dumps(payload, indent=2))
    else:
        print(registry.format_reference())


def show_config(check: bool) -> bool:
    """Show current configuration. Returns False when the check finds errors."""
    settings = get_settings()
    llm_config = settings.get_llm_config()
    limits = settings.agent_limits()

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== Tool-Agent Configuration ===\n")

    print("Completion service:")
    print(f"  Provider: {llm_config.provider}")
    print(f"  Model: {llm_config.model}")
    print(f"  Base URL: {llm_config.base_url or '(provider default)'}")
    print(f"  API Key: {mask(llm_config.api_key)}")
    print(f"  Embedding Model: {settings.embedding_model}")

    print("\nAgent limits:")
    print(f"  Max Iterations: {limits.max_iterations}")
    print(f"  Tool Timeout: {limits.tool_timeout:g}s")
    print(f"  Model Timeout: {limits.model_timeout:g}s")
    print(f"  Fetch Allowlist: {', '.join(sorted(limits.allowed_fetch_hosts)) or '(empty)'}")

    print("\nTools:")
    print(f"  Tavily Key: {mask(settings.tavily_api_key)}")
    print(f"  ComfyUI URL: {settings.comfyui_url}")
    print(f"  Artifacts: {settings.artifacts_dir}")

    print("\nMemory:")
    print(f"  Summarize After: {settings.summarize_after_turns} turns")
    print(f"  Keep Recent: {settings.summary_keep_recent} turns")
    print(f"  Recall Limit: {settings.recall_limit}")

    print("\nDatabase:")
    print(f"  URL: {settings.database_url}")

    if not check:
        return True

    print("\n=== Configuration Check ===\n")
    errors = []
    warnings = []

    if llm_config.provider != "ollama" and not llm_config.api_key:
        errors.append(f"LLM_API_KEY is required for provider '{llm_config.provider}'")

    if not limits.allowed_fetch_hosts:
        warnings.append("FETCH_ALLOWED_HOSTS is empty - fetch_url will reject every URL")

    if not settings.tavily_api_key:
        warnings.append("TAVILY_API_KEY not set - web_search uses DuckDuckGo instant answers")

    if errors:
        print("Errors:")
        for e in errors:
            print(f"   - {e}")

    if warnings:
        print("Warnings:")
        for w in warnings:
            print(f"   - {w}")

    if not errors and not warnings:
        print("Configuration looks good!")
    elif not errors:
        print("\nConfiguration is valid (with warnings)")
    else:
        print("\nConfiguration has errors - fix them before starting")

    return not errors


async def init_agent() -> None:
    """Create a default .env, the database and the artifacts directory."""
    from .models import init_database

    settings = get_settings()
    env_file = Path(".env")

    if not env_file.exists():
        env_content = """# Tool-Agent Configuration

# Completion service (ollama, openai or openrouter)
LLM_PROVIDER=ollama
LLM_MODEL=qwen3:14b
# LLM_API_KEY=
# LLM_BASE_URL=
EMBEDDING_MODEL=nomic-embed-text

# Tools
# TAVILY_API_KEY=
COMFYUI_URL=http://localhost:8188
ARTIFACTS_DIR=./data/artifacts

# Memory
SUMMARIZE_AFTER_TURNS=15
SUMMARY_KEEP_RECENT=6

# Database
DATABASE_URL=sqlite+aiosqlite:///./data/agent.db
"""
        env_file.write_text(env_content)
        print(f"Created {env_file}")
    else:
        print(f"{env_file} already exists")

    session_factory = await init_database(settings.database_url)
    await session_factory.kw["bind"].dispose()
    print(f"Initialized database at {settings.database_url}")

    Path(settings.artifacts_dir).mkdir(parents=True, exist_ok=True)
    print(f"Created {settings.artifacts_dir}")

    print("\n=== Next Steps ===")
    print("1. Edit .env and point LLM_PROVIDER / LLM_MODEL at your completion service")
    print("2. Run: tool-agent config --check")
    print("3. Run: tool-agent chat")


if __name__ == "__main__":
    main()
