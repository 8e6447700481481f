#!/usr/bin/env python3
"""
aicommit CLI

Generate commit messages for staged changes, commit, and keep a branch in
sync with its remote while resolving merge conflicts.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .activity_log import ActivityLog
from .circuit_breaker import CircuitBreakerRegistry
from .config import UserConfig
from .conflict.pipeline import ConflictResolutionPipeline, format_escalation
from .errors import AllProvidersFailedError, ConfigurationError, RepositoryError
from .git import GitRepository
from .orchestrator import ProviderOrchestrator
from .prompt_io import ConsolePromptIO
from .providers import build_providers, get_provider, list_providers
from .workflow import AutoCommitWorkflow

logger = logging.getLogger(__name__)


# ============================================================================
# Wiring
# ============================================================================

def load_config(args) -> UserConfig:
    """Load user config and apply command line overrides."""
    try:
        config = UserConfig.load(Path(args.config) if args.config else None)
    except ConfigurationError as e:
        print(f"Error: {e}")
        sys.exit(2)

    if args.provider:
        config.set("providers.preferred", args.provider, persist=False)
    if args.parallel:
        config.set("generation.parallel", True, persist=False)
    if args.count:
        config.set("generation.count", args.count, persist=False)
    if getattr(args, "no_ai", False):
        config.set("resolution.disable_llm", True, persist=False)
    return config


def build_orchestrator(config: UserConfig, activity_log: ActivityLog) -> ProviderOrchestrator:
    generation = config.generation
    return ProviderOrchestrator(
        build_providers(config),
        breakers=CircuitBreakerRegistry(config.circuit_breaker),
        token_threshold=generation.get("token_threshold", 4000),
        max_chunk_chars=generation.get("max_chunk_chars", 12000),
        call_timeout=generation.get("call_timeout", 60.0),
        parallel=generation.get("parallel", False),
        activity_log=activity_log,
    )


def open_repository(args) -> GitRepository:
    repo = GitRepository(Path(args.dir))
    if not repo.is_repository():
        print(f"Error: {Path(args.dir).resolve()} is not a git repository")
        sys.exit(2)
    return repo


def build_workflow(args) -> AutoCommitWorkflow:
    config = load_config(args)
    repo = open_repository(args)
    activity_log = ActivityLog(repo.repo_path)
    orchestrator = build_orchestrator(config, activity_log)
    pipeline = ConflictResolutionPipeline(
        repo.repo_path,
        orchestrator=orchestrator,
        config=config,
        context_lines=config.resolution.get("context_lines", 3),
        activity_log=activity_log,
        repository=repo,
    )
    return AutoCommitWorkflow(repo, orchestrator, pipeline, ConsolePromptIO(), config, activity_log)


def run_async(workflow: AutoCommitWorkflow, coro):
    """Run a coroutine, closing provider HTTP clients afterwards."""
    async def runner():
        try:
            return await coro
        finally:
            for provider in workflow.orchestrator.providers.values():
                await provider.aclose()

    return asyncio.run(runner())


# ============================================================================
# Commands
# ============================================================================

def cmd_generate(args):
    """Print candidate messages for the staged diff."""
    workflow = build_workflow(args)
    diff = workflow.repo.staged_diff()
    if not diff.strip():
        print("No staged changes. Stage files with `git add` first.")
        sys.exit(1)

    try:
        messages = run_async(workflow, workflow.generate_messages(diff))
    except AllProvidersFailedError as e:
        print(f"Error: {e}")
        sys.exit(1)

    for i, message in enumerate(messages, 1):
        print(f"{i}. {message}")


def cmd_commit(args):
    """Generate, select and commit."""
    workflow = build_workflow(args)
    try:
        committed = run_async(workflow, workflow.commit_changes())
    except RepositoryError as e:
        print(f"Error: {e}")
        sys.exit(2)

    if committed is None:
        sys.exit(1)
    message, sha = committed
    print(f"✓ [{sha[:8]}] {message}")


def cmd_auto(args):
    """Commit, pull and resolve, push."""
    workflow = build_workflow(args)
    result = run_async(workflow, workflow.run(push=not args.no_push, pull=not args.no_pull))

    if result.committed:
        print(f"✓ Committed [{result.commit_sha[:8]}] {result.message}")
    if result.resolution is not None:
        print(
            f"✓ Conflicts: {result.resolution.resolved_count} resolved automatically, "
            f"{result.resolution.escalated_count} manually"
        )
    if result.pulled:
        print("✓ Pulled")
    if result.pushed:
        print("✓ Pushed")
    for error in result.errors:
        print(f"✗ {error}")
    if result.aborted:
        print("✗ Aborted; resolve the remaining conflicts and commit the merge yourself")

    sys.exit(0 if result.success else 1)


def cmd_resolve(args):
    """Run the resolution pipeline over conflicted files."""
    workflow = build_workflow(args)
    repo = workflow.repo
    paths = args.paths or repo.conflicted_paths()
    if not paths:
        print("No git conflicts detected.")
        sys.exit(0)

    print(f"{len(paths)} file(s) in conflict:")
    for path in paths:
        print(f"  - {path}")
    print()

    result = run_async(workflow, workflow.pipeline.resolve_all(paths))

    for outcome in result.outcomes:
        if outcome.success:
            strategy = outcome.strategy_used.value if outcome.strategy_used else "none"
            print(f"  ✓ {outcome.file_path} ({strategy}: {outcome.rule})")
        elif outcome.failed:
            print(f"  ✗ {outcome.file_path}: {outcome.detail}")
        else:
            print(format_escalation(outcome))

    if result.resolved_paths and not args.no_stage:
        repo.stage(result.resolved_paths)

    print()
    print(
        f"Resolved {result.resolved_count}/{result.total_files}, "
        f"escalated {result.escalated_count}, failed {result.failed_count}"
    )
    sys.exit(0 if result.all_resolved else 1)


def cmd_providers(args):
    """List providers and whether they are usable."""
    config = load_config(args)
    preferred = config.preferred_provider
    order = config.provider_order + [n for n in list_providers() if n not in config.provider_order]

    print("Providers (in fallback order):")
    for name in order:
        try:
            provider = get_provider(name, **config.provider_settings(name))
        except ValueError as e:
            print(f"  ? {name}: {e}")
            continue
        status = "available" if provider.is_available() else "not configured"
        marker = " (preferred)" if name == preferred else ""
        print(f"  {name:<12} {status:<15} model={provider.get_default_model()}{marker}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="aicommit",
        description="AI commit messages and merge conflict resolution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  aicommit generate
  aicommit commit --provider groq
  aicommit auto --no-push
  aicommit resolve src/app.py
  aicommit providers
        """
    )

    parser.add_argument('--dir', '-d', default='.', help='Repository directory (default: current)')
    parser.add_argument('--config', help='Config file (default: ~/.aicommit/config.yaml)')
    parser.add_argument('--provider', help='Preferred provider (tried first)')
    parser.add_argument('--parallel', action='store_true', help='Query all providers and merge candidates')
    parser.add_argument('--count', type=int, help='Number of candidate messages')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    generate_parser = subparsers.add_parser('generate', help='Print commit message candidates for staged changes')
    generate_parser.set_defaults(func=cmd_generate)

    commit_parser = subparsers.add_parser('commit', help='Stage all, generate a message and commit')
    commit_parser.set_defaults(func=cmd_commit)

    auto_parser = subparsers.add_parser('auto', help='Commit, pull with conflict resolution, push')
    auto_parser.add_argument('--no-push', action='store_true', help='Do not push')
    auto_parser.add_argument('--no-pull', action='store_true', help='Do not pull')
    auto_parser.set_defaults(func=cmd_auto)

    resolve_parser = subparsers.add_parser('resolve', help='Resolve merge conflicts')
    resolve_parser.add_argument('paths', nargs='*', help='Files to resolve (default: all conflicted)')
    resolve_parser.add_argument('--no-ai', action='store_true', help='Skip the AI stage')
    resolve_parser.add_argument('--no-stage', action='store_true', help='Do not stage resolved files')
    resolve_parser.set_defaults(func=cmd_resolve)

    providers_parser = subparsers.add_parser('providers', help='List providers and availability')
    providers_parser.set_defaults(func=cmd_providers)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == '__main__':
    main()
