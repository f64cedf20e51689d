from __future__ import annotations

import argparse
import logging
import os
import time
from typing import Callable, List, Mapping, Optional, Sequence

from . import __version__
from .context import CancellationToken, RunContext, require_environment
from .errors import ConfigurationError, EnvironmentPreconditionError, RunCancelled
from .install_config import DEFAULT_CONFIG_NAME, load_install_config, with_env_overrides
from .lib.artifact_cache import ArtifactCache
from .lib.checksum import ChecksumVerifier
from .lib.download import Downloader
from .lib.pkg import PackageManager, detect_package_manager
from .lib.transport import Fetcher, default_fetchers
from .logging_utils import configure_logging, default_log_path
from .pipeline import Phase, PhaseOrchestrator
from .reporting import ConsoleReporter, Level, Reporter, select_reporter
from .signals import INTERRUPTED_EXIT_CODE, SignalController
from .steps import build_phases
from .summary import RunSummary
from .workspace import TempWorkspace, get_temp_root

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = INTERRUPTED_EXIT_CODE


def _truthy(v: Optional[str]) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "on"}


def _pick_reporter(tui: Optional[str], environ: Mapping[str, str], non_interactive: bool) -> Reporter:
    if non_interactive:
        return ConsoleReporter()
    return select_reporter(tui or environ.get("DEVBASE_TUI_MODE") or "gum")


def run(
    *,
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
    log_path: Optional[str] = None,
    non_interactive: bool = False,
    dry_run: bool = False,
    tui: Optional[str] = None,
    debug: bool = False,
    reporter: Optional[Reporter] = None,
    package_manager: Optional[PackageManager] = None,
    fetchers: Optional[Sequence[Fetcher]] = None,
    sleep: Callable[[float], None] = time.sleep,
    prompt: Callable[[str], str] = input,
    build: Callable[[RunContext], List[Phase]] = build_phases,
) -> int:
    """Run one provisioning session. Returns the process exit code (0, 1 or 130)."""

    env_map = dict(os.environ if environ is None else environ)
    debug = debug or _truthy(env_map.get("DEVBASE_DEBUG"))
    configure_logging(
        log_path or default_log_path(env_map.get("XDG_CACHE_HOME")),
        level=logging.DEBUG if debug else logging.INFO,
        also_console=debug,
    )
    logger.info("devbase-installer %s starting (non_interactive=%s, dry_run=%s)", __version__, non_interactive, dry_run)

    if reporter is None:
        try:
            reporter = _pick_reporter(tui, env_map, non_interactive)
        except ValueError as e:
            ConsoleReporter().report(Level.ERROR, str(e))
            return EXIT_FAILURE

    try:
        env = require_environment(env_map)
    except EnvironmentPreconditionError as e:
        logger.error("%s", e)
        reporter.report(Level.ERROR, str(e))
        return EXIT_FAILURE

    try:
        cfg_file = config_path or str(env.install_root / DEFAULT_CONFIG_NAME)
        cfg = with_env_overrides(load_install_config(cfg_file, required=config_path is not None), env_map)
    except ConfigurationError as e:
        logger.error("%s", e)
        reporter.report(Level.ERROR, str(e))
        return EXIT_FAILURE

    summary = RunSummary()
    cancel = CancellationToken()

    def warn(message: str) -> None:
        summary.warn_active(message)
        reporter.report(Level.WARNING, message)

    fetch_clients = list(fetchers) if fetchers is not None else default_fetchers()

    guard = SignalController(workspace=None, summary=summary, reporter=reporter, cancel=cancel)
    with guard:
        try:
            workspace = TempWorkspace.create(temp_root=get_temp_root(env_map))
            guard.workspace = workspace

            downloader = Downloader(
                cache=ArtifactCache(env.cache_dir),
                verifier=ChecksumVerifier(
                    fetchers=fetch_clients,
                    manifest_timeout=cfg.manifest_timeout_seconds,
                    work_dir=workspace.root / "manifests",
                ),
                fetchers=fetch_clients,
                sleep=sleep,
                warn=warn,
                strict_checksums=cfg.strict_checksums,
            )
            ctx = RunContext(
                env=env,
                config=cfg,
                reporter=reporter,
                summary=summary,
                workspace=workspace,
                downloader=downloader,
                package_manager=package_manager or detect_package_manager(),
                cancel=cancel,
                non_interactive=non_interactive,
                environ=env_map,
                prompt=prompt,
            )

            phases = build(ctx)
            if dry_run:
                reporter.report(Level.INFO, "Dry run: no changes will be made")
                for line in PhaseOrchestrator.plan(phases):
                    reporter.report(Level.INFO, line)
                return EXIT_OK

            orchestrator = PhaseOrchestrator(
                reporter=reporter,
                summary=summary,
                cancel=cancel,
                non_interactive=non_interactive,
            )
            result = orchestrator.run(phases)
        except (RunCancelled, KeyboardInterrupt):
            logger.warning("Run cancelled")
            reporter.report(Level.ERROR, "Installation interrupted")
            summary.emit_all(reporter)
            return EXIT_INTERRUPTED

    if not result.ok:
        phase = result.failed_phase.title if result.failed_phase else "?"
        reporter.report(
            Level.ERROR,
            f"Installation failed in {phase} at step '{result.failed_step}': {result.message}",
        )
        for line in summary.render():
            reporter.report(Level.INFO, line)
        return EXIT_FAILURE

    logger.info("Run completed with %d warning(s)", len(summary.warnings))
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="devbase-setup")
    p.add_argument("--non-interactive", action="store_true", help="Resolve preferences from env/saved/defaults")
    p.add_argument("--dry-run", action="store_true", help="Show the phase/step plan and exit")
    p.add_argument("--tui", choices=["gum", "plain", "none"], default=None, help="Output renderer")
    p.add_argument("--config", default=None, help="Path to install config (YAML)")
    p.add_argument("--log", default=None, help="Path to installer log")
    p.add_argument("--debug", action="store_true", help="Verbose logging, also to the console")
    p.add_argument("--version", action="version", version=f"devbase-installer {__version__}")

    args = p.parse_args(argv)

    return run(
        config_path=args.config,
        log_path=args.log,
        non_interactive=args.non_interactive,
        dry_run=args.dry_run,
        tui=args.tui,
        debug=args.debug,
    )
