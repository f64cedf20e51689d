from __future__ import annotations

import logging
from pathlib import Path

from ..context import RunContext
from ..errors import ConfigurationError
from ..pipeline import Phase, PhaseName, Severity
from ..preferences import (
    DEFAULT_PREFERENCES,
    ENV_PREFERENCES,
    PREFERENCES_NAME,
    apply_defaults,
    load_preferences,
    resolve_non_interactive,
    save_preferences,
)
from ..reporting import Level
from .base import bind
from .hooks import RunHookStep, find_hook

logger = logging.getLogger(__name__)

POST_CONFIGURATION_HOOK = "post-configuration"


def preferences_path(ctx: RunContext) -> Path:
    return ctx.env.config_dir / PREFERENCES_NAME


class LoadPreferencesStep:
    step_id = "10_load_preferences"
    name = "Load saved preferences"

    def run(self, ctx: RunContext) -> None:
        ctx.preferences = load_preferences(preferences_path(ctx))
        if ctx.preferences:
            logger.info("Loaded %d saved preference(s)", len(ctx.preferences))


class CollectPreferencesStep:
    """Ask the operator, offering env / saved / fallback values as defaults."""

    step_id = "20_collect_preferences"
    name = "Collect preferences"

    questions = (
        ("git_author", "Git author name", True),
        ("git_email", "Git email", True),
        ("theme", "Theme", False),
        ("editor", "Editor", False),
    )

    def run(self, ctx: RunContext) -> None:
        env_by_key = {key: var for var, key in ENV_PREFERENCES.items()}
        prefs = dict(ctx.preferences)

        for key, label, required in self.questions:
            default = ctx.environ.get(env_by_key.get(key, "")) or prefs.get(key) or DEFAULT_PREFERENCES.get(key)
            prompt = f"{label} [{default}]: " if default else f"{label}: "
            answer = ctx.prompt(prompt).strip()
            value = answer or default
            if required and not value:
                raise ConfigurationError(f"{label} is required")
            prefs[key] = value

        ctx.preferences = apply_defaults(prefs)


class ResolvePreferencesStep:
    step_id = "20_resolve_preferences"
    name = "Resolve preferences (non-interactive)"

    def run(self, ctx: RunContext) -> None:
        ctx.preferences = resolve_non_interactive(ctx.preferences, ctx.environ)
        ctx.reporter.report(
            Level.INFO,
            f"Git: {ctx.preferences['git_author']} <{ctx.preferences['git_email']}>, "
            f"theme: {ctx.preferences['theme']}, packs: {' '.join(ctx.preferences['packs'])}",
        )


class SavePreferencesStep:
    step_id = "30_save_preferences"
    name = "Save preferences"

    def run(self, ctx: RunContext) -> None:
        save_preferences(preferences_path(ctx), ctx.preferences)


def build_configuration_phase(ctx: RunContext) -> Phase:
    collect = ResolvePreferencesStep() if ctx.non_interactive else CollectPreferencesStep()
    steps = [
        bind(LoadPreferencesStep(), ctx, Severity.FATAL),
        bind(collect, ctx, Severity.FATAL),
        bind(SavePreferencesStep(), ctx, Severity.SOFT, side_effects="writes preferences.yaml"),
    ]

    hook = find_hook(ctx, POST_CONFIGURATION_HOOK)
    if hook is not None:
        steps.append(bind(RunHookStep(POST_CONFIGURATION_HOOK, hook), ctx, Severity.SOFT))

    return Phase(name=PhaseName.CONFIGURATION, steps=steps)
