"""
Environment facts provider — architecture and active locales.

Resolution order, per fact:
    override env var  >  system configuration (autoupdater.yml)  >  system defaults

The override variables exist so tests and image builders can pin the
facts without touching the machine:

    AUTOUPDATER_OVERRIDE_ARCHITECTURE=armhf
    AUTOUPDATER_OVERRIDE_LOCALES="pt_BR;en_GB"

A variable that is set but empty still overrides.
"""

from __future__ import annotations

import logging
import os
import platform
from collections.abc import Mapping, Sequence

from autoupdater.core.models.environment import EnvironmentFacts

logger = logging.getLogger(__name__)

ENV_OVERRIDE_ARCHITECTURE = "AUTOUPDATER_OVERRIDE_ARCHITECTURE"
ENV_OVERRIDE_LOCALES = "AUTOUPDATER_OVERRIDE_LOCALES"

# platform.machine() → Flatpak architecture names
_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
    "armv7l": "arm",
    "armv7": "arm",
    "armhf": "arm",
    "i386": "i386",
    "i486": "i386",
    "i586": "i386",
    "i686": "i386",
}

# Locale variables in the order gettext consults them
_LOCALE_VARS = ("LANGUAGE", "LC_ALL", "LC_MESSAGES", "LANG")


def system_architecture() -> str:
    """Flatpak name of the machine architecture."""
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def _normalize_locale(name: str) -> list[str]:
    """``pt_BR.UTF-8@euro`` → ``["pt_BR", "pt"]``."""
    name = name.strip()
    name = name.split("@", 1)[0].split(".", 1)[0]
    if not name or name in ("C", "POSIX"):
        return []
    variants = [name]
    language = name.split("_", 1)[0]
    if language != name:
        variants.append(language)
    return variants


def system_locales(environ: Mapping[str, str] | None = None) -> list[str]:
    """Active locales from the process locale variables, most preferred first."""
    environ = os.environ if environ is None else environ
    seen: list[str] = []
    for var in _LOCALE_VARS:
        value = environ.get(var, "")
        if not value:
            continue
        entries = value.split(":") if var == "LANGUAGE" else [value]
        for entry in entries:
            for locale in _normalize_locale(entry):
                if locale not in seen:
                    seen.append(locale)
    return seen


def parse_locale_list(value: str) -> list[str]:
    """Split a semicolon-separated override, dropping empty entries."""
    return [part.strip() for part in value.split(";") if part.strip()]


def resolve_environment_facts(
    architecture: str | None = None,
    locales: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> EnvironmentFacts:
    """Build the facts for this invocation.

    Args:
        architecture: Configured architecture (None = detect).
        locales: Configured locales (None = detect).
        environ: Environment mapping to read (default: ``os.environ``).

    Returns:
        EnvironmentFacts with overrides applied.
    """
    environ = os.environ if environ is None else environ

    if ENV_OVERRIDE_ARCHITECTURE in environ:
        arch = environ[ENV_OVERRIDE_ARCHITECTURE]
        logger.debug("Architecture overridden by %s: %r", ENV_OVERRIDE_ARCHITECTURE, arch)
    elif architecture is not None:
        arch = architecture
    else:
        arch = system_architecture()

    if ENV_OVERRIDE_LOCALES in environ:
        active = parse_locale_list(environ[ENV_OVERRIDE_LOCALES])
        logger.debug("Locales overridden by %s: %s", ENV_OVERRIDE_LOCALES, active)
    elif locales is not None:
        active = list(locales)
    else:
        active = system_locales(environ)

    return EnvironmentFacts(architecture=arch, locales=tuple(active))
