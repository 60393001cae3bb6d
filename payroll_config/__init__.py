"""
payroll_config -- entrypoint for payroll engine configuration.

Responsibility:
    Provides ``get_engine_config()``, which loads a YAML configuration
    file (the bundled default when no path is given) into a typed
    ``EngineConfiguration``: payroll, leave and termination settings, the
    leave type catalogue and the working calendar.

Architecture position:
    Configuration -- sits above ``payroll_kernel``, ``payroll_engines``
    and the module config schemas. The kernel and engines MUST NEVER
    import from ``payroll_config``.

Invariants enforced:
    - Deterministic loading: the same YAML always produces the same
      ``EngineConfiguration.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``ValueError`` / ``KeyError`` -- invalid or incomplete configuration.

Audit relevance:
    Every successful ``get_engine_config()`` call emits a
    ``PAYROLL_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each payrun to the configuration that governed it.
"""

from __future__ import annotations

from pathlib import Path

from payroll_config.loader import compute_checksum, load_engine_config, parse_engine_config
from payroll_config.schema import EngineConfiguration
from payroll_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "default.yaml"


def get_engine_config(path: Path | None = None) -> EngineConfiguration:
    """Load the engine configuration from ``path`` (default: bundled defaults)."""
    config = load_engine_config(path or DEFAULT_CONFIG_PATH)
    _logger.info(
        "PAYROLL_CONFIG_TRACE",
        extra={
            "trace_type": "PAYROLL_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "leave_type_count": len(config.leave_types),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "EngineConfiguration",
    "compute_checksum",
    "get_engine_config",
    "load_engine_config",
    "parse_engine_config",
]
