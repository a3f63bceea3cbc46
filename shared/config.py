"""
PeLens Configuration Management
================================

Centralized configuration for the PeLens toolkit using Python dataclasses
and TOML-based persistence.

Configuration is kept apart from code: every tunable lives in a TOML file
whose sections map one-to-one onto the dataclasses below.

References:
    - Wiggins, A. (2011). The Twelve-Factor App. https://12factor.net/
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[no-redef]


# ---------------------------------------------------------------------------
# Default configuration file path relative to the PeLens root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "pelens.toml"


# ========================== Section Configs ================================


@dataclass(frozen=False, slots=True)
class ParserConfig:
    """Configuration for the PE decoding engine.

    Controls which directory tables are resolved and the largest file the
    engine agrees to load into memory.
    """

    max_file_size: int = 268_435_456  # 256 MiB
    resolve_imports: bool = True
    resolve_exports: bool = True


@dataclass(frozen=False, slots=True)
class OutputConfig:
    """Presentation settings for console and JSON output."""

    format: str = "console"  # console | json
    view: str = "pretty"     # pretty | summary
    show_banner: bool = True
    max_rows: int = 200


# =========================== Global Settings ===============================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Global settings: logging verbosity, log destination, debug mode."""

    log_level: str = "INFO"
    log_file: str = ""
    log_json: bool = False
    debug: bool = False
    version: str = "1.0.0"


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class PeLensConfig:
    """Master configuration aggregating all settings.

    Usage:
        >>> config = PeLensConfig.load()                   # from default path
        >>> config = PeLensConfig.load("custom.toml")      # from custom path
        >>> config.parser.resolve_imports
        True
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    parser: ParserConfig = field(default_factory=ParserConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    # ------------------------------------------------------------------ #
    #  TOML Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: str | Path | None = None) -> PeLensConfig:
        """Load configuration from a TOML file.

        If *path* is ``None`` the loader looks for ``pelens.toml`` in the
        project root.  Missing keys fall back to dataclass defaults.

        Args:
            path: Filesystem path to a TOML configuration file.

        Returns:
            A fully-populated :class:`PeLensConfig` instance.

        Raises:
            FileNotFoundError: If the specified path does not exist
                *and* was explicitly provided by the caller.
        """
        config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(
                    f"Configuration file not found: {config_path}"
                )
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=cls._build_section(GlobalConfig, raw.get("global", {})),
            parser=cls._build_section(ParserConfig, raw.get("parser", {})),
            output=cls._build_section(OutputConfig, raw.get("output", {})),
        )

    # ------------------------------------------------------------------ #
    #  Serialisation helpers
    # ------------------------------------------------------------------ #

    def to_dict(self) -> dict[str, Any]:
        """Serialise the entire configuration tree to a plain dictionary."""
        return asdict(self)

    # ------------------------------------------------------------------ #
    #  Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _build_section(cls: type, data: dict[str, Any]) -> Any:
        """Instantiate a dataclass *cls* using only the keys it declares.

        Unknown keys in the TOML source are ignored so that newer config
        files still load on older releases.
        """
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


# ========================= Module-level convenience ========================

def get_config(path: str | Path | None = None) -> PeLensConfig:
    """Module-level convenience wrapper around :meth:`PeLensConfig.load`.

    Caches the result so that repeated calls share one instance.
    """
    if not hasattr(get_config, "_cached") or path is not None:
        get_config._cached = PeLensConfig.load(path)  # type: ignore[attr-defined]
    return get_config._cached  # type: ignore[attr-defined]
