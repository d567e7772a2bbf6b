"""Trading configuration loaded from trading.yaml.

Supports:
- Preset selection: "breakout", "mean_reversion", or "custom" (inline params)
- Field-by-field overrides on top of a named preset
- Backward compatible: no YAML file = breakout preset
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

from app.storage.state_store import SUPPORTED_INTERVALS, AppState, normalize_symbol
from core.models.config import PRESETS, Params

logger = logging.getLogger(__name__)

_VALID_PRESETS = (*PRESETS.keys(), "custom")


class TradingConfig(BaseModel):
    """Top-level trading.yaml configuration."""

    preset: str = "breakout"
    params: dict[str, Any] = {}
    symbols: list[str] = []
    interval: str | None = None

    @field_validator("symbols")
    @classmethod
    def _normalize_symbols(cls, symbols: list[str]) -> list[str]:
        result: list[str] = []
        for raw in symbols:
            symbol = normalize_symbol(raw)
            if symbol is None:
                raise ValueError(f"invalid symbol '{raw}'")
            if symbol not in result:
                result.append(symbol)
        return result

    @field_validator("interval", mode="before")
    @classmethod
    def _check_interval(cls, interval: Any) -> Any:
        if interval is None:
            return None
        # YAML reads an unquoted 5 as an int
        interval = str(interval)
        if interval not in SUPPORTED_INTERVALS:
            raise ValueError(
                f"interval must be one of {SUPPORTED_INTERVALS}, got '{interval}'"
            )
        return interval

    @model_validator(mode="after")
    def _validate(self):
        if self.preset not in _VALID_PRESETS:
            raise ValueError(
                f"preset must be one of {_VALID_PRESETS}, got '{self.preset}'"
            )
        if self.preset == "custom" and not self.params:
            raise ValueError("preset='custom' requires a 'params' mapping")
        # Fail at load time rather than on the first decision cycle
        self.get_params()
        return self

    def get_params(self) -> Params:
        """Resolve the preset plus overrides to a Params snapshot."""
        if self.preset == "custom":
            return Params(**self.params)
        base = PRESETS[self.preset]
        if not self.params:
            return base
        return Params(**{**base.model_dump(), **self.params})

    @property
    def sets_params(self) -> bool:
        """True when the file names a preset or overrides any field."""
        return "preset" in self.model_fields_set or bool(self.params)

    def restore(
        self,
        saved: AppState | None,
        default_symbols: list[str],
        default_interval: str,
    ) -> AppState:
        """Merge this config with a persisted state.

        Without a saved state, watchlist and interval come from this config
        and then from the given defaults. A saved state keeps its watchlist,
        interval and params; params are replaced only when this config sets
        a preset or overrides.
        """
        if saved is None:
            return AppState(
                watchlist=list(self.symbols or default_symbols),
                interval=self.interval or default_interval,
                params=self.get_params(),
            )
        if self.sets_params:
            logger.info("Applying trading config params over saved state")
            saved.params = self.get_params()
        return saved


_DEFAULT_PATH = Path(__file__).parent.parent / "trading.yaml"


def load_trading_config(path: Path | None = None) -> TradingConfig:
    """Load trading config from YAML file.

    Falls back to defaults (breakout preset) if file doesn't exist.
    """
    config_path = path or _DEFAULT_PATH

    env_path = config_path.parent / ".env"
    load_dotenv(env_path, override=False)

    if not config_path.exists():
        logger.info(
            "No trading.yaml found at %s, using defaults (breakout preset)",
            config_path,
        )
        return TradingConfig()

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    config = TradingConfig(**raw)
    logger.info(
        "Loaded trading config: preset=%s, %d overrides, %d symbols",
        config.preset,
        len(config.params),
        len(config.symbols),
    )
    return config
