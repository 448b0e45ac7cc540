"""
============================================================================
Paper Sandbox v1.0.0
Simulation Engine - Configuration
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Starting balance parsed as decimal.Decimal with ROUND_HALF_EVEN

This module provides configuration management for the simulation sandbox:
- Environment variable parsing with type safety (.env supported via python-dotenv)
- Default values for optional configuration
- Validation with fail-closed behavior (SIM-040)

ENVIRONMENT VARIABLES:
    - SIM_STARTING_BALANCE: Initial paper balance in USD (default: 10000)
    - SIM_MODE_ENABLED: Simulation flag at startup (default: true)
    - SIM_DEFAULT_LEVERAGE: Leverage applied when an order omits it (default: 1)
    - SIM_COPY_LEVERAGE: Leverage applied to mirrored crypto trades (default: 5)
    - STRATEGY_PARSER_MODE: "rules" or "llm" (default: rules)
    - STRATEGY_LLM_URL: Base URL of the LLM parse service (required for llm mode)
    - STRATEGY_LLM_TIMEOUT_SECONDS: LLM request timeout (default: 30)

ERROR CODES:
    - SIM-040: Configuration invalid

============================================================================
"""

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, List
from dataclasses import dataclass, field
import logging
import os

from dotenv import load_dotenv

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PRECISION_USD = Decimal("0.01")

PARSER_MODE_RULES = "rules"
PARSER_MODE_LLM = "llm"
VALID_PARSER_MODES = frozenset([PARSER_MODE_RULES, PARSER_MODE_LLM])


class SimConfigErrorCode:
    """Configuration-specific error codes for audit logging."""
    CONFIG_INVALID = "SIM-040"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_STARTING_BALANCE = Decimal("10000.00")
DEFAULT_SIMULATION_MODE = True
DEFAULT_LEVERAGE = Decimal("1")
DEFAULT_COPY_LEVERAGE = Decimal("5")
DEFAULT_LLM_TIMEOUT_SECONDS = 30.0


class SimConfigurationError(Exception):
    """Raised when sandbox configuration is invalid."""

    def __init__(self, message: str, error_code: str = SimConfigErrorCode.CONFIG_INVALID):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# SimConfig Class
# =============================================================================

@dataclass
class SimConfig:
    """
    Simulation sandbox configuration.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - starting_balance: Balance restored on init and reset
    - simulation_mode: Initial value of the simulation flag
    - default_leverage: Leverage used when a crypto order omits it
    - copy_leverage: Leverage used for mirrored crypto trades
    - parser_mode: "rules" (pure, offline) or "llm" (HTTP with fallback)
    - llm_url: LLM parse service base URL
    - llm_timeout_seconds: LLM request timeout
    ============================================================================
    """

    starting_balance: Decimal = field(default_factory=lambda: DEFAULT_STARTING_BALANCE)
    simulation_mode: bool = DEFAULT_SIMULATION_MODE
    default_leverage: Decimal = field(default_factory=lambda: DEFAULT_LEVERAGE)
    copy_leverage: Decimal = field(default_factory=lambda: DEFAULT_COPY_LEVERAGE)
    parser_mode: str = PARSER_MODE_RULES
    llm_url: Optional[str] = None
    llm_timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if not isinstance(self.starting_balance, Decimal):
            self.starting_balance = Decimal(str(self.starting_balance))
        self.starting_balance = self.starting_balance.quantize(
            PRECISION_USD, rounding=ROUND_HALF_EVEN
        )
        if not isinstance(self.default_leverage, Decimal):
            self.default_leverage = Decimal(str(self.default_leverage))
        if not isinstance(self.copy_leverage, Decimal):
            self.copy_leverage = Decimal(str(self.copy_leverage))

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            SimConfigurationError: If any value is out of range (SIM-040)
        """
        errors: List[str] = []

        if self.starting_balance <= Decimal("0"):
            errors.append(
                f"SIM_STARTING_BALANCE must be positive, got: {self.starting_balance}"
            )
        if self.default_leverage < Decimal("1"):
            errors.append(
                f"SIM_DEFAULT_LEVERAGE must be >= 1, got: {self.default_leverage}"
            )
        if self.copy_leverage < Decimal("1"):
            errors.append(
                f"SIM_COPY_LEVERAGE must be >= 1, got: {self.copy_leverage}"
            )
        if self.parser_mode not in VALID_PARSER_MODES:
            errors.append(
                f"STRATEGY_PARSER_MODE must be one of {sorted(VALID_PARSER_MODES)}, "
                f"got: {self.parser_mode}"
            )
        if self.parser_mode == PARSER_MODE_LLM and not self.llm_url:
            errors.append("STRATEGY_LLM_URL must be set when STRATEGY_PARSER_MODE=llm")
        if self.llm_timeout_seconds <= 0:
            errors.append(
                f"STRATEGY_LLM_TIMEOUT_SECONDS must be positive, got: {self.llm_timeout_seconds}"
            )

        if errors:
            error_msg = "Simulation configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{SimConfigErrorCode.CONFIG_INVALID}] {error_msg}")
            raise SimConfigurationError(error_msg)

        logger.info(
            f"[SIM-CONFIG] Configuration validated | "
            f"starting_balance={self.starting_balance} | "
            f"simulation_mode={self.simulation_mode} | "
            f"parser_mode={self.parser_mode}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "SimConfig":
        """
        Load configuration from environment variables.

        Malformed numeric values are reported as SIM-040 rather than
        silently replaced, so a typo never changes the simulated account.
        """
        load_dotenv()

        errors: List[str] = []

        balance_str = os.environ.get("SIM_STARTING_BALANCE", str(DEFAULT_STARTING_BALANCE))
        try:
            starting_balance = Decimal(balance_str.strip())
        except Exception:
            errors.append(f"SIM_STARTING_BALANCE is not a number: {balance_str}")
            starting_balance = DEFAULT_STARTING_BALANCE

        mode_str = os.environ.get("SIM_MODE_ENABLED", "true").lower().strip()
        simulation_mode = mode_str in ("true", "1", "yes", "on")

        leverage_str = os.environ.get("SIM_DEFAULT_LEVERAGE", str(DEFAULT_LEVERAGE))
        try:
            default_leverage = Decimal(leverage_str.strip())
        except Exception:
            errors.append(f"SIM_DEFAULT_LEVERAGE is not a number: {leverage_str}")
            default_leverage = DEFAULT_LEVERAGE

        copy_leverage_str = os.environ.get("SIM_COPY_LEVERAGE", str(DEFAULT_COPY_LEVERAGE))
        try:
            copy_leverage = Decimal(copy_leverage_str.strip())
        except Exception:
            errors.append(f"SIM_COPY_LEVERAGE is not a number: {copy_leverage_str}")
            copy_leverage = DEFAULT_COPY_LEVERAGE

        parser_mode = os.environ.get("STRATEGY_PARSER_MODE", PARSER_MODE_RULES).lower().strip()
        llm_url = os.environ.get("STRATEGY_LLM_URL") or None

        timeout_str = os.environ.get(
            "STRATEGY_LLM_TIMEOUT_SECONDS", str(DEFAULT_LLM_TIMEOUT_SECONDS)
        )
        try:
            llm_timeout_seconds = float(timeout_str.strip())
        except ValueError:
            errors.append(f"STRATEGY_LLM_TIMEOUT_SECONDS is not a number: {timeout_str}")
            llm_timeout_seconds = DEFAULT_LLM_TIMEOUT_SECONDS

        if errors:
            error_msg = "Simulation configuration is malformed: " + "; ".join(errors)
            logger.error(f"[{SimConfigErrorCode.CONFIG_INVALID}] {error_msg}")
            raise SimConfigurationError(error_msg)

        logger.info(
            f"[SIM-CONFIG] Loading configuration from environment | "
            f"SIM_STARTING_BALANCE={starting_balance} | "
            f"SIM_MODE_ENABLED={simulation_mode} | "
            f"STRATEGY_PARSER_MODE={parser_mode}"
        )

        config = cls(
            starting_balance=starting_balance,
            simulation_mode=simulation_mode,
            default_leverage=default_leverage,
            copy_leverage=copy_leverage,
            parser_mode=parser_mode,
            llm_url=llm_url,
            llm_timeout_seconds=llm_timeout_seconds,
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> dict:
        """Convert configuration to dictionary for serialization/logging."""
        return {
            "starting_balance": str(self.starting_balance),
            "simulation_mode": self.simulation_mode,
            "default_leverage": str(self.default_leverage),
            "copy_leverage": str(self.copy_leverage),
            "parser_mode": self.parser_mode,
            "llm_url": self.llm_url,
            "llm_timeout_seconds": self.llm_timeout_seconds,
        }


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[SimConfig] = None


def load_sim_config(validate: bool = True) -> SimConfig:
    """Load a fresh configuration from the environment (uncached)."""
    return SimConfig.from_environment(validate=validate)


def get_sim_config(validate: bool = True) -> SimConfig:
    """
    Get the global sandbox configuration, loading it from the environment
    on first access.
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = load_sim_config(validate=validate)

    return _config_instance


def reset_sim_config() -> None:
    """Clear the cached configuration (used by tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[SIM-CONFIG] Configuration instance reset")


__all__ = [
    "SimConfig",
    "SimConfigurationError",
    "SimConfigErrorCode",
    "DEFAULT_STARTING_BALANCE",
    "PARSER_MODE_RULES",
    "PARSER_MODE_LLM",
    "load_sim_config",
    "get_sim_config",
    "reset_sim_config",
]
