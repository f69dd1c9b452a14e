"""Build toolchain strategies.

The STRATEGY_REGISTRY provides lookup of strategies by key; resolve()
picks the toolchain for a build. Availability is probed on every call.

To add a new toolchain:
  1. Create a module with a BuildStrategy subclass
  2. Call register_strategy() with the class
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from firmware_codegen.errors import ToolchainUnavailableError
from firmware_codegen.toolchains.arduino_cli import ArduinoCLIStrategy
from firmware_codegen.toolchains.base import BuildResult, BuildStrategy
from firmware_codegen.toolchains.platformio import PlatformIOStrategy

if TYPE_CHECKING:
    from firmware_codegen.config import Settings

logger = logging.getLogger(__name__)

STRATEGY_REGISTRY: dict[str, type[BuildStrategy]] = {
    PlatformIOStrategy.key: PlatformIOStrategy,
    ArduinoCLIStrategy.key: ArduinoCLIStrategy,
}

# Strategies tried in this order when no preference is given
DEFAULT_PRIORITY: tuple[str, ...] = ("platformio", "arduino-cli")

NO_TOOL_MESSAGE = "no build tool available: install PlatformIO CLI or Arduino CLI"


def register_strategy(strategy_class: type[BuildStrategy]) -> type[BuildStrategy]:
    """Add a strategy class to the registry.

    Registered keys outside DEFAULT_PRIORITY are tried after it, in
    registration order. Usable as a class decorator.
    """
    STRATEGY_REGISTRY[strategy_class.key] = strategy_class
    return strategy_class


def get_strategy_class(key: str) -> type[BuildStrategy]:
    """Look up a strategy class by key.

    Raises:
        ValueError: If the key is unknown.
    """
    if key not in STRATEGY_REGISTRY:
        available = ", ".join(sorted(STRATEGY_REGISTRY.keys()))
        raise ValueError(f"Unknown build tool '{key}'. Available: {available}")
    return STRATEGY_REGISTRY[key]


def create_strategy(
    key: str,
    board: str | None = None,
    settings: Settings | None = None,
) -> BuildStrategy:
    """Instantiate a strategy, passing settings where it takes them."""
    strategy_class = get_strategy_class(key)
    if issubclass(strategy_class, ArduinoCLIStrategy):
        kwargs: dict[str, Any] = {}
        if settings is not None:
            kwargs["libraries"] = settings.arduino_libraries
            kwargs["main_source"] = settings.main_source
            board = board or settings.default_board
        return strategy_class(board=board, **kwargs)
    return strategy_class(board=board)


def list_strategies() -> list[str]:
    """Return the sorted list of registered strategy keys."""
    return sorted(STRATEGY_REGISTRY.keys())


def priority_order() -> list[str]:
    """Return every registered key in resolution order."""
    order = [key for key in DEFAULT_PRIORITY if key in STRATEGY_REGISTRY]
    order.extend(key for key in STRATEGY_REGISTRY if key not in order)
    return order


def resolve(
    preferred: str | None = None,
    board: str | None = None,
    settings: Settings | None = None,
) -> BuildStrategy:
    """Pick the toolchain for a build.

    The preferred tool wins when it is registered and installed.
    Otherwise the first installed tool in priority order is used.

    Args:
        preferred: Optional strategy key requested by the caller.
        board: Optional board identifier passed to the strategy.
        settings: Settings supplying strategy defaults.

    Returns:
        A strategy instance whose toolchain is installed.

    Raises:
        ToolchainUnavailableError: If no toolchain is installed.
    """
    if preferred:
        preferred = preferred.lower()
        if preferred not in STRATEGY_REGISTRY:
            logger.warning(
                "Unknown build tool %r requested; available: %s",
                preferred,
                ", ".join(list_strategies()),
            )
        else:
            strategy = create_strategy(preferred, board=board, settings=settings)
            if strategy.is_available():
                logger.info("Using preferred build tool %s", strategy.name)
                return strategy
            logger.warning("Preferred build tool %s is not installed, falling back", preferred)

    for key in priority_order():
        if key == preferred:
            continue
        strategy = create_strategy(key, board=board, settings=settings)
        if strategy.is_available():
            logger.info("Using build tool %s", strategy.name)
            return strategy

    raise ToolchainUnavailableError(NO_TOOL_MESSAGE)


def list_available(settings: Settings | None = None) -> list[str]:
    """Return display names of installed toolchains, in priority order."""
    available = []
    for key in priority_order():
        strategy = create_strategy(key, settings=settings)
        if strategy.is_available():
            available.append(strategy.name)
    return available


def describe_strategies(settings: Settings | None = None) -> list[dict[str, Any]]:
    """Describe every registered toolchain for display."""
    rows = []
    for key in priority_order():
        strategy = create_strategy(key, settings=settings)
        path = strategy.find_executable()
        rows.append(
            {
                "key": key,
                "name": strategy.name,
                "available": path is not None,
                "path": path,
            }
        )
    return rows


__all__ = [
    "DEFAULT_PRIORITY",
    "NO_TOOL_MESSAGE",
    "STRATEGY_REGISTRY",
    "ArduinoCLIStrategy",
    "BuildResult",
    "BuildStrategy",
    "PlatformIOStrategy",
    "create_strategy",
    "describe_strategies",
    "get_strategy_class",
    "list_available",
    "list_strategies",
    "priority_order",
    "register_strategy",
    "resolve",
]
