"""
Process-wide registration point for the active conditions manager.

Code that is handed a manager should use it directly. This module exists for
frameworks that can only look the manager up globally; at most one manager is
registered at a time, and registering another replaces it.
"""

import logging
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from hps_conditions.core.manager import DatabaseConditionsManager

logger = logging.getLogger(__name__)

_ACTIVE_MANAGER: Optional["DatabaseConditionsManager"] = None


def register(manager: "DatabaseConditionsManager") -> None:
    """
    Make ``manager`` the process-wide conditions manager.

    Parameters
    ----------
    manager : DatabaseConditionsManager
        The manager that ``get_instance`` will return from now on.
    """
    global _ACTIVE_MANAGER
    if _ACTIVE_MANAGER is not None and _ACTIVE_MANAGER is not manager:
        logger.info("replacing the registered conditions manager")
    _ACTIVE_MANAGER = manager


def get_instance() -> "DatabaseConditionsManager":
    """
    Return the registered conditions manager.

    Raises
    ------
    RuntimeError
        If no manager has been registered.
    """
    if _ACTIVE_MANAGER is None:
        raise RuntimeError(
            "No conditions manager is registered. "
            "Call DatabaseConditionsManager.register() first."
        )
    return _ACTIVE_MANAGER


def has_instance() -> bool:
    return _ACTIVE_MANAGER is not None


def unregister() -> Optional["DatabaseConditionsManager"]:
    """Remove and return the registered manager, if any."""
    global _ACTIVE_MANAGER
    manager = _ACTIVE_MANAGER
    _ACTIVE_MANAGER = None
    return manager
