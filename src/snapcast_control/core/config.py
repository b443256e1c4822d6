"""Configuration manager using QSettings for persistent storage."""

import logging

from PySide6.QtCore import QSettings

from snapcast_control.api.client import DEFAULT_OPEN_TIMEOUT
from snapcast_control.api.connection import ReconnectPolicy
from snapcast_control.models.server import DEFAULT_CONTROL_PORT, Server

logger = logging.getLogger(__name__)

# Last server
_KEY_LAST_HOST = "connection/last_host"
_KEY_LAST_PORT = "connection/last_port"
_KEY_LAST_NAME = "connection/last_name"
_KEY_OPEN_TIMEOUT = "connection/open_timeout"

# Reconnection
_KEY_CONNECT_TIMEOUT = "reconnect/connect_timeout"
_KEY_INITIAL_DELAY = "reconnect/initial_delay"
_KEY_MAX_DELAY = "reconnect/max_delay"
_KEY_MULTIPLIER = "reconnect/multiplier"
_KEY_EXIT_ON_FIRST_FAILURE = "reconnect/exit_if_first_connect_fails"


class ConfigManager:
    """Wrapper around QSettings for type-safe config access.

    QSettings stores config in platform-specific locations:
    - Windows: HKEY_CURRENT_USER\\Software\\SnapcastControl\\SnapcastControl
    - macOS: ~/Library/Preferences/com.SnapcastControl.SnapcastControl.plist
    - Linux: ~/.config/SnapcastControl/SnapcastControl.conf

    Example:
        config = ConfigManager()
        server = config.get_last_server()
        policy = config.get_reconnect_policy()
    """

    def __init__(
        self,
        organization: str = "SnapcastControl",
        application: str = "SnapcastControl",
    ) -> None:
        """Initialize the config manager.

        Args:
            organization: Organization name for QSettings.
            application: Application name for QSettings.
        """
        self._settings = QSettings(organization, application)

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    # -- Last server -----------------------------------------------------------

    def get_last_server(self) -> Server | None:
        """Get the last connected server.

        Returns:
            Server, or None if no server has been saved.
        """
        host = self._settings.value(_KEY_LAST_HOST, "", str)
        if not host:
            return None
        port = self._settings.value(_KEY_LAST_PORT, DEFAULT_CONTROL_PORT, int)
        name = self._settings.value(_KEY_LAST_NAME, "", str)
        try:
            port_num = int(port)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid saved port %r", port)
            port_num = DEFAULT_CONTROL_PORT
        if not 1 <= port_num <= 65535:  # noqa: PLR2004
            port_num = DEFAULT_CONTROL_PORT
        return Server(name=str(name) or str(host), host=str(host), port=port_num)

    def set_last_server(self, server: Server) -> None:
        """Remember the server the user connected to.

        Args:
            server: Server to save.
        """
        self._settings.setValue(_KEY_LAST_HOST, server.host)
        self._settings.setValue(_KEY_LAST_PORT, server.port)
        self._settings.setValue(_KEY_LAST_NAME, server.name)

    # -- Connection timing -----------------------------------------------------

    def get_open_timeout(self) -> float:
        """Return the seconds to wait for the first connection.

        Returns:
            Timeout in seconds (default 30, range 1-300).
        """
        value = self._settings.value(_KEY_OPEN_TIMEOUT, DEFAULT_OPEN_TIMEOUT, float)
        return max(1.0, min(300.0, float(value)))  # type: ignore[arg-type]

    def set_open_timeout(self, seconds: float) -> None:
        """Set the seconds to wait for the first connection.

        Args:
            seconds: Timeout in seconds (1-300).
        """
        self._settings.setValue(_KEY_OPEN_TIMEOUT, max(1.0, min(300.0, seconds)))

    def get_reconnect_policy(self) -> ReconnectPolicy:
        """Build the reconnection policy from saved values.

        Invalid combinations fall back to the defaults.

        Returns:
            The saved ReconnectPolicy.
        """
        defaults = ReconnectPolicy()
        try:
            return ReconnectPolicy(
                initial_delay=self._get_float(_KEY_INITIAL_DELAY, defaults.initial_delay),
                max_delay=self._get_float(_KEY_MAX_DELAY, defaults.max_delay),
                multiplier=self._get_float(_KEY_MULTIPLIER, defaults.multiplier),
                connect_timeout=self._get_float(_KEY_CONNECT_TIMEOUT, defaults.connect_timeout),
                exit_if_first_connect_fails=bool(
                    self._settings.value(
                        _KEY_EXIT_ON_FIRST_FAILURE, defaults.exit_if_first_connect_fails, bool
                    )
                ),
            )
        except (TypeError, ValueError) as e:
            logger.warning("Invalid saved reconnect settings, using defaults: %s", e)
            return defaults

    def set_reconnect_policy(self, policy: ReconnectPolicy) -> None:
        """Persist the reconnection policy.

        Args:
            policy: Policy to save.
        """
        self._settings.setValue(_KEY_INITIAL_DELAY, policy.initial_delay)
        self._settings.setValue(_KEY_MAX_DELAY, policy.max_delay)
        self._settings.setValue(_KEY_MULTIPLIER, policy.multiplier)
        self._settings.setValue(_KEY_CONNECT_TIMEOUT, policy.connect_timeout)
        self._settings.setValue(_KEY_EXIT_ON_FIRST_FAILURE, policy.exit_if_first_connect_fails)

    def _get_float(self, key: str, default: float) -> float:
        """Read a float setting.

        Raises:
            ValueError: If the stored value is not a number.
        """
        return float(self._settings.value(key, default, float))  # type: ignore[arg-type]

    # -- General settings ------------------------------------------------------

    def clear(self) -> None:
        """Clear all settings (useful for testing or reset)."""
        self._settings.clear()

    def sync(self) -> None:
        """Force settings to be written to disk."""
        self._settings.sync()
