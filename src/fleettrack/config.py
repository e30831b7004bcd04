"""Engine and source configuration for fleettrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from fleettrack.exceptions import FleetConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class MqttSourceConfig:
    """Broker settings for :class:`fleettrack.MqttTelemetrySource`.

    Parameters
    ----------
    host : str
        Broker hostname.
    port : int
        Broker port.
    topic_prefix : str
        Prefix for ``<prefix>/trips/active`` and
        ``<prefix>/trips/<trip_id>/location``.
    client_id : str
        MQTT client id; empty lets paho generate one.
    username : str or None
        Broker username.
    password : str or None
        Broker password.
    keepalive : int
        MQTT keepalive in seconds.
    tls : bool
        Enable TLS with the system CA bundle.
    qos : int
        Subscription QoS level.
    """

    host: str = "localhost"
    port: int = 1883
    topic_prefix: str = "fleet"
    client_id: str = ""
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    tls: bool = False
    qos: int = 1


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Tracking engine configuration.

    All durations are in seconds.

    Parameters
    ----------
    live_window : float
        Elapsed time below which a trip is ``live``.
    delayed_window : float
        Elapsed time at or above which a trip is ``offline``.
        Trips between the two windows are ``delayed``.
    offline_alert_window : float or None
        Elapsed time since the last sample after which an offline trip
        raises an Offline alert.  ``None`` means ``delayed_window``.
    stationary_window : float
        How long a trip must report no movement before a Stationary
        alert is raised.
    moving_threshold : float
        Speed (m/s) above which a trip counts as moving.
    low_battery_threshold : float
        Battery percentage below which a LowBattery alert is raised.
    history_capacity : int
        Samples retained per trip for route reconstruction.
    tick_interval : float
        Period of the freshness/alert re-evaluation tick.
    max_plausible_speed : float
        Implied segment speed (m/s) above which a segment is treated
        as GPS noise and excluded from the cumulative distance.
    max_jump_meters : float
        Segment length above which a segment is treated as GPS noise.
    subscribe_backoff_base : float
        First retry delay after a failed subscription.
    subscribe_backoff_cap : float
        Upper bound for the retry delay.
    unknown_user_name : str
        Display name used when the user directory cannot resolve a rider.
    user_cache_size : int
        Rider profiles kept in memory before the least recently used is
        evicted.
    user_lookup_retry_after : float
        After a failed directory lookup, how long the rider keeps the
        placeholder name before the directory is asked again.
    """

    live_window: float = 30.0
    delayed_window: float = 120.0
    offline_alert_window: float | None = None
    stationary_window: float = 600.0
    moving_threshold: float = 0.5
    low_battery_threshold: float = 20.0
    history_capacity: int = 100
    tick_interval: float = 5.0
    max_plausible_speed: float = 50.0
    max_jump_meters: float = 100_000.0
    subscribe_backoff_base: float = 1.0
    subscribe_backoff_cap: float = 30.0
    unknown_user_name: str = "Unknown rider"
    user_cache_size: int = 1024
    user_lookup_retry_after: float = 60.0
    mqtt: MqttSourceConfig = dataclasses.field(default_factory=MqttSourceConfig)

    def __post_init__(self) -> None:
        if self.live_window <= 0:
            raise FleetConfigError("live_window must be positive")
        if self.delayed_window <= self.live_window:
            raise FleetConfigError("delayed_window must be greater than live_window")
        if self.offline_alert_window is not None and self.offline_alert_window < 0:
            raise FleetConfigError("offline_alert_window must not be negative")
        if self.stationary_window < 0:
            raise FleetConfigError("stationary_window must not be negative")
        if self.history_capacity < 2:
            raise FleetConfigError("history_capacity must be at least 2")
        if self.tick_interval <= 0:
            raise FleetConfigError("tick_interval must be positive")
        if self.max_plausible_speed <= 0:
            raise FleetConfigError("max_plausible_speed must be positive")
        if self.subscribe_backoff_base <= 0 or self.subscribe_backoff_cap < self.subscribe_backoff_base:
            raise FleetConfigError("subscribe backoff requires 0 < base <= cap")
        if self.user_cache_size < 1:
            raise FleetConfigError("user_cache_size must be at least 1")
        if self.user_lookup_retry_after < 0:
            raise FleetConfigError("user_lookup_retry_after must not be negative")

    @property
    def effective_offline_alert_window(self) -> float:
        if self.offline_alert_window is None:
            return self.delayed_window
        return self.offline_alert_window

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number *attempt* (1-based)."""
        exponent = max(0, attempt - 1)
        # Avoid float overflow on very long outages.
        if exponent > 32:
            return self.subscribe_backoff_cap
        return min(self.subscribe_backoff_cap, self.subscribe_backoff_base * (2**exponent))

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads optional ``FLEET_*`` variables for the engine thresholds and
        ``FLEET_MQTT_*`` variables for the broker. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated configuration.
        """
        env = os.environ

        mqtt_kwargs: dict[str, Any] = {}
        _ENV_MQTT_MAP: dict[str, tuple[str, type]] = {
            "FLEET_MQTT_HOST": ("host", str),
            "FLEET_MQTT_PORT": ("port", int),
            "FLEET_MQTT_TOPIC_PREFIX": ("topic_prefix", str),
            "FLEET_MQTT_CLIENT_ID": ("client_id", str),
            "FLEET_MQTT_USERNAME": ("username", str),
            "FLEET_MQTT_PASSWORD": ("password", str),
            "FLEET_MQTT_KEEPALIVE": ("keepalive", int),
            "FLEET_MQTT_QOS": ("qos", int),
        }
        for env_key, (field_name, caster) in _ENV_MQTT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                mqtt_kwargs[field_name] = caster(val)
        if env.get("FLEET_MQTT_TLS") is not None:
            mqtt_kwargs["tls"] = _env_bool(env.get("FLEET_MQTT_TLS"), False)

        # Allow overriding broker fields via a nested dict
        mqtt_overrides = overrides.pop("mqtt", None)
        if isinstance(mqtt_overrides, dict):
            mqtt_kwargs.update(mqtt_overrides)
        elif isinstance(mqtt_overrides, MqttSourceConfig):
            mqtt_kwargs = dataclasses.asdict(mqtt_overrides)

        config_kwargs: dict[str, Any] = {"mqtt": MqttSourceConfig(**mqtt_kwargs)}

        _ENV_CONFIG_MAP = {
            "FLEET_LIVE_WINDOW": "live_window",
            "FLEET_DELAYED_WINDOW": "delayed_window",
            "FLEET_OFFLINE_ALERT_WINDOW": "offline_alert_window",
            "FLEET_STATIONARY_WINDOW": "stationary_window",
            "FLEET_MOVING_THRESHOLD": "moving_threshold",
            "FLEET_LOW_BATTERY_THRESHOLD": "low_battery_threshold",
            "FLEET_TICK_INTERVAL": "tick_interval",
            "FLEET_MAX_PLAUSIBLE_SPEED": "max_plausible_speed",
            "FLEET_MAX_JUMP_METERS": "max_jump_meters",
            "FLEET_SUBSCRIBE_BACKOFF_BASE": "subscribe_backoff_base",
            "FLEET_SUBSCRIBE_BACKOFF_CAP": "subscribe_backoff_cap",
            "FLEET_USER_LOOKUP_RETRY_AFTER": "user_lookup_retry_after",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        # Integral fields, handle separately
        for env_key, field_name in (
            ("FLEET_HISTORY_CAPACITY", "history_capacity"),
            ("FLEET_USER_CACHE_SIZE", "user_cache_size"),
        ):
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = int(val)

        name_env = env.get("FLEET_UNKNOWN_USER_NAME")
        if name_env is not None and "unknown_user_name" not in overrides:
            config_kwargs["unknown_user_name"] = name_env

        config_kwargs.update(overrides)

        try:
            return cls(**config_kwargs)
        except (TypeError, ValueError) as exc:
            raise FleetConfigError(str(exc)) from exc
