"""Controller configuration for pyiramp."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyiramp import _constants as const
from pyiramp.exceptions import IrAmpConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, kind: type[int] | type[float]) -> int | float:
    try:
        return kind(value)
    except ValueError as exc:
        raise IrAmpConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class IrCommandCodes:
    """Learned IR codes, as hex strings captured from the original remote.

    ``power`` is the toggle code and is used for both directions when
    ``power_on``/``power_off`` are not configured.
    """

    power: str = ""
    power_on: str | None = None
    power_off: str | None = None
    source: str = ""
    volume_up: str = ""
    volume_down: str = ""
    mute: str | None = None
    hdmi_redirect: str | None = None


@dataclasses.dataclass(frozen=True)
class VolumeInitConfig:
    """Volume baseline routine run after power-on.

    Parameters
    ----------
    enabled : bool
        Run the routine at all.
    max_volume_steps : int
        Number of volume-down pulses sent to saturate the physical floor.
        Also caps the number of volume-up pulses.
    startup_volume : int
        Volume (in steps) to climb back to from the floor.
    delay_between_steps : float
        Seconds between two consecutive pulses.
    floor_settle_delay : float
        Pause between the down and up phases.
    """

    enabled: bool = False
    max_volume_steps: int = 50
    startup_volume: int = 20
    delay_between_steps: float = const.VOLUME_STEP_DELAY
    floor_settle_delay: float = const.VOLUME_FLOOR_SETTLE_DELAY


@dataclasses.dataclass(frozen=True)
class PowerOnConfig:
    """Extra steps taken by the startup sequence around the power-on pulse."""

    outlet_power_check: bool = False
    outlet_power_on_delay: float = const.OUTLET_POWER_ON_DELAY
    auto_hdmi_redirect: bool = False


@dataclasses.dataclass(frozen=True)
class AmplifierConfig:
    """Controller configuration.

    Parameters
    ----------
    outlet_host : str
        Host of the metering smart outlet feeding the amplifier.
    ir_host : str
        Host of the IR blaster.
    ir_mac : str or None
        Optional MAC of the IR blaster, used to pick the right device
        when several answer on the same host.
    commands : IrCommandCodes
        Learned IR codes.
    power_monitoring : bool
        Derive power state from wattage. When ``False`` the outlet relay
        state is used instead.
    power_threshold : float
        Watts above which the amplifier counts as in use (strict).
    sensor_poll_interval : float
        Seconds between two sensor monitor reads.
    verify_delay : float
        Seconds between a power command and its verification read.
        Must exceed the outlet's own settling latency.
    reconcile_interval : float
        Seconds between two periodic drift checks.
    volume_step_delay : float
        Minimum spacing between two volume pulses.
    initial_volume : int
        Assumed volume at session start.
    vision_confidence_threshold : float
        Camera readings at or below this confidence are ignored.
    vision_delta_threshold : int
        Camera readings within this many steps of the counted volume
        are ignored.
    vision_check_interval : float
        Seconds between two periodic camera readings.
    vision_min_refresh : float
        Minimum age of the last camera reading before ``get_volume``
        triggers a new one.
    camera_url : str or None
        Snapshot URL of the camera pointed at the amplifier display.
    expected_source : str
        Input name the amplifier display should show.
    bridge_inbound_path : str
        File the CEC listener writes commands to.
    bridge_outbound_path : str
        File this process publishes the confirmed power state to.
    bridge_poll_interval : float
        Seconds between two inbound mailbox polls.
    bridge_source_name : str
        ``source`` field written in outbound records.
    volume_init : VolumeInitConfig
        Volume baseline routine.
    power_on : PowerOnConfig
        Startup sequence options.
    """

    outlet_host: str = ""
    ir_host: str = ""
    ir_mac: str | None = None
    commands: IrCommandCodes = dataclasses.field(default_factory=IrCommandCodes)
    power_monitoring: bool = True
    power_threshold: float = 1.0
    sensor_poll_interval: float = const.SENSOR_POLL_INTERVAL
    verify_delay: float = const.VERIFY_DELAY
    reconcile_interval: float = const.RECONCILE_INTERVAL
    volume_step_delay: float = const.VOLUME_STEP_DELAY
    initial_volume: int = 50
    vision_confidence_threshold: float = 0.7
    vision_delta_threshold: int = 5
    vision_check_interval: float = const.VISION_CHECK_INTERVAL
    vision_min_refresh: float = const.VISION_MIN_REFRESH
    camera_url: str | None = None
    expected_source: str = "video 2"
    bridge_inbound_path: str = const.DEFAULT_BRIDGE_INBOUND
    bridge_outbound_path: str = const.DEFAULT_BRIDGE_OUTBOUND
    bridge_poll_interval: float = const.BRIDGE_POLL_INTERVAL
    bridge_source_name: str = const.DEFAULT_SOURCE_NAME
    volume_init: VolumeInitConfig = dataclasses.field(default_factory=VolumeInitConfig)
    power_on: PowerOnConfig = dataclasses.field(default_factory=PowerOnConfig)

    def __post_init__(self) -> None:
        if self.power_threshold < 0:
            raise IrAmpConfigError("power_threshold must be >= 0")
        for name in (
            "sensor_poll_interval",
            "reconcile_interval",
            "vision_check_interval",
            "bridge_poll_interval",
        ):
            if getattr(self, name) <= 0:
                raise IrAmpConfigError(f"{name} must be > 0")
        for name in ("verify_delay", "volume_step_delay", "vision_min_refresh"):
            if getattr(self, name) < 0:
                raise IrAmpConfigError(f"{name} must be >= 0")
        if not const.VOLUME_MIN <= self.initial_volume <= const.VOLUME_MAX:
            raise IrAmpConfigError("initial_volume must be between 0 and 100")
        if not 0.0 <= self.vision_confidence_threshold <= 1.0:
            raise IrAmpConfigError("vision_confidence_threshold must be between 0 and 1")
        if self.vision_delta_threshold < 0:
            raise IrAmpConfigError("vision_delta_threshold must be >= 0")
        if self.volume_init.max_volume_steps < 0:
            raise IrAmpConfigError("volume_init.max_volume_steps must be >= 0")
        if not const.VOLUME_MIN <= self.volume_init.startup_volume <= const.VOLUME_MAX:
            raise IrAmpConfigError("volume_init.startup_volume must be between 0 and 100")

    @classmethod
    def from_env(cls, **overrides: Any) -> AmplifierConfig:
        """Create configuration from environment variables.

        Reads ``IRAMP_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        AmplifierConfig
            Populated configuration.

        Raises
        ------
        IrAmpConfigError
            If a numeric variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        command_kwargs: dict[str, str] = {}
        _ENV_COMMAND_MAP = {
            "IRAMP_CODE_POWER": "power",
            "IRAMP_CODE_POWER_ON": "power_on",
            "IRAMP_CODE_POWER_OFF": "power_off",
            "IRAMP_CODE_SOURCE": "source",
            "IRAMP_CODE_VOLUME_UP": "volume_up",
            "IRAMP_CODE_VOLUME_DOWN": "volume_down",
            "IRAMP_CODE_MUTE": "mute",
            "IRAMP_CODE_HDMI_REDIRECT": "hdmi_redirect",
        }
        for env_key, field_name in _ENV_COMMAND_MAP.items():
            val = env.get(env_key)
            if val is not None:
                command_kwargs[field_name] = val.strip()

        command_overrides = overrides.pop("commands", None)
        if isinstance(command_overrides, dict):
            command_kwargs.update(command_overrides)
        elif isinstance(command_overrides, IrCommandCodes):
            command_kwargs = dataclasses.asdict(command_overrides)

        config_kwargs: dict[str, Any] = {"commands": IrCommandCodes(**command_kwargs)}

        _ENV_STR_MAP = {
            "IRAMP_OUTLET_HOST": "outlet_host",
            "IRAMP_IR_HOST": "ir_host",
            "IRAMP_IR_MAC": "ir_mac",
            "IRAMP_CAMERA_URL": "camera_url",
            "IRAMP_EXPECTED_SOURCE": "expected_source",
            "IRAMP_BRIDGE_INBOUND": "bridge_inbound_path",
            "IRAMP_BRIDGE_OUTBOUND": "bridge_outbound_path",
            "IRAMP_BRIDGE_SOURCE": "bridge_source_name",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMBER_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "IRAMP_POWER_THRESHOLD": ("power_threshold", float),
            "IRAMP_SENSOR_POLL_INTERVAL": ("sensor_poll_interval", float),
            "IRAMP_VERIFY_DELAY": ("verify_delay", float),
            "IRAMP_RECONCILE_INTERVAL": ("reconcile_interval", float),
            "IRAMP_VOLUME_STEP_DELAY": ("volume_step_delay", float),
            "IRAMP_INITIAL_VOLUME": ("initial_volume", int),
            "IRAMP_VISION_CONFIDENCE": ("vision_confidence_threshold", float),
            "IRAMP_VISION_DELTA": ("vision_delta_threshold", int),
            "IRAMP_VISION_INTERVAL": ("vision_check_interval", float),
            "IRAMP_BRIDGE_POLL_INTERVAL": ("bridge_poll_interval", float),
        }
        for env_key, (field_name, kind) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, kind)

        if "power_monitoring" not in overrides:
            config_kwargs["power_monitoring"] = _env_bool(env.get("IRAMP_POWER_MONITORING"), True)

        if "volume_init" not in overrides:
            volume_init = VolumeInitConfig()
            max_steps = env.get("IRAMP_VOLUME_MAX_STEPS")
            startup = env.get("IRAMP_STARTUP_VOLUME")
            config_kwargs["volume_init"] = dataclasses.replace(
                volume_init,
                enabled=_env_bool(env.get("IRAMP_VOLUME_INIT"), volume_init.enabled),
                max_volume_steps=(
                    int(_env_number("IRAMP_VOLUME_MAX_STEPS", max_steps, int))
                    if max_steps is not None
                    else volume_init.max_volume_steps
                ),
                startup_volume=(
                    int(_env_number("IRAMP_STARTUP_VOLUME", startup, int))
                    if startup is not None
                    else volume_init.startup_volume
                ),
            )

        if "power_on" not in overrides:
            power_on = PowerOnConfig()
            delay = env.get("IRAMP_OUTLET_POWER_ON_DELAY")
            config_kwargs["power_on"] = PowerOnConfig(
                outlet_power_check=_env_bool(env.get("IRAMP_OUTLET_POWER_CHECK"), power_on.outlet_power_check),
                outlet_power_on_delay=(
                    float(_env_number("IRAMP_OUTLET_POWER_ON_DELAY", delay, float))
                    if delay is not None
                    else power_on.outlet_power_on_delay
                ),
                auto_hdmi_redirect=_env_bool(env.get("IRAMP_AUTO_HDMI_REDIRECT"), power_on.auto_hdmi_redirect),
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
