"""Device registry for robot-swarm.

Each device is described by one YAML file in the device configuration
directory. Files are loaded in lexical order and the resulting devices are
immutable for the lifetime of the run.

Example YAML (``devices_conf/pixel7.yaml``):
    tag: "pixel7"
    name: "Pixel 7"
    udid: "emulator-5554"
    host: "127.0.0.1"
    port: 4723
    capabilities:
      platformName: "Android"
      appium:automationName: "UiAutomator2"
    variables:
      APP_PACKAGE: "com.example.app"
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from robot_swarm.errors import ConfigurationError

DEVICE_FILE_PATTERNS = ("*.yaml", "*.yml")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_BASE_PATH = "/wd/hub"

_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class Device:
    """A configured mobile device and the Appium server that drives it.

    Attributes:
        tag: Unique tag used to namespace result artifacts.
        name: Human-readable device name.
        port: Port of the device's Appium server.
        host: Address the Appium server binds to.
        udid: Device serial / UDID passed to Appium, if any.
        base_path: Appium server base path.
        capabilities: Desired capabilities for the Appium session.
        variables: Extra Robot Framework variables for this device.
    """

    tag: str
    name: str
    port: int
    host: str = DEFAULT_HOST
    udid: str | None = None
    base_path: str = DEFAULT_BASE_PATH
    capabilities: Mapping[str, Any] = field(default_factory=dict, hash=False)
    variables: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "capabilities", MappingProxyType(dict(self.capabilities)))
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

    @property
    def server_url(self) -> str:
        """Return the Appium server URL the test engine connects to."""
        return f"http://{self.host}:{self.port}{self.base_path.rstrip('/')}"

    @property
    def status_url(self) -> str:
        """Return the Appium ``/status`` endpoint used for readiness polling."""
        return f"{self.server_url}/status"

    def desired_capabilities(self) -> dict[str, Any]:
        """Return capabilities with the device UDID filled in."""
        caps = dict(self.capabilities)
        if self.udid and "appium:udid" not in caps:
            caps["appium:udid"] = self.udid
        return caps


def _parse_device(path: Path, data: Any) -> Device:
    """Build a Device from one parsed YAML document."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"Device config must be a YAML mapping: {path}")

    tag = str(data.get("tag") or path.stem)
    if not _TAG_PATTERN.match(tag):
        raise ConfigurationError(f"Invalid device tag '{tag}' in {path}")

    port = data.get("port")
    if port is None:
        raise ConfigurationError(f"Missing required field: port ({path})")
    try:
        port = int(port)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid port '{port}' in {path}") from exc

    capabilities = data.get("capabilities", {}) or {}
    if not isinstance(capabilities, dict):
        raise ConfigurationError(f"capabilities must be a mapping ({path})")

    variables = data.get("variables", {}) or {}
    if not isinstance(variables, dict):
        raise ConfigurationError(f"variables must be a mapping ({path})")

    udid = data.get("udid")
    return Device(
        tag=tag,
        name=str(data.get("name", tag)),
        port=port,
        host=str(data.get("host", DEFAULT_HOST)),
        udid=str(udid) if udid is not None else None,
        base_path=str(data.get("base_path", DEFAULT_BASE_PATH)),
        capabilities=dict(capabilities),
        variables=dict(variables),
    )


def find_device_files(conf_dir: str | Path) -> list[Path]:
    """Return device configuration files in lexical order.

    Args:
        conf_dir: Device configuration directory.

    Returns:
        Sorted list of YAML files. Empty if the directory doesn't exist.
    """
    conf_dir = Path(conf_dir)
    if not conf_dir.is_dir():
        return []
    files: set[Path] = set()
    for pattern in DEVICE_FILE_PATTERNS:
        files.update(p for p in conf_dir.glob(pattern) if p.is_file())
    return sorted(files, key=lambda p: p.name)


def load_devices(conf_dir: str | Path) -> list[Device]:
    """Load all devices from a configuration directory.

    Args:
        conf_dir: Directory holding one YAML file per device.

    Returns:
        Devices in lexical file order. Empty if no files were found.

    Raises:
        ConfigurationError: If a file is malformed or two devices share a
            tag or a port.
    """
    devices: list[Device] = []
    seen_tags: dict[str, Path] = {}
    seen_ports: dict[tuple[str, int], Path] = {}

    for path in find_device_files(conf_dir):
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse device config {path}: {exc}") from exc

        device = _parse_device(path, data)

        if device.tag in seen_tags:
            raise ConfigurationError(
                f"Duplicate device tag '{device.tag}' in {path} and {seen_tags[device.tag]}"
            )
        endpoint = (device.host, device.port)
        if endpoint in seen_ports:
            raise ConfigurationError(
                f"Port {device.port} on {device.host} used by both {path} and {seen_ports[endpoint]}"
            )
        seen_tags[device.tag] = path
        seen_ports[endpoint] = path
        devices.append(device)

    return devices
