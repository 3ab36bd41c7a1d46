"""User-agent parsing for login history."""

from __future__ import annotations

from dataclasses import dataclass

from user_agents import parse

from thumbai.schemas import DeviceType


@dataclass(frozen=True)
class DeviceInfo:
    browser: str | None
    os: str | None
    device: str | None
    device_type: DeviceType


UNKNOWN_DEVICE = DeviceInfo(browser=None, os=None, device=None, device_type=DeviceType.UNKNOWN)


def _label(family: str | None, version: str | None) -> str | None:
    if not family or family == "Other":
        return None
    return f"{family} {version}".strip() if version else family


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """Extract browser, OS and device class from a user-agent string."""
    if not user_agent:
        return UNKNOWN_DEVICE

    ua = parse(user_agent)

    if ua.is_bot:
        device_type = DeviceType.BOT
    elif ua.is_tablet:
        device_type = DeviceType.TABLET
    elif ua.is_mobile:
        device_type = DeviceType.MOBILE
    elif ua.is_pc:
        device_type = DeviceType.DESKTOP
    else:
        device_type = DeviceType.UNKNOWN

    device = ua.device.family if ua.device.family not in (None, "Other") else None

    return DeviceInfo(
        browser=_label(ua.browser.family, ua.browser.version_string),
        os=_label(ua.os.family, ua.os.version_string),
        device=device,
        device_type=device_type,
    )
