import logging
from collections.abc import Mapping
from typing import Any

from voice_dispatch.tools.base import ToolDefinition, define_tool
from voice_dispatch.tools.schema import ToolSchema

logger = logging.getLogger(__name__)

DEVICES = ("living_room_light", "kitchen_light", "bedroom_fan")


async def device_control(
    device_name: str,
    action: str,
    brightness: int | None,
    context: Mapping[str, Any],
) -> str:
    """Control smart home devices (mock implementation)."""
    # Mock: in production this would call python-kasa or similar
    user = context.get("user", "anonymous")
    logger.info(f"Mock device control by {user}: {device_name} -> {action}")
    if brightness is not None and action == "on":
        return f"OK: Device '{device_name}' turned on at {brightness}% brightness."
    return f"OK: Device '{device_name}' turned {action}."


def device_control_tool(devices: tuple[str, ...] = DEVICES) -> ToolDefinition:
    schema = (
        ToolSchema()
        .string(
            "device_name",
            "Name of the device to control (e.g., 'living_room_light')",
            enum=list(devices),
        )
        .string("action", "Action to perform on the device", enum=["on", "off"])
        .declare_optional(
            "brightness",
            "integer",
            "Brightness percentage when turning a light on",
            minimum=1,
            maximum=100,
        )
    )
    return define_tool(
        device_control,
        "Control a smart home device. Can turn devices on or off.",
        schema,
    )
