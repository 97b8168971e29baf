"""WebXR device emulation shim.

``navigator.xr.isSessionSupported`` needs a device to resolve, so a WebXR
polyfill is installed together with a fixed headset definition. Both are
registered as init scripts: they run before any application script on every
navigation.
"""

from __future__ import annotations

import json
from pathlib import Path

from playwright.async_api import Page

# Device definition from the Immersive Web Emulator (meta-quest/immersive-web-emulator)
QUEST_2_DEVICE = {
    "id": "Oculus Quest 2",
    "name": "Oculus Quest 2",
    "shortName": "Quest 2",
    "profile": "oculus-touch-v3",
    "modes": ["inline", "immersive-vr", "immersive-ar"],
    "headset": {"hasPosition": True, "hasRotation": True},
    "controllers": [
        {
            "id": "Oculus Touch V3 (Left)",
            "buttonNum": 7,
            "primaryButtonIndex": 1,
            "primarySqueezeButtonIndex": 2,
            "hasPosition": True,
            "hasRotation": True,
            "hasSqueezeButton": True,
            "handedness": "left",
        },
        {
            "id": "Oculus Touch V3 (Right)",
            "buttonNum": 7,
            "primaryButtonIndex": 1,
            "primarySqueezeButtonIndex": 2,
            "hasPosition": True,
            "hasRotation": True,
            "hasSqueezeButton": True,
            "handedness": "right",
        },
    ],
    "polyfillInputMapping": {
        "axes": [2, 3, 0, 1],
        "buttons": [1, 2, None, 0, 3, 4, None],
    },
}


def device_init_script(device: dict | None = None) -> str:
    """Script announcing the emulated device to the polyfill."""
    payload = json.dumps(device or QUEST_2_DEVICE)
    return (
        "window.dispatchEvent(new CustomEvent('pa-device-init', "
        f"{{detail: {{deviceDefinition: {payload}}}}}));"
    )


async def install_webxr_emulation(page: Page, polyfill: Path) -> None:
    """Install the polyfill, then announce the emulated headset."""
    await page.add_init_script(path=str(polyfill))
    await page.add_init_script(script=device_init_script())
