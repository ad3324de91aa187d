# hue.py
# Minimal Philips Hue bridge client (v1 REST API) over httpx.
#
# Only the two directory queries the tools need: all lights with their state,
# and all rooms with their light ids.

from typing import Any

import httpx

from ooda_harness.errors import HueError
from ooda_harness.models import Light, Room

DISCOVERY_URL = "https://discovery.meethue.com/"


def discover_bridge(client: httpx.Client | None = None) -> str:
    """Return the LAN address of the first bridge reported by the discovery service."""
    http = client or httpx.Client(timeout=10)
    try:
        response = http.get(DISCOVERY_URL)
        response.raise_for_status()
        bridges = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise HueError(f"Bridge discovery failed: {exc}") from exc
    finally:
        if client is None:
            http.close()

    if not bridges:
        raise HueError("No Hue bridge found on the network.")
    return bridges[0]["internalipaddress"]


class HueBridge:
    """
    Read-only view of a Hue bridge.

    Example:
        bridge = HueBridge("192.168.1.20", username="abc123")
        bridge.get_all_lights()
    """

    def __init__(self, host: str, username: str, client: httpx.Client | None = None) -> None:
        if not username:
            raise ValueError("A Hue username is required.")
        self._base_url = f"http://{host}/api/{username}"
        self._client = client or httpx.Client(timeout=10)

    def close(self) -> None:
        self._client.close()

    def _get(self, resource: str) -> dict[str, Any]:
        try:
            response = self._client.get(f"{self._base_url}/{resource}")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise HueError(f"GET {resource} failed: {exc}") from exc

        # The bridge answers errors with HTTP 200 and a list of error objects.
        if isinstance(data, list):
            errors = [item["error"]["description"] for item in data if "error" in item]
            raise HueError(f"Bridge error on {resource}: {'; '.join(errors) or data}")
        if not isinstance(data, dict):
            raise HueError(f"Unexpected bridge payload for {resource}.")
        return data

    def get_all_lights(self) -> list[Light]:
        lights: list[Light] = []
        for light_id, raw in self._get("lights").items():
            state = raw.get("state", {})
            lights.append(
                Light(
                    id=str(light_id),
                    name=raw.get("name", ""),
                    on=bool(state.get("on", False)),
                    brightness=state.get("bri"),
                    hue=state.get("hue"),
                    saturation=state.get("sat"),
                    color_temperature=state.get("ct"),
                )
            )
        return lights

    def get_all_rooms(self) -> list[Room]:
        rooms: list[Room] = []
        for raw in self._get("groups").values():
            if raw.get("type") != "Room":
                continue
            rooms.append(Room(name=raw.get("name", ""), lights=[str(i) for i in raw.get("lights", [])]))
        return rooms
