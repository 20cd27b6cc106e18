"""
MQTT topic layout for a single device.

    device/<device_id>/data      telemetry, device -> bridge (JSON)
    device/<device_id>/command   commands, bridge -> device (plain text)
    device/<device_id>/status    liveness, device -> bridge (plain text)

The device id is validated by the configuration layer; nothing here
re-checks it.
"""

from dataclasses import dataclass, asdict
from typing import Dict

TOPIC_ROOT = "device"


@dataclass(frozen=True)
class TopicSet:
    """The three channels belonging to one device"""
    telemetry: str
    command: str
    status: str

    def to_dict(self) -> Dict[str, str]:
        data = asdict(self)
        # Key names match the HTTP API
        return {"data": data["telemetry"], "command": data["command"], "status": data["status"]}


def topics_for(device_id: str) -> TopicSet:
    base = f"{TOPIC_ROOT}/{device_id}"
    return TopicSet(
        telemetry=f"{base}/data",
        command=f"{base}/command",
        status=f"{base}/status",
    )
