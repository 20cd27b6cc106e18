"""
In-memory cache of the device's last reported state.
"""

import json
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from .data_models import DeviceState
from .errors import DecodeError
from .timezone_utils import utc_now

logger = logging.getLogger(__name__)


def _optional_int(payload: Dict[str, Any], key: str, minimum: Optional[int] = None) -> Optional[int]:
    """Read an integer field, returning None when absent or malformed"""
    value = payload.get(key)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            logger.debug(f"Ignoring non-integer {key}: {value!r}")
            return None
        value = int(value)
    if not isinstance(value, int):
        logger.debug(f"Ignoring malformed {key}: {value!r}")
        return None
    if minimum is not None and value < minimum:
        logger.debug(f"Ignoring out-of-range {key}: {value}")
        return None
    return value


def decode_telemetry(raw: Union[bytes, str], observed_at: datetime) -> DeviceState:
    """Parse a telemetry payload into a DeviceState.

    The payload must be a JSON object carrying a boolean `ledState`.
    `uptime`, `freeHeap` and `rssi` are optional; when missing or of the
    wrong type they are recorded as unknown rather than defaulted. Any
    timestamp sent by the device is ignored.

    Raises:
        DecodeError: payload is not UTF-8 JSON, not an object, or has no
            usable `ledState`
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else str(raw)
        payload = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"Telemetry is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise DecodeError(f"Telemetry must be a JSON object, got {type(payload).__name__}")

    led_state = payload.get("ledState")
    if not isinstance(led_state, bool):
        raise DecodeError(f"Telemetry has no boolean ledState: {led_state!r}")

    return DeviceState(
        led_state=led_state,
        observed_at=observed_at,
        uptime_seconds=_optional_int(payload, "uptime", minimum=0),
        free_heap_bytes=_optional_int(payload, "freeHeap", minimum=0),
        signal_strength_dbm=_optional_int(payload, "rssi"),
    )


class StateCache:
    """Holds the single most recent DeviceState.

    `replace` swaps the whole snapshot under a short-held lock; `read` just
    returns the current reference, so readers never wait and never see a
    half-built snapshot.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self._state = DeviceState.initial(clock())
        self._version = 0

    @property
    def version(self) -> int:
        """Number of successful replacements so far"""
        return self._version

    def read(self) -> DeviceState:
        return self._state

    def replace(self, raw: Union[bytes, str]) -> DeviceState:
        """Decode `raw` and make it the current snapshot.

        On DecodeError the previous snapshot is left untouched.
        """
        with self._lock:
            # Receipt time is taken under the lock so commits follow it
            state = decode_telemetry(raw, self._clock())
            self._state = state
            self._version += 1
        logger.debug(f"Device state updated (v{self._version}): {state}")
        return state
