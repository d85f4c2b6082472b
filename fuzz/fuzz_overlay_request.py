import json
import sys

import atheris

with atheris.instrument_imports():
    from kiosk.overlay_server import BadRequest, build_event

_PATHS = (
    "/kiosk/activity",
    "/kiosk/dialog",
    "/kiosk/password",
    "/kiosk/pin",
    "/kiosk/hidden",
    "/kiosk/navigate",
    "/kiosk/pause",
    "/kiosk/keyboard",
    "/kiosk/power",
)


def TestOneInput(data: bytes) -> None:
    """POST bodies either map to an event or raise BadRequest."""
    if not data:
        return
    path = _PATHS[data[0] % len(_PATHS)]
    try:
        body = json.loads(data[1:].decode("utf-8", errors="ignore"))
    except ValueError:
        return
    if not isinstance(body, dict):
        return
    try:
        build_event(path, body)
    except BadRequest:
        pass


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
