import json
import sys

import atheris

with atheris.instrument_imports():
    from kiosk.config import parse_config
    from kiosk.sites import SiteRegistry


def TestOneInput(data: bytes) -> None:
    """Arbitrary JSON must always load into a usable config and registry."""
    try:
        document = json.loads(data.decode("utf-8", errors="ignore"))
    except ValueError:
        return
    config = parse_config(document)
    registry = SiteRegistry.load(config.tabs)
    assert len(registry.visible) + len(registry.hidden) == len(config.tabs)
    for view in registry.hidden:
        assert view.site.duration == -1
    home = registry.home_view_index(config.home_tab_index)
    if home is not None:
        assert not registry.visible[home].hidden


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
