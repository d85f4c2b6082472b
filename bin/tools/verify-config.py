#!/usr/bin/env python3
"""Sanity-check a kiosk config.json and the files the session depends on."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

try:
    from kiosk.config import KioskConfig, KioskSettings, parse_config
except ModuleNotFoundError:
    repo_dir = Path(__file__).resolve().parents[2]
    if str(repo_dir) not in sys.path:
        sys.path.insert(0, str(repo_dir))
    from kiosk.config import KioskConfig, KioskSettings, parse_config

from kiosk.hidden import PinStore
from kiosk.sites import SiteRegistry

Status = Literal["ok", "warn", "fail"]


@dataclass(slots=True)
class CheckResult:
    """Container for an individual verification step."""

    name: str
    status: Status
    detail: str


def check_config(config: KioskConfig, raw: dict) -> list[CheckResult]:
    results: list[CheckResult] = []
    raw_tabs = raw.get("tabs") if isinstance(raw.get("tabs"), list) else []
    dropped = len(raw_tabs) - len(config.tabs)
    registry = SiteRegistry.load(config.tabs)
    results.append(
        CheckResult(
            "sites",
            "fail" if not registry.visible else ("warn" if dropped else "ok"),
            f"{len(registry.visible)} visible, {len(registry.hidden)} hidden"
            + (f", {dropped} dropped (missing url)" if dropped else ""),
        )
    )
    rotating = sum(1 for view in registry.visible if view.site.is_rotating)
    results.append(
        CheckResult(
            "rotation",
            "ok" if rotating > 1 or len(registry.visible) <= 1 else "warn",
            f"{rotating} rotating site(s)",
        )
    )
    if config.home_enabled:
        home = registry.home_view_index(config.home_tab_index)
        results.append(
            CheckResult(
                "home",
                "ok" if home is not None else "fail",
                f"homeTabIndex {config.home_tab_index}" + ("" if home is not None else " is missing or hidden"),
            )
        )
    if config.enable_password_protection:
        if not config.lockout_enabled:
            results.append(CheckResult("lockout", "fail", "password protection on but lockoutPasswordHash is empty"))
        elif len(config.lockout_password_hash) != 64:
            results.append(CheckResult("lockout", "fail", "lockoutPasswordHash is not a SHA-256 hex digest"))
        else:
            triggers = []
            if config.lockout_timeout_minutes:
                triggers.append(f"idle {config.lockout_timeout_minutes} min")
            if config.lockout_at_time:
                triggers.append(f"at {config.lockout_at_time}")
            if config.require_password_on_boot:
                triggers.append("on boot")
            results.append(CheckResult("lockout", "ok", ", ".join(triggers) or "display wake only"))
    return results


def check_pin(pin_file: Path, has_hidden: bool) -> CheckResult:
    if not has_hidden:
        return CheckResult("pin", "ok", "no hidden sites")
    setting = PinStore(pin_file).read()
    if setting is None:
        return CheckResult("pin", "warn", f"{pin_file} missing or invalid; hidden sites unavailable")
    return CheckResult("pin", "ok", "PIN required" if setting.required else "PIN disabled")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("config", nargs="?", help="Path to config.json (defaults to KIOSK_CONFIG_PATH)")
    args = parser.parse_args()
    logging.basicConfig(level=logging.WARNING, format="  %(message)s")

    settings = KioskSettings.from_env()
    path = Path(args.config) if args.config else settings.config_path
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        print(f"[fail] config: {path} not found")
        return 1
    except (OSError, ValueError) as exc:
        print(f"[fail] config: cannot parse {path}: {exc}")
        return 1
    if not isinstance(raw, dict):
        print(f"[fail] config: {path} is not a JSON object")
        return 1

    config = parse_config(raw)
    results = check_config(config, raw)
    results.append(check_pin(settings.pin_file, any(site.is_hidden for site in config.tabs)))
    for result in results:
        print(f"[{result.status}] {result.name}: {result.detail}")
    return 1 if any(result.status == "fail" for result in results) else 0


if __name__ == "__main__":
    sys.exit(main())
