"""Tests for the Chromium DevTools host (kiosk/devtools.py)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest
from kiosk.config import DevToolsSettings, Site
from kiosk.devtools import DevToolsClient, DevToolsError, DevToolsHost
from kiosk.dialogs import ActiveDialog
from kiosk.pages import BridgeOptions, build_view_bridge_script
from kiosk.sites import ViewRef

DISCOVERY_URL = "http://127.0.0.1:9222/json"
WS_URL = "ws://127.0.0.1:9222/devtools/page/ABC"
BASE_URL = "http://127.0.0.1:8799"


@pytest.fixture
def settings():
    return DevToolsSettings(discovery_url=DISCOVERY_URL, timeout=2.0)


def targets_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


# DevToolsClient


class TestTargets:
    def test_pick_primary_skips_blank_pages(self):
        pages = [{"url": "about:blank"}, {"url": "https://example.test/"}]
        assert DevToolsClient.pick_primary_target(pages) == pages[1]
        assert DevToolsClient.pick_primary_target([{"url": ""}]) == {"url": ""}
        assert DevToolsClient.pick_primary_target([]) is None

    @patch("kiosk.devtools.httpx.get")
    def test_fetch_filters_pages(self, mock_get, settings):
        mock_get.return_value = targets_response([{"type": "page"}, {"type": "service_worker"}, "junk"])
        assert DevToolsClient(settings).fetch_page_targets() == [{"type": "page"}]
        mock_get.assert_called_once_with(DISCOVERY_URL, timeout=2.0)

    @patch("kiosk.devtools.httpx.get")
    def test_unreachable_endpoint(self, mock_get, settings):
        mock_get.side_effect = httpx.ConnectError("refused")
        with pytest.raises(DevToolsError, match="cannot reach"):
            DevToolsClient(settings).call("Page.reload")

    @patch("kiosk.devtools.httpx.get")
    def test_no_page_targets(self, mock_get, settings):
        mock_get.return_value = targets_response([])
        with pytest.raises(DevToolsError, match="no Chromium page targets"):
            DevToolsClient(settings).call("Page.reload")


class TestCall:
    @pytest.fixture
    def connect(self):
        with (
            patch("kiosk.devtools.httpx.get") as mock_get,
            patch("kiosk.devtools.websocket.create_connection") as mock_connect,
        ):
            mock_get.return_value = targets_response(
                [{"type": "page", "url": "https://example.test/", "webSocketDebuggerUrl": WS_URL}]
            )
            mock_connect.return_value = MagicMock()
            yield mock_connect
            mock_connect.assert_called_with(WS_URL, timeout=2.0)

    @pytest.fixture
    def ws(self, connect):
        return connect.return_value

    def test_waits_for_matching_reply(self, ws, settings):
        ws.recv.side_effect = [
            json.dumps({"method": "Page.frameNavigated", "params": {}}),
            json.dumps({"id": 1, "result": {"frameId": "F"}}),
        ]
        assert DevToolsClient(settings).call("Page.navigate", {"url": "https://a.test/"}) == {"frameId": "F"}
        sent = json.loads(ws.send.call_args.args[0])
        assert sent == {"id": 1, "method": "Page.navigate", "params": {"url": "https://a.test/"}}
        ws.close.assert_not_called()

    def test_connection_is_reused_until_closed(self, connect, ws, settings):
        ws.recv.side_effect = [json.dumps({"id": 1, "result": {}}), json.dumps({"id": 2, "result": {}})]
        client = DevToolsClient(settings)
        client.call("Page.reload")
        client.call("Page.reload")
        connect.assert_called_once()
        client.close()
        ws.close.assert_called_once()

    def test_protocol_error_keeps_connection(self, ws, settings):
        ws.recv.return_value = json.dumps({"id": 1, "error": {"message": "Cannot navigate"}})
        with pytest.raises(DevToolsError, match="Cannot navigate"):
            DevToolsClient(settings).navigate("bogus")
        ws.close.assert_not_called()

    def test_evaluate_returns_value(self, ws, settings):
        ws.recv.return_value = json.dumps({"id": 1, "result": {"result": {"type": "boolean", "value": True}}})
        assert DevToolsClient(settings).evaluate("1 + 1 === 2") is True

    def test_evaluate_raises_on_script_exception(self, ws, settings):
        ws.recv.return_value = json.dumps({"id": 1, "result": {"exceptionDetails": {"text": "Uncaught"}}})
        with pytest.raises(DevToolsError, match="Uncaught"):
            DevToolsClient(settings).evaluate("throw 1")

    def test_socket_failure_drops_connection(self, connect, ws, settings):
        ws.recv.side_effect = [OSError("reset"), json.dumps({"id": 2, "result": {}})]
        client = DevToolsClient(settings)
        with pytest.raises(DevToolsError):
            client.call("Page.reload")
        ws.close.assert_called_once()
        assert client.call("Page.reload") == {}
        assert connect.call_count == 2

    def test_session_scripts_registered_on_every_connection(self, connect, ws, settings):
        ws.recv.side_effect = [
            json.dumps({"id": 1, "result": {"identifier": "1"}}),
            OSError("reset"),
            json.dumps({"id": 3, "result": {"identifier": "2"}}),
            json.dumps({"id": 4, "result": {}}),
        ]
        client = DevToolsClient(settings)
        client.add_session_script("window.__marker = 1;")
        with pytest.raises(DevToolsError):
            client.call("Page.reload")
        client.call("Page.reload")
        methods = [json.loads(call.args[0])["method"] for call in ws.send.call_args_list]
        assert methods == [
            "Page.addScriptToEvaluateOnNewDocument",
            "Page.reload",
            "Page.addScriptToEvaluateOnNewDocument",
            "Page.reload",
        ]
        assert json.loads(ws.send.call_args_list[0].args[0])["params"] == {"source": "window.__marker = 1;"}


# DevToolsHost


@pytest.fixture
def client():
    return Mock(spec=DevToolsClient)


@pytest.fixture
def devtools_host(client, mock_logger):
    return DevToolsHost(client, BASE_URL + "/", logger=mock_logger)


def view(url: str = "https://example.test/", username: str | None = None) -> ViewRef:
    return ViewRef(view_index=0, tab_index=3, site=Site(url=url, duration=30, username=username, password="pw"))


def dialog(kind) -> ActiveDialog:
    return ActiveDialog(kind=kind, token=1, opened_at=0.0, deadline=None)


class TestHostSurfaces:
    def test_attach_navigates_with_credentials(self, devtools_host, client):
        devtools_host.attach_view(view(username="ops"))
        client.navigate.assert_called_once_with("https://ops:pw@example.test/")

    def test_bridge_registered_for_every_document(self, client):
        host = DevToolsHost(client, BASE_URL, bridge_options=BridgeOptions(swipe_mode="off"))
        script = client.add_session_script.call_args.args[0]
        assert script == build_view_bridge_script(BASE_URL, BridgeOptions(swipe_mode="off"))
        assert '"swipe": false' in script
        host.attach_view(view())
        client.evaluate.assert_called_once_with(script)

    def test_bridge_failure_after_navigate_is_logged(self, devtools_host, client, mock_logger):
        client.evaluate.side_effect = DevToolsError("detached")
        devtools_host.attach_view(view())
        mock_logger.warning.assert_called_once()
        client.navigate.assert_called_once()

    def test_detach_and_placeholder(self, devtools_host, client):
        devtools_host.detach_all()
        devtools_host.show_placeholder()
        assert [call.args[0] for call in client.navigate.call_args_list] == [
            f"{BASE_URL}/kiosk/locked",
            f"{BASE_URL}/kiosk/placeholder",
        ]

    def test_navigate_failure_logged(self, devtools_host, client, mock_logger):
        client.navigate.side_effect = DevToolsError("gone")
        devtools_host.attach_view(view())
        mock_logger.error.assert_called_once()
        devtools_host.set_pause_button_visible(True)
        client.evaluate.assert_not_called()


class TestHostDialogs:
    def test_lockout_dialog_shows_lock_page_once(self, devtools_host, client):
        devtools_host.attach_view(view())
        devtools_host.detach_all()
        devtools_host.show_dialog(dialog("lockout"))
        assert client.navigate.call_count == 2
        devtools_host.close_dialog("lockout")
        # only the bridge install after the first navigate
        client.evaluate.assert_called_once()

    def test_lockout_dialog_detaches_if_needed(self, devtools_host, client):
        devtools_host.attach_view(view())
        devtools_host.show_dialog(dialog("lockout"))
        assert client.navigate.call_args.args[0] == f"{BASE_URL}/kiosk/locked"

    def test_other_dialogs_run_in_view_with_bridge(self, devtools_host, client):
        devtools_host.attach_view(view())
        devtools_host.show_dialog(dialog("pause"))
        script = client.evaluate.call_args.args[0]
        assert script.endswith("window.__kioskShowDialog()")
        assert BASE_URL in script
        devtools_host.close_dialog("pause")
        assert client.evaluate.call_args.args[0].endswith("window.__kioskCloseDialog()")

    def test_in_view_failure_is_logged(self, devtools_host, client, mock_logger):
        devtools_host.attach_view(view())
        client.evaluate.side_effect = DevToolsError("detached")
        devtools_host.notify_views("keyboard-auto-closed")
        mock_logger.warning.assert_called_once()

    def test_no_in_view_calls_without_content(self, devtools_host, client):
        devtools_host.show_placeholder()
        devtools_host.show_dialog(dialog("pin"))
        assert devtools_host.evaluate_in_active_view("1") is None
        client.evaluate.assert_not_called()


class TestHostInput:
    def test_printable_key_inserted(self, devtools_host, client):
        devtools_host.send_key("é")
        client.call.assert_called_once_with("Input.insertText", {"text": "é"})

    def test_named_key_dispatched(self, devtools_host, client):
        devtools_host.send_key("Backspace")
        types = [call.args[1]["type"] for call in client.call.call_args_list]
        assert types == ["keyDown", "keyUp"]
        assert client.call.call_args.args[1]["windowsVirtualKeyCode"] == 8

    def test_keyboard_visibility_notifies_view(self, devtools_host, client):
        devtools_host.attach_view(view())
        devtools_host.show_keyboard()
        assert client.evaluate.call_args.args[0].endswith('window.__kioskNotify("keyboard-show")')
        devtools_host.set_pause_button_visible(False)
        assert client.evaluate.call_args.args[0].endswith("window.__kioskSetPauseButton(false)")


class TestPower:
    def test_reload_uses_devtools(self, devtools_host, client):
        devtools_host.request_power_action("reload")
        client.call.assert_called_once_with("Page.reload", {"ignoreCache": True})

    @patch("kiosk.devtools.subprocess.Popen")
    def test_poweroff(self, mock_popen, devtools_host):
        devtools_host.request_power_action("poweroff")
        mock_popen.assert_called_once_with(["sudo", "systemctl", "poweroff"])

    @patch("kiosk.devtools.subprocess.Popen")
    def test_restart_prefers_safe_reboot(self, mock_popen, devtools_host, tmp_path, monkeypatch):
        script = tmp_path / "safe-reboot.sh"
        monkeypatch.setattr("kiosk.devtools.SAFE_REBOOT_SCRIPT", script)
        devtools_host.request_power_action("restart")
        assert mock_popen.call_args.args[0] == ["sudo", "systemctl", "reboot"]
        script.touch()
        devtools_host.request_power_action("restart")
        assert mock_popen.call_args.args[0] == ["sudo", str(script), "kiosk: power menu"]

    @patch("kiosk.devtools.subprocess.Popen", side_effect=FileNotFoundError("sudo"))
    def test_command_failure_logged(self, _mock_popen, devtools_host, mock_logger):
        devtools_host.request_power_action("poweroff")
        mock_logger.error.assert_called_once()
