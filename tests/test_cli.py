from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

from csinstaller import cli
from csinstaller import config as config_module
from csinstaller.build_tool import Device, tool_executable_path
from csinstaller.exceptions import BuildToolError, CatalogFetchError

pytestmark = [pytest.mark.unit]


def _write_config(data):
    Path(config_module.CONFIG_FILE).write_text(yaml.safe_dump(data))


@pytest.fixture
def cached_tool(tmp_path):
    """Write a config pointing at a cache dir holding a fake arduino-cli executable."""
    cache_dir = tmp_path / "tool-cache"
    cache_dir.mkdir()
    tool_path = Path(tool_executable_path(str(cache_dir)))
    tool_path.write_text("")
    _write_config({"TOOL_CACHE_DIR": str(cache_dir), "TOOL_TIMEOUT": 45})
    return str(tool_path)


@pytest.fixture
def devices():
    return [
        Device("/dev/ttyACM0", "serial", "Arduino Mega", "arduino:avr:mega"),
        Device("/dev/ttyUSB0", "serial", None, None),
    ]


def test_version_command(mocker, capsys):
    mocker.patch("csinstaller.cli.get_version", return_value="1.2.3")

    assert cli.run(["version"]) == 0
    assert "csinstaller 1.2.3" in capsys.readouterr().out


def test_install_is_default_command(mocker):
    mock_orchestrator = mocker.patch("csinstaller.cli.InstallerOrchestrator")
    mock_orchestrator.return_value.run.return_value = MagicMock(exit_code=0)

    assert cli.run([]) == 0

    config = mock_orchestrator.call_args.args[0]
    assert config["BUILD_DIR"] is None
    assert config["SHOW_PROGRESS"] is True


def test_install_applies_overrides(mocker, tmp_path):
    mock_orchestrator = mocker.patch("csinstaller.cli.InstallerOrchestrator")
    mock_orchestrator.return_value.run.return_value = MagicMock(exit_code=15)

    exit_code = cli.run(
        [
            "install",
            "--build-dir",
            str(tmp_path / "b"),
            "--timeout",
            "12.5",
            "--no-progress",
        ]
    )

    assert exit_code == 15
    config = mock_orchestrator.call_args.args[0]
    assert config["BUILD_DIR"] == str(tmp_path / "b")
    assert config["REQUEST_TIMEOUT"] == 12.5
    assert config["SHOW_PROGRESS"] is False


def test_log_level_option(mocker):
    mocker.patch("csinstaller.cli.InstallerOrchestrator").return_value.run.return_value = (
        MagicMock(exit_code=0)
    )
    mock_set_level = mocker.patch("csinstaller.cli.log_utils.set_log_level")

    cli.run(["--log-level", "DEBUG", "install"])

    mock_set_level.assert_called_once_with("DEBUG")


@pytest.mark.parametrize(
    "argv",
    [
        ["install", "--log-level", "WARNING"],
        ["--log-level", "DEBUG", "install", "--log-level", "WARNING"],
    ],
)
def test_log_level_after_subcommand(mocker, argv):
    mocker.patch("csinstaller.cli.InstallerOrchestrator").return_value.run.return_value = (
        MagicMock(exit_code=0)
    )
    mock_set_level = mocker.patch("csinstaller.cli.log_utils.set_log_level")

    assert cli.run(argv) == 0

    mock_set_level.assert_called_once_with("WARNING")


def test_common_options_before_subcommand_are_kept():
    args = cli.build_parser().parse_args(
        ["--config", "a.yaml", "--log-level", "INFO", "devices"]
    )

    assert args.config == "a.yaml"
    assert args.log_level == "INFO"


def test_config_after_subcommand(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("REQUEST_TIMEOUT: -3\n")

    assert cli.run(["devices", "--config", str(bad)]) == 2


def test_invalid_config_exits_with_configuration_status(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("REQUEST_TIMEOUT: -3\n")

    assert cli.run(["--config", str(bad), "install"]) == 2


def test_installer_error_maps_to_exit_code(mocker):
    mocker.patch(
        "csinstaller.cli.InstallerOrchestrator"
    ).return_value.run.side_effect = CatalogFetchError("offline")

    assert cli.run(["install"]) == 12


def test_keyboard_interrupt(mocker):
    mocker.patch(
        "csinstaller.cli.InstallerOrchestrator"
    ).return_value.run.side_effect = KeyboardInterrupt

    assert cli.run(["install"]) == 130


def test_main_exits_with_status(mocker):
    mocker.patch("csinstaller.cli.run", return_value=13)

    with pytest.raises(SystemExit) as excinfo:
        cli.main()

    assert excinfo.value.code == 13


def test_devices_without_cached_tool(tmp_path):
    _write_config({"TOOL_CACHE_DIR": str(tmp_path / "empty")})

    assert cli.run(["devices"]) == 16


def test_devices_lists_connected_boards(mocker, cached_tool, devices, capsys):
    mock_tool_cls = mocker.patch("csinstaller.cli.BuildTool")
    mock_tool_cls.return_value.list_devices.return_value = devices

    assert cli.run(["devices"]) == 0

    mock_tool_cls.assert_called_once_with(cached_tool, timeout=45)
    out = capsys.readouterr().out
    assert "/dev/ttyACM0 - Arduino Mega (arduino:avr:mega)" in out
    assert "/dev/ttyUSB0 - Unknown board (unknown FQBN)" in out


def test_devices_none_connected(mocker, cached_tool, capsys):
    mocker.patch("csinstaller.cli.BuildTool").return_value.list_devices.return_value = []

    assert cli.run(["devices"]) == 0
    assert "No connected devices found." in capsys.readouterr().out


def test_upload_to_named_port(mocker, cached_tool, devices, tmp_path):
    tool = mocker.patch("csinstaller.cli.BuildTool").return_value
    tool.list_devices.return_value = devices
    mock_select = mocker.patch("csinstaller.cli.select_device")
    sketch = str(tmp_path / "CommandStation-EX")

    assert cli.run(["upload", "--sketch", sketch, "--port", "/dev/ttyACM0"]) == 0

    tool.upload.assert_called_once_with(devices[0], sketch, fqbn=None)
    mock_select.assert_not_called()


def test_upload_prompts_for_device(mocker, cached_tool, devices, tmp_path):
    tool = mocker.patch("csinstaller.cli.BuildTool").return_value
    tool.list_devices.return_value = devices
    mocker.patch("csinstaller.cli.select_device", return_value=devices[1])
    sketch = str(tmp_path / "sketch")

    assert (
        cli.run(["upload", "--sketch", sketch, "--fqbn", "arduino:avr:uno"]) == 0
    )

    tool.upload.assert_called_once_with(devices[1], sketch, fqbn="arduino:avr:uno")


def test_upload_unknown_port(mocker, cached_tool, devices):
    tool = mocker.patch("csinstaller.cli.BuildTool").return_value
    tool.list_devices.return_value = devices

    assert cli.run(["upload", "--sketch", "s", "--port", "COM9"]) == 16
    tool.upload.assert_not_called()


def test_upload_without_devices(mocker, cached_tool):
    tool = mocker.patch("csinstaller.cli.BuildTool").return_value
    tool.list_devices.return_value = []
    mocker.patch("csinstaller.cli.select_device", return_value=None)

    assert cli.run(["upload", "--sketch", "s"]) == 1
    tool.upload.assert_not_called()


def test_upload_failure_maps_to_build_tool_status(mocker, cached_tool, devices):
    tool = mocker.patch("csinstaller.cli.BuildTool").return_value
    tool.list_devices.return_value = devices
    tool.upload.side_effect = BuildToolError("upload failed", returncode=1)

    assert cli.run(["upload", "--sketch", "s", "--port", "/dev/ttyACM0"]) == 16
