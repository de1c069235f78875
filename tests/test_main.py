from pathlib import Path
from unittest.mock import MagicMock

import pytest

import dmg_creator.main as main_mod
from dmg_creator.errors import AlreadyExistsError, FilesystemError
from dmg_creator.request import BuildRequest

ARGS = [
    "--app-name", "Greeter",
    "--app-binary-path", "/src/Greeter",
    "--bundle-identifier", "com.example.greeter",
    "--icon-path", "/src/icon.png",
    "--output-dir", "/out",
]


@pytest.fixture
def fake_run(monkeypatch):
    run = MagicMock(return_value=Path("/out/Greeter.dmg"))
    monkeypatch.setattr(main_mod, "run", run)
    monkeypatch.setattr(main_mod, "configure_logging", MagicMock(return_value=None))
    return run


def test_success(fake_run, capsys):
    assert main_mod.main(ARGS) == 0

    req = fake_run.call_args.args[0]
    assert req == BuildRequest(
        app_name="Greeter",
        app_binary_path="/src/Greeter",
        bundle_identifier="com.example.greeter",
        icon_path="/src/icon.png",
        output_dir="/out",
    )
    assert "DMG created successfully at: /out/Greeter.dmg" in capsys.readouterr().out


def test_camel_case_flags(fake_run):
    argv = [
        "--appName", "Greeter",
        "--appBinaryPath", "/src/Greeter",
        "--bundleIdentifier", "com.example.greeter",
        "--iconPath", "/src/icon.png",
        "--outputDir", "/out",
    ]
    assert main_mod.main(argv) == 0
    assert fake_run.call_args.args[0].app_name == "Greeter"


def test_missing_flag_is_a_usage_error(fake_run, capsys):
    with pytest.raises(SystemExit) as exc:
        main_mod.main(ARGS[:-2])
    assert exc.value.code == 2
    assert "--output-dir" in capsys.readouterr().err
    fake_run.assert_not_called()


def test_build_error_is_reported(fake_run, capsys):
    err = AlreadyExistsError("/out/Greeter.dmg").wrap("error when creating app DMG")
    fake_run.side_effect = err

    assert main_mod.main(ARGS) == 1

    captured = capsys.readouterr()
    assert "error when creating app DMG: DMG file already exists: [/out/Greeter.dmg]" in captured.err
    assert "successfully" not in captured.out


def test_cleanup_error_is_reported_too(fake_run, capsys):
    err = AlreadyExistsError("/out/Greeter.dmg")
    err.cleanup_error = FilesystemError("device busy", path="/out/tmp-Greeter-x")
    fake_run.side_effect = err

    assert main_mod.main(ARGS) == 1
    assert "(cleanup also failed: device busy)" in capsys.readouterr().err


def test_config_is_loaded(fake_run, tmp_path):
    cfg_path = tmp_path / "build.yaml"
    cfg_path.write_text("image:\n  size: 50m\n", encoding="utf-8")

    assert main_mod.main(ARGS + ["--config", str(cfg_path)]) == 0
    assert fake_run.call_args.kwargs["config"].image_size == "50m"


def test_bad_config(fake_run, tmp_path, capsys):
    missing = tmp_path / "nope.yaml"

    assert main_mod.main(ARGS + ["--config", str(missing)]) == 1

    assert f"error when loading build config [{missing}]" in capsys.readouterr().err
    fake_run.assert_not_called()


def test_verbose_and_log_flags_reach_logging(fake_run):
    main_mod.main(ARGS + ["-v", "--log", "/tmp/x.log"])
    main_mod.configure_logging.assert_called_once_with(log_path="/tmp/x.log", verbose=True)


@pytest.mark.parametrize("text", ["poll:\n  max_attempts: 0\n", "icons:\n  sizes: [x]\n"])
def test_invalid_config_values_exit_with_error(fake_run, tmp_path, capsys, text):
    cfg_path = tmp_path / "build.yaml"
    cfg_path.write_text(text, encoding="utf-8")

    assert main_mod.main(ARGS + ["--config", str(cfg_path)]) == 1

    err = capsys.readouterr().err
    assert f"error when loading build config [{cfg_path}]: invalid build config" in err
    fake_run.assert_not_called()
