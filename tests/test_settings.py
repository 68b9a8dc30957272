import pytest

from imgrouter.config.settings import Settings, ImageInputMode, ImageBase64Format
from imgrouter.constants import MAX_IMAGE_BYTES
from imgrouter.errors.exceptions import ConfigurationError


def test_defaults():
    settings = Settings()

    assert settings.api_timeout == 120
    assert settings.image.fetch_timeout == 10
    assert settings.image.max_bytes == MAX_IMAGE_BYTES
    assert settings.image.allow_private_network is False
    assert settings.image.input_mode == ImageInputMode.FETCH_TO_BASE64
    assert settings.image.base64_format == ImageBase64Format.DATA_URL
    assert settings.modelscope.task_type == "image_generation"
    assert settings.modelscope.upload_field == "image"
    assert settings.modelscope.poll_interval == 5
    assert settings.modelscope.max_poll_attempts == 60


def test_nested_environment_variables(monkeypatch):
    monkeypatch.setenv("IMAGE__MAX_BYTES", "2048")
    monkeypatch.setenv("IMAGE__ALLOW_PRIVATE_NETWORK", "true")
    monkeypatch.setenv("MODELSCOPE__MAX_POLL_ATTEMPTS", "3")
    monkeypatch.setenv("ENFORCE_SUPPORTED_MODELS", "true")

    settings = Settings()

    assert settings.image.max_bytes == 2048
    assert settings.image.allow_private_network is True
    assert settings.modelscope.max_poll_attempts == 3
    assert settings.modelscope.api_url == "https://api-inference.modelscope.cn/v1"
    assert settings.enforce_supported_models is True


def test_yaml_overlay(tmp_path):
    config_file = tmp_path / "imgrouter.yaml"
    config_file.write_text(
        "log_level: DEBUG\n"
        "image:\n"
        "  input_mode: passthrough\n"
        "gitee:\n"
        "  api_url: https://gitee.internal/v1/images/generations\n"
        "  default_model: Kolors\n"
        "  supported_models: Kolors, FLUX.1-dev\n"
    )

    settings = Settings.load(config_path=str(config_file))

    assert settings.log_level == "DEBUG"
    assert settings.image.input_mode == ImageInputMode.PASSTHROUGH
    assert settings.gitee.default_model == "Kolors"
    assert settings.gitee.supported_models == ["Kolors", "FLUX.1-dev"]
    assert settings.config_path == str(config_file)


def test_overrides_win_over_yaml(tmp_path):
    config_file = tmp_path / "imgrouter.yaml"
    config_file.write_text("log_level: DEBUG\n")

    settings = Settings.load(config_path=str(config_file), log_level="ERROR")

    assert settings.log_level == "ERROR"


def test_missing_yaml_file_is_ignored(tmp_path):
    settings = Settings.load(config_path=str(tmp_path / "absent.yaml"))
    assert settings.log_level == "INFO"


def test_yaml_must_hold_a_mapping(tmp_path):
    config_file = tmp_path / "imgrouter.yaml"
    config_file.write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError):
        Settings.load(config_path=str(config_file))
