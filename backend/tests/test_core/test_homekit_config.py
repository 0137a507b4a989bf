"""Tests for HomeKit bridge configuration and pairing helpers"""
import pytest
from pydantic import ValidationError

from nestcam.config.homekit import (
    DEFAULT_HOMEKIT_PORT,
    HomekitConfig,
    generate_pincode,
    generate_setup_id,
    generate_setup_uri,
    get_homekit_config,
    is_valid_pincode,
)


class TestPincode:

    @pytest.mark.parametrize("code", ["031-45-154", "482-19-736"])
    def test_valid_codes(self, code):
        assert is_valid_pincode(code)

    @pytest.mark.parametrize("code", [
        "111-11-111",
        "000-00-000",
        "123-45-678",
        "12345678",
        "031-45-15a",
        "0314-5-154",
    ])
    def test_invalid_codes(self, code):
        assert not is_valid_pincode(code)

    def test_generated_code_is_valid(self):
        for _ in range(20):
            assert is_valid_pincode(generate_pincode())


class TestSetupUri:

    def test_known_payload(self):
        assert generate_setup_uri("031-45-154", "ABCD") == "X-HM://005X1XS76ABCD"

    def test_generated_setup_id_accepted(self):
        setup_id = generate_setup_id()

        uri = generate_setup_uri("031-45-154", setup_id)

        assert uri.endswith(setup_id)
        assert len(uri) == len("X-HM://") + 9 + 4

    def test_rejects_bad_code(self):
        with pytest.raises(ValueError):
            generate_setup_uri("bad", "ABCD")

    @pytest.mark.parametrize("setup_id", ["ABC", "abcd"])
    def test_rejects_bad_setup_id(self, setup_id):
        with pytest.raises(ValueError):
            generate_setup_uri("031-45-154", setup_id)


class TestHomekitConfig:

    def test_defaults(self, monkeypatch):
        for name in ("HOMEKIT_PORT", "HOMEKIT_BRIDGE_NAME", "HOMEKIT_PINCODE", "HOMEKIT_PERSIST_DIR"):
            monkeypatch.delenv(name, raising=False)

        config = HomekitConfig(_env_file=None)

        assert config.port == DEFAULT_HOMEKIT_PORT
        assert config.bridge_name == "Nest Cam Bridge"
        assert config.pincode is None

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOMEKIT_PORT", "51900")
        monkeypatch.setenv("HOMEKIT_PINCODE", "031-45-154")
        monkeypatch.setenv("HOMEKIT_PERSIST_DIR", str(tmp_path))

        config = get_homekit_config()

        assert config.port == 51900
        assert config.pincode == "031-45-154"
        assert config.persist_file == str(tmp_path / "accessory.state")

    def test_trivial_pincode_rejected(self, monkeypatch):
        monkeypatch.setenv("HOMEKIT_PINCODE", "111-11-111")

        with pytest.raises(ValidationError):
            get_homekit_config()

    def test_ensure_persist_dir(self, tmp_path):
        config = HomekitConfig(_env_file=None, persist_dir=str(tmp_path / "homekit" / "state"))

        config.ensure_persist_dir()

        assert (tmp_path / "homekit" / "state").is_dir()
