import dataclasses
import json

import pytest

from txpolicy.policy.feerate import FeeRate
from txpolicy.policy.settings import (
    DUST_RELAY_TX_FEE,
    MAX_OP_RETURN_RELAY,
    ConfigError,
    PolicySettings,
    load_settings,
)


def test_defaults(settings: PolicySettings) -> None:
    assert settings.dust_relay_fee == FeeRate(DUST_RELAY_TX_FEE)
    assert settings.incremental_relay_fee == FeeRate(1000)
    assert settings.bytes_per_sigop == 20
    assert settings.bytes_per_sigop_strict == 20
    assert settings.accept_datacarrier is True
    assert settings.max_datacarrier_bytes == MAX_OP_RETURN_RELAY
    assert settings.permit_bare_multisig is True
    settings.validate()


def test_settings_are_frozen(settings: PolicySettings) -> None:
    with pytest.raises(dataclasses.FrozenInstanceError):
        settings.bytes_per_sigop = 10  # type: ignore


def test_from_mapping_converts_values() -> None:
    settings = PolicySettings.from_mapping(
        {"dust_relay_fee": 1000, "permit_bare_multisig": "no", "max_datacarrier_bytes": "40"}
    )
    assert settings.dust_relay_fee == FeeRate(1000)
    assert settings.permit_bare_multisig is False
    assert settings.max_datacarrier_bytes == 40


@pytest.mark.parametrize(
    "values",
    [
        {"no_such_setting": 1},
        {"bytes_per_sigop": -1},
        {"bytes_per_sigop": "many"},
        {"bytes_per_sigop": True},
        {"accept_datacarrier": "maybe"},
        {"dust_relay_fee": -5},
    ],
)
def test_from_mapping_rejects_bad_values(values) -> None:
    with pytest.raises(ConfigError):
        PolicySettings.from_mapping(values)


def test_replace_validates(settings: PolicySettings) -> None:
    assert settings.replace(bytes_per_sigop_strict=0).bytes_per_sigop_strict == 0
    with pytest.raises(ConfigError):
        settings.replace(max_datacarrier_bytes=-1)


def test_to_dict_round_trip(settings: PolicySettings) -> None:
    data = settings.to_dict()
    assert data["dust_relay_fee"] == DUST_RELAY_TX_FEE
    assert json.loads(json.dumps(data)) == data
    assert PolicySettings.from_mapping(data) == settings


def test_load_defaults() -> None:
    assert load_settings(env={}) == PolicySettings()


def test_load_from_file_and_env(tmp_path) -> None:
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({"dust_relay_fee": 1000, "bytes_per_sigop": 30}))

    settings = load_settings(path, env={"TXPOLICY_BYTES_PER_SIGOP": "40", "HOME": "/root"})
    assert settings.dust_relay_fee == FeeRate(1000)
    # environment wins over the file
    assert settings.bytes_per_sigop == 40


def test_load_env_only() -> None:
    settings = load_settings(env={"TXPOLICY_ACCEPT_DATACARRIER": "false"})
    assert settings.accept_datacarrier is False


def test_unknown_env_setting_is_an_error() -> None:
    with pytest.raises(ConfigError, match="typo"):
        load_settings(env={"TXPOLICY_TYPO": "1"})


def test_load_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigError, match="Cannot read"):
        load_settings(tmp_path / "missing.json", env={})


def test_load_invalid_json(tmp_path) -> None:
    path = tmp_path / "policy.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_settings(path, env={})


def test_load_non_object(tmp_path) -> None:
    path = tmp_path / "policy.json"
    path.write_text("[1, 2]")
    with pytest.raises(ConfigError, match="JSON object"):
        load_settings(path, env={})
