import pytest

from bitcointx.core.script import CScript, OP_RETURN

from txpolicy.core.solver import TxoutType
from txpolicy.policy.policy import IsStandard
from txpolicy.policy.settings import PolicySettings


@pytest.mark.parametrize("required, total", [(1, 1), (1, 2), (2, 2), (1, 3), (2, 3), (3, 3)])
def test_multisig_up_to_three_keys_is_standard(builder, required: int, total: int) -> None:
    assert IsStandard(builder.multisig(required, total)) == (True, TxoutType.MULTISIG)


def test_one_of_four_multisig_is_not_standard(builder) -> None:
    assert IsStandard(builder.multisig(1, 4)) == (False, TxoutType.MULTISIG)


def test_four_of_three_multisig_is_not_standard(builder) -> None:
    accepted, _ = IsStandard(builder.multisig(4, 3))
    assert not accepted


def test_nonstandard_script_reports_type() -> None:
    assert IsStandard(CScript([1])) == (False, TxoutType.NONSTANDARD)


def test_null_data_size_limit() -> None:
    # OP_RETURN + PUSHDATA1 + length + 80 bytes is exactly 83 bytes
    at_limit = CScript([OP_RETURN, b"\x01" * 80])
    assert len(at_limit) == 83
    assert IsStandard(at_limit) == (True, TxoutType.NULL_DATA)

    over_limit = CScript([OP_RETURN, b"\x01" * 81])
    assert IsStandard(over_limit) == (False, TxoutType.NULL_DATA)


def test_null_data_limit_is_configurable() -> None:
    script = CScript([OP_RETURN, b"\x01" * 81])
    settings = PolicySettings(max_datacarrier_bytes=100)
    assert IsStandard(script, settings=settings) == (True, TxoutType.NULL_DATA)


def test_datacarrier_can_be_disabled() -> None:
    settings = PolicySettings(accept_datacarrier=False)
    assert IsStandard(CScript([OP_RETURN, b"hi"]), settings=settings) == (False, TxoutType.NULL_DATA)


def test_witness_v0_requires_witness_enabled(builder) -> None:
    assert IsStandard(builder.p2wpkh(), witness_enabled=True) == (True, TxoutType.WITNESS_V0_KEYHASH)
    assert IsStandard(builder.p2wpkh(), witness_enabled=False) == (False, TxoutType.WITNESS_V0_KEYHASH)
    assert IsStandard(builder.p2wsh(b"\x51"), witness_enabled=False) == (
        False,
        TxoutType.WITNESS_V0_SCRIPTHASH,
    )


def test_future_witness_versions_are_standard() -> None:
    assert IsStandard(CScript([1, b"\x33" * 32]), witness_enabled=False) == (True, TxoutType.WITNESS_UNKNOWN)


def test_p2pkh_and_p2sh_are_standard(builder) -> None:
    assert IsStandard(builder.p2pkh()) == (True, TxoutType.PUBKEYHASH)
    assert IsStandard(CScript([1]).to_p2sh_scriptPubKey()) == (True, TxoutType.SCRIPTHASH)
