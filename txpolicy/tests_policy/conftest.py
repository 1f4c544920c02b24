"""Shared fixtures: policy settings, a coin view and a transaction builder."""

from __future__ import annotations

import hashlib
from typing import List, Optional, Sequence, Tuple

import pytest

from bitcointx.core import (
    COutPoint,
    CTransaction,
    CTxIn,
    CTxInWitness,
    CTxOut,
    CTxWitness,
)
from bitcointx.core.script import (
    CScript,
    CScriptWitness,
    OP_CHECKMULTISIG,
    OP_CHECKSIG,
    OP_DUP,
    OP_EQUALVERIFY,
    OP_HASH160,
    OP_RETURN,
)

from txpolicy.core.coins import Coin, CoinsViewCache
from txpolicy.policy.settings import PolicySettings


PUBKEYS = [bytes([0x02]) + bytes([i]) * 32 for i in range(1, 17)]
DUMMY_SIG = bytes([0x30]) + bytes(70)


class TxBuilder:
    """Funds coins in a CoinsViewCache and builds transactions spending them"""

    pubkeys = PUBKEYS
    dummy_sig = DUMMY_SIG

    def __init__(self) -> None:
        self.coins = CoinsViewCache()
        self._funded = 0

    @staticmethod
    def p2pkh() -> CScript:
        return CScript([OP_DUP, OP_HASH160, b"\x11" * 20, OP_EQUALVERIFY, OP_CHECKSIG])

    @staticmethod
    def p2wpkh() -> CScript:
        return CScript([0, b"\x22" * 20])

    @staticmethod
    def p2wsh(witness_script: bytes) -> CScript:
        return CScript([0, hashlib.sha256(witness_script).digest()])

    @staticmethod
    def multisig(required: int, total: int) -> CScript:
        return CScript([required] + PUBKEYS[:total] + [total, OP_CHECKMULTISIG])

    @staticmethod
    def null_data(payload: bytes = b"hello") -> CScript:
        return CScript([OP_RETURN, payload])

    @staticmethod
    def p2pkh_script_sig() -> CScript:
        return CScript([DUMMY_SIG, PUBKEYS[0]])

    def fund(self, script_pubkey: bytes, value: int = 100_000) -> COutPoint:
        self._funded += 1
        txid = hashlib.sha256(b"funding-%d" % self._funded).digest()
        outpoint = COutPoint(txid, 0)
        self.coins.AddCoin(outpoint, Coin(CTxOut(value, CScript(script_pubkey)), height=100))
        return outpoint

    def spend(
        self,
        inputs: Sequence[Tuple[COutPoint, bytes]],
        outputs: Optional[Sequence[CTxOut]] = None,
        *,
        witnesses: Optional[Sequence[Sequence[bytes]]] = None,
        version: int = 2,
    ) -> CTransaction:
        vin = [CTxIn(outpoint, CScript(script_sig), nSequence=0xFFFFFFFF) for outpoint, script_sig in inputs]
        if outputs is None:
            outputs = [CTxOut(50_000, self.p2pkh())]
        witness = None
        if witnesses is not None:
            witness = CTxWitness([CTxInWitness(CScriptWitness(list(stack))) for stack in witnesses])
        return CTransaction(vin, outputs, nLockTime=0, nVersion=version, witness=witness)

    def simple_tx(self, outputs: Optional[List[CTxOut]] = None, *, version: int = 2) -> CTransaction:
        outpoint = self.fund(self.p2pkh())
        return self.spend([(outpoint, self.p2pkh_script_sig())], outputs, version=version)

    @staticmethod
    def coinbase(outputs: Optional[Sequence[CTxOut]] = None) -> CTransaction:
        if outputs is None:
            outputs = [CTxOut(50_000, TxBuilder.p2pkh())]
        vin = [CTxIn(COutPoint(), CScript([b"\x01\x02\x03"]), nSequence=0xFFFFFFFF)]
        return CTransaction(vin, outputs, nLockTime=0, nVersion=1)


@pytest.fixture
def builder() -> TxBuilder:
    return TxBuilder()


@pytest.fixture
def settings() -> PolicySettings:
    return PolicySettings()
