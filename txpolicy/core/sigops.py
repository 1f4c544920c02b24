# Copyright (C) 2018 The python-bitcointx developers
#
# This file is part of txpolicy.
#
# It is subject to the license terms in the LICENSE file found in the top-level
# directory of this distribution.
#
# No part of txpolicy, including this file, may be copied, modified,
# propagated, or distributed except according to the terms contained in the
# LICENSE file.

"""Signature operation counting and transaction weight"""

from typing import Iterable, Optional

import bitcointx.core
from bitcointx.core import CoreCoinParams
from bitcointx.core.script import (
    CScript, CScriptWitness, CScriptInvalidError,
    OP_1, OP_16, OP_CHECKSIG, OP_CHECKSIGVERIFY,
    OP_CHECKMULTISIG, OP_CHECKMULTISIGVERIFY, OP_INVALIDOPCODE,
)
from bitcointx.core.scripteval import (
    ScriptVerifyFlag_Type, SCRIPT_VERIFY_P2SH, SCRIPT_VERIFY_WITNESS,
)

from .coins import CoinsViewCache
from .solver import (
    IsWitnessProgram, WITNESS_V0_KEYHASH_SIZE, WITNESS_V0_SCRIPTHASH_SIZE,
)

WITNESS_SCALE_FACTOR = CoreCoinParams.WITNESS_SCALE_FACTOR
MAX_PUBKEYS_PER_MULTISIG = 20


def GetSigOpCount(script: bytes, fAccurate: bool) -> int:
    """Count signature operations in script

    fAccurate - count CHECKMULTISIG as the preceding OP_n instead of
                MAX_PUBKEYS_PER_MULTISIG, see BIP16.

    Unlike CScript.GetSigOpCount(), a truncated push ends the count rather
    than raising.
    """
    n = 0
    lastOpcode = OP_INVALIDOPCODE
    try:
        for (opcode, data, sop_idx) in CScript(script).raw_iter():
            if opcode in (OP_CHECKSIG, OP_CHECKSIGVERIFY):
                n += 1
            elif opcode in (OP_CHECKMULTISIG, OP_CHECKMULTISIGVERIFY):
                if fAccurate and OP_1 <= lastOpcode <= OP_16:
                    n += lastOpcode.decode_op_n()
                else:
                    n += MAX_PUBKEYS_PER_MULTISIG
            lastOpcode = opcode
    except CScriptInvalidError:
        pass
    return n


def _last_push(scriptSig: bytes) -> Optional[bytes]:
    # None if scriptSig has a non-push opcode or is malformed
    data = b''
    try:
        for (opcode, op_data, sop_idx) in CScript(scriptSig).raw_iter():
            if opcode > OP_16:
                return None
            data = op_data if op_data is not None else b''
    except CScriptInvalidError:
        return None
    return data


def GetP2SHSigOpCountFor(scriptPubKey: bytes, scriptSig: bytes) -> int:
    """Accurate sigop count of the redeemScript pushed by scriptSig

    If scriptPubKey is not P2SH the accurate count of scriptPubKey itself is
    returned.
    """
    if not CScript(scriptPubKey).is_p2sh():
        return GetSigOpCount(scriptPubKey, True)

    redeem_script = _last_push(scriptSig)
    if redeem_script is None:
        return 0
    return GetSigOpCount(redeem_script, True)


def GetLegacySigOpCount(tx: 'bitcointx.core.CTransaction') -> int:
    nSigOps = 0
    for txin in tx.vin:
        nSigOps += GetSigOpCount(txin.scriptSig, False)
    for txout in tx.vout:
        nSigOps += GetSigOpCount(txout.scriptPubKey, False)
    return nSigOps


def GetP2SHSigOpCount(tx: 'bitcointx.core.CTransaction',
                      inputs: CoinsViewCache) -> int:
    if tx.is_coinbase():
        return 0

    nSigOps = 0
    for txin in tx.vin:
        prevout = inputs.AccessCoin(txin.prevout).out
        if prevout.scriptPubKey.is_p2sh():
            nSigOps += GetP2SHSigOpCountFor(prevout.scriptPubKey,
                                            txin.scriptSig)
    return nSigOps


def _witness_sigops(witversion: int, witprogram: bytes,
                    witness: CScriptWitness) -> int:
    if witversion == 0:
        if len(witprogram) == WITNESS_V0_KEYHASH_SIZE:
            return 1
        if len(witprogram) == WITNESS_V0_SCRIPTHASH_SIZE \
                and len(witness.stack) > 0:
            return GetSigOpCount(witness.stack[-1], True)

    # Future witness versions are not counted
    return 0


def CountWitnessSigOps(scriptSig: bytes, scriptPubKey: bytes,
                       witness: Optional[CScriptWitness],
                       flags: Iterable[ScriptVerifyFlag_Type]) -> int:
    flags = set(flags)
    if SCRIPT_VERIFY_WITNESS not in flags:
        return 0
    if SCRIPT_VERIFY_P2SH not in flags:
        raise ValueError('SCRIPT_VERIFY_WITNESS requires SCRIPT_VERIFY_P2SH')

    if witness is None:
        witness = CScriptWitness()

    witprog = IsWitnessProgram(scriptPubKey)
    if witprog is not None:
        return _witness_sigops(witprog[0], witprog[1], witness)

    if CScript(scriptPubKey).is_p2sh():
        redeem_script = _last_push(scriptSig)
        if redeem_script is not None:
            witprog = IsWitnessProgram(redeem_script)
            if witprog is not None:
                return _witness_sigops(witprog[0], witprog[1], witness)

    return 0


def GetInputWitness(tx: 'bitcointx.core.CTransaction', inIdx: int
                    ) -> CScriptWitness:
    """Witness of input inIdx, empty if the transaction carries none"""
    if inIdx < len(tx.wit.vtxinwit):
        return tx.wit.vtxinwit[inIdx].scriptWitness
    return CScriptWitness()


def GetTransactionWeight(tx: 'bitcointx.core.CTransaction') -> int:
    stripped_size = len(tx.serialize(include_witness=False))
    total_size = len(tx.serialize())
    return stripped_size * (WITNESS_SCALE_FACTOR - 1) + total_size


__all__ = (
    'WITNESS_SCALE_FACTOR',
    'MAX_PUBKEYS_PER_MULTISIG',
    'GetSigOpCount',
    'GetP2SHSigOpCountFor',
    'GetLegacySigOpCount',
    'GetP2SHSigOpCount',
    'CountWitnessSigOps',
    'GetInputWitness',
    'GetTransactionWeight',
)
