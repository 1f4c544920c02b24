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

"""Output script classification

Matches a scriptPubKey against the known output templates and extracts the
data elements ("solutions") of the matched template.
"""

import enum
from typing import List, Optional, Tuple

from bitcointx.core.script import (
    CScript, CScriptOp, CScriptInvalidError,
    OP_0, OP_1, OP_16, OP_RETURN,
    OP_CHECKSIG, OP_CHECKMULTISIG,
)

WITNESS_V0_KEYHASH_SIZE = 20
WITNESS_V0_SCRIPTHASH_SIZE = 32


class TxoutType(enum.Enum):
    NONSTANDARD = 'nonstandard'
    PUBKEY = 'pubkey'
    PUBKEYHASH = 'pubkeyhash'
    SCRIPTHASH = 'scripthash'
    MULTISIG = 'multisig'
    NULL_DATA = 'nulldata'
    WITNESS_V0_KEYHASH = 'witness_v0_keyhash'
    WITNESS_V0_SCRIPTHASH = 'witness_v0_scripthash'
    WITNESS_UNKNOWN = 'witness_unknown'

    def __str__(self) -> str:
        return self.value


def IsWitnessProgram(script: bytes) -> Optional[Tuple[int, bytes]]:
    """Return (version, program) if script is a witness program, else None

    A witness program is a 1-byte push opcode (OP_0 or OP_1..OP_16) followed
    by a single data push of 2 to 40 bytes that fills the rest of the script.
    """
    size = len(script)
    if size < 4 or size > 42:
        return None
    if script[0] != OP_0 and not (OP_1 <= script[0] <= OP_16):
        return None
    if script[1] + 2 != size:
        return None
    return CScriptOp(script[0]).decode_op_n(), bytes(script[2:])


def _is_valid_pubkey_size(data: bytes) -> bool:
    if len(data) == 33:
        return data[0] in (0x02, 0x03)
    if len(data) == 65:
        return data[0] in (0x04, 0x06, 0x07)
    return False


def _small_int(op: int) -> Optional[int]:
    if op == OP_0:
        return 0
    if OP_1 <= op <= OP_16:
        return CScriptOp(op).decode_op_n()
    return None


def _ops(script: CScript) -> List[Tuple[CScriptOp, Optional[bytes]]]:
    return [(op, data) for (op, data, _) in script.raw_iter()]


def _match_pubkey(ops: List[Tuple[CScriptOp, Optional[bytes]]]
                  ) -> Optional[bytes]:
    if len(ops) != 2:
        return None
    (_, pubkey), (op, _) = ops
    if pubkey is None or op != OP_CHECKSIG:
        return None
    if not _is_valid_pubkey_size(pubkey):
        return None
    return pubkey


def _match_multisig(ops: List[Tuple[CScriptOp, Optional[bytes]]]
                    ) -> Optional[List[bytes]]:
    if len(ops) < 4 or ops[-1][0] != OP_CHECKMULTISIG:
        return None
    required = _small_int(ops[0][0]) if ops[0][1] is None else None
    total = _small_int(ops[-2][0]) if ops[-2][1] is None else None
    if required is None or total is None:
        return None

    pubkeys = []
    for (op, data) in ops[1:-2]:
        if data is None or not _is_valid_pubkey_size(data):
            return None
        pubkeys.append(data)

    if required < 1 or total < 1 or required > total:
        return None
    if len(pubkeys) != total:
        return None

    return [bytes([required])] + pubkeys + [bytes([total])]


def Solver(script: bytes) -> Tuple[TxoutType, List[bytes]]:
    """Classify scriptPubKey

    Returns the output type and the list of solutions. For MULTISIG the first
    solution is the required signature count and the last one is the total
    key count, each as a single byte. The type is NONSTANDARD when the script
    matches no known template; the solutions are empty in that case.
    """
    script = CScript(script)

    if script.is_p2sh():
        return TxoutType.SCRIPTHASH, [bytes(script[2:22])]

    witprog = IsWitnessProgram(script)
    if witprog is not None:
        version, program = witprog
        if version == 0:
            if len(program) == WITNESS_V0_KEYHASH_SIZE:
                return TxoutType.WITNESS_V0_KEYHASH, [program]
            if len(program) == WITNESS_V0_SCRIPTHASH_SIZE:
                return TxoutType.WITNESS_V0_SCRIPTHASH, [program]
            return TxoutType.NONSTANDARD, []
        return TxoutType.WITNESS_UNKNOWN, [bytes([version]), program]

    # Provably prunable, data-carrying output. OP_RESERVED counts as a push
    # here, in line with is_push_only().
    if len(script) >= 1 and script[0] == OP_RETURN \
            and CScript(script[1:]).is_push_only():
        return TxoutType.NULL_DATA, []

    try:
        ops = _ops(script)
    except CScriptInvalidError:
        return TxoutType.NONSTANDARD, []

    pubkey = _match_pubkey(ops)
    if pubkey is not None:
        return TxoutType.PUBKEY, [pubkey]

    if script.is_p2pkh():
        return TxoutType.PUBKEYHASH, [bytes(script[3:23])]

    solutions = _match_multisig(ops)
    if solutions is not None:
        return TxoutType.MULTISIG, solutions

    return TxoutType.NONSTANDARD, []


__all__ = (
    'WITNESS_V0_KEYHASH_SIZE',
    'WITNESS_V0_SCRIPTHASH_SIZE',
    'TxoutType',
    'IsWitnessProgram',
    'Solver',
)
