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

"""Stack extraction from scriptSig

Policy code needs the redeemScript of a P2SH spend before any signature is
checked. The scriptSig is run on its own, with no verify flags, and the
resulting stack is handed back to the caller.
"""

from typing import List

import bitcointx.core
from bitcointx.core.script import CScript, SIGVERSION_BASE
from bitcointx.core.scripteval import EvalScript


class ScriptSigEvalError(bitcointx.core.ValidationError):
    """scriptSig could not be evaluated into a stack"""

    def __init__(self, inIdx: int, err: Exception) -> None:
        super().__init__(f'scriptSig of input {inIdx} failed: {err}')
        self.inIdx = inIdx
        self.err = err


def EvalScriptSigStack(scriptSig: CScript,
                       txTo: 'bitcointx.core.CTransaction',
                       inIdx: int) -> List[bytes]:
    """Evaluate scriptSig of input inIdx and return the stack it leaves

    Signature opcodes are checked against txTo itself, so a scriptSig that
    contains them needs libsecp256k1 loaded by python-bitcointx. A signature
    that does not verify leaves false on the stack, as it would with
    signature checking disabled.

    Raises ScriptSigEvalError if evaluation fails.
    """
    stack: List[bytes] = []
    try:
        EvalScript(stack, CScript(scriptSig), txTo, inIdx, flags=set(),
                   sigversion=SIGVERSION_BASE)
    except (bitcointx.core.ValidationError, ValueError) as err:
        raise ScriptSigEvalError(inIdx, err) from err
    return stack


__all__ = (
    'ScriptSigEvalError',
    'EvalScriptSigStack',
)
