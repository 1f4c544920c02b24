# Copyright (C) 2009-2010 Satoshi Nakamoto
# Copyright (C) 2009-2016 The Bitcoin Core developers
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

# pylama:ignore=E501

"""Local relay policy

These rules are stricter than consensus and decide whether a transaction is
standard enough for this node to relay and mine. A transaction may be
non-standard yet perfectly valid.

Every check returns a PolicyResult. Failures are reported by reason string
and may be ignored by passing the reason in ignore_rejects; structural
failures cannot be ignored.
"""

import functools
import logging
from typing import (
    Any, Callable, Iterable, Optional, Set, Tuple, TypeVar,
)

import bitcointx.core
from bitcointx.core import CTxOut, b2lx
from bitcointx.core.script import CScript
from bitcointx.core.scripteval import (
    ScriptVerifyFlag_Type, SCRIPT_VERIFY_P2SH, SCRIPT_VERIFY_WITNESS,
)

from ..core.coins import CoinsViewCache, SpentCoinAccessError
from ..core.scripteval import EvalScriptSigStack, ScriptSigEvalError
from ..core.sigops import (
    WITNESS_SCALE_FACTOR, GetSigOpCount, GetP2SHSigOpCount,
    CountWitnessSigOps, GetInputWitness, GetTransactionWeight,
)
from ..core.solver import TxoutType, Solver, IsWitnessProgram
from .feerate import FeeRate
from .rejects import (
    PolicyRejection, PolicyResult, RejectionFilter,
    REASON_VERSION, REASON_TX_SIZE, REASON_SCRIPTSIG_SIZE,
    REASON_SCRIPTSIG_NOT_PUSHONLY, REASON_SCRIPTPUBKEY, REASON_BARE_MULTISIG,
    REASON_DUST, REASON_MULTI_OP_RETURN, REASON_SCRIPT_UNKNOWN,
    REASON_SCRIPTSIG_FAILURE, REASON_SCRIPTCHECK_MISSING,
    REASON_SCRIPTCHECK_SIGOPS, REASON_NONWITNESS_INPUT, REASON_SCRIPT_SIZE,
    REASON_STACKITEM_COUNT, REASON_STACKITEM_SIZE, REASON_TOO_MANY_SIGOPS,
    REASON_BYTES_PER_SIGOP,
)
from .settings import DEFAULT_BYTES_PER_SIGOP, PolicySettings

log = logging.getLogger(__name__)

T_Callable = TypeVar('T_Callable', bound=Callable[..., Any])

MAX_STANDARD_VERSION = 2
# The maximum weight for transactions we're willing to relay/mine
MAX_STANDARD_TX_WEIGHT = 400000
# Biggest 'standard' txin is a 15-of-15 P2SH multisig with compressed keys
# (remember the 520 byte limit on redeemScript size). That works out to a
# (15*(33+1))+3=513 byte redeemScript, 513+1+15*(73+1)+3=1627 bytes of
# scriptSig, which we round off to 1650 bytes for some minor future-proofing.
# That's also enough to spend a 20-of-20 CHECKMULTISIG scriptPubKey, though
# such a scriptPubKey is not considered standard.
MAX_STANDARD_SCRIPTSIG_SIZE = 1650
# Maximum number of signature check operations in an IsStandard() P2SH script
MAX_P2SH_SIGOPS = 15
MAX_BLOCK_SIGOPS_COST = 80000
# The maximum number of sigops we're willing to relay/mine in a single tx
MAX_STANDARD_TX_SIGOPS_COST = MAX_BLOCK_SIGOPS_COST // 5
MAX_STANDARD_P2WSH_STACK_ITEMS = 100
MAX_STANDARD_P2WSH_STACK_ITEM_SIZE = 80
MAX_STANDARD_P2WSH_SCRIPT_SIZE = 3600

# outpoint hash + outpoint index + scriptSig length + sequence
_TXIN_BASE_SIZE = 32 + 4 + 1 + 4
# a typical P2PKH scriptSig: signature push + compressed pubkey push
_TXIN_SCRIPTSIG_STUB_SIZE = 107

_DEFAULT_SETTINGS = PolicySettings()


def _policy_check(fn: T_Callable) -> T_Callable:
    """Turn a check that raises PolicyRejection into one returning PolicyResult"""

    @functools.wraps(fn)
    def wrapper(tx: 'bitcointx.core.CTransaction', *args: Any, **kwargs: Any
                ) -> PolicyResult:
        try:
            fn(tx, *args, **kwargs)
        except PolicyRejection as rej:
            if log.isEnabledFor(logging.DEBUG):
                log.debug('%s: tx %s rejected: %s%s', fn.__name__,
                          b2lx(tx.GetTxid()), rej.reason,
                          ' (structural)' if rej.structural else '')
            return PolicyResult.reject(rej.reason)
        return PolicyResult.accept()

    return wrapper  # type: ignore


def GetDustThreshold(txout: CTxOut, dustRelayFeeIn: FeeRate) -> int:
    """Minimum value for txout not to be dust at dustRelayFeeIn

    "Dust" is defined in terms of dustRelayFee, which has units
    satoshis-per-kilobyte. If you'd pay more in fees than the value of the
    output to spend something, then we consider it dust.

    A typical spendable non-segwit txout is 34 bytes big, and will need a
    CTxIn of at least 148 bytes to spend: so dust is a spendable txout less
    than 182*dustRelayFee/1000 (in satoshis), 546 satoshis at the default
    rate of 3000 sat/kB.

    A typical spendable segwit txout is 31 bytes big, and will need a CTxIn
    of at least 67 bytes to spend: so dust is a spendable txout less than
    98*dustRelayFee/1000 (in satoshis), 294 satoshis at the default rate of
    3000 sat/kB.
    """
    if txout.scriptPubKey.is_unspendable():
        return 0

    nSize = len(txout.serialize())
    if IsWitnessProgram(txout.scriptPubKey) is not None:
        # 75% segwit discount applied to the script size
        nSize += _TXIN_BASE_SIZE + _TXIN_SCRIPTSIG_STUB_SIZE // WITNESS_SCALE_FACTOR
    else:
        nSize += _TXIN_BASE_SIZE + _TXIN_SCRIPTSIG_STUB_SIZE

    return dustRelayFeeIn.GetFee(nSize)


def IsDust(txout: CTxOut, dustRelayFeeIn: FeeRate) -> bool:
    return txout.nValue < GetDustThreshold(txout, dustRelayFeeIn)


def IsStandard(scriptPubKey: bytes, witness_enabled: bool = True,
               settings: Optional[PolicySettings] = None
               ) -> Tuple[bool, TxoutType]:
    """Check that scriptPubKey is of a standard type

    The output type is returned even when the script is not standard, as
    IsStandardTx() still needs it when "scriptpubkey" is ignored.
    """
    if settings is None:
        settings = _DEFAULT_SETTINGS

    whichType, vSolutions = Solver(scriptPubKey)
    if whichType == TxoutType.NONSTANDARD:
        return False, whichType

    if whichType == TxoutType.MULTISIG:
        m = vSolutions[0][0]
        n = vSolutions[-1][0]
        # Support up to x-of-3 multisig txns as standard
        if n < 1 or n > 3:
            return False, whichType
        if m < 1 or m > n:
            return False, whichType

    elif whichType == TxoutType.NULL_DATA:
        if not settings.accept_datacarrier \
                or len(scriptPubKey) > settings.max_datacarrier_bytes:
            return False, whichType

    elif whichType in (TxoutType.WITNESS_V0_KEYHASH,
                       TxoutType.WITNESS_V0_SCRIPTHASH):
        if not witness_enabled:
            return False, whichType

    return True, whichType


def _check_version(tx: 'bitcointx.core.CTransaction',
                   rejects: RejectionFilter) -> None:
    if tx.nVersion > MAX_STANDARD_VERSION or tx.nVersion < 1:
        rejects.maybe_reject(REASON_VERSION)


def _check_weight(tx: 'bitcointx.core.CTransaction',
                  rejects: RejectionFilter) -> None:
    # Extremely large transactions with lots of inputs can cost the network
    # almost as much to process as they cost the sender in fees, because
    # computing signature hashes is O(ninputs*txsize). Limiting transactions
    # to MAX_STANDARD_TX_WEIGHT mitigates CPU exhaustion attacks.
    if rejects.ignores(REASON_TX_SIZE):
        return
    if GetTransactionWeight(tx) >= MAX_STANDARD_TX_WEIGHT:
        rejects.maybe_reject(REASON_TX_SIZE)


def _check_script_sigs(tx: 'bitcointx.core.CTransaction',
                       rejects: RejectionFilter) -> None:
    # Ignoring "scriptsig-not-pushonly" turns the push-only requirement off;
    # while it is on, a failure cannot be ignored.
    check_push_only = not rejects.ignores(REASON_SCRIPTSIG_NOT_PUSHONLY)
    if rejects.ignores(REASON_SCRIPTSIG_SIZE) and not check_push_only:
        return

    for txin in tx.vin:
        if len(txin.scriptSig) > MAX_STANDARD_SCRIPTSIG_SIZE:
            rejects.maybe_reject(REASON_SCRIPTSIG_SIZE)
        if check_push_only and not txin.scriptSig.is_push_only():
            rejects.reject(REASON_SCRIPTSIG_NOT_PUSHONLY)


def _check_outputs(tx: 'bitcointx.core.CTransaction', witness_enabled: bool,
                   settings: PolicySettings, rejects: RejectionFilter
                   ) -> None:
    if all(rejects.ignores(reason)
           for reason in (REASON_SCRIPTPUBKEY, REASON_BARE_MULTISIG,
                          REASON_DUST, REASON_MULTI_OP_RETURN)):
        return

    # Every output is classified before any rule runs, so that the
    # OP_RETURN count covers all outputs whichever rules are ignored.
    classified = [(txout,) + IsStandard(txout.scriptPubKey, witness_enabled,
                                        settings)
                  for txout in tx.vout]

    nDataOut = 0
    for (txout, is_standard, whichType) in classified:
        if not is_standard:
            rejects.maybe_reject(REASON_SCRIPTPUBKEY)

        if whichType == TxoutType.NULL_DATA:
            nDataOut += 1
            continue

        if whichType == TxoutType.MULTISIG and not settings.permit_bare_multisig:
            rejects.maybe_reject(REASON_BARE_MULTISIG)
        if IsDust(txout, settings.dust_relay_fee):
            rejects.maybe_reject(REASON_DUST)

    # only one OP_RETURN txout is permitted
    if nDataOut > 1:
        rejects.maybe_reject(REASON_MULTI_OP_RETURN)


@_policy_check
def IsStandardTx(tx: 'bitcointx.core.CTransaction', *,
                 witness_enabled: bool = True,
                 settings: Optional[PolicySettings] = None,
                 ignore_rejects: Iterable[str] = ()) -> PolicyResult:
    """Check the transaction-level standardness rules

    The checks run in a fixed order: version, weight, scriptSig size and
    push-only-ness, then per-output type, bare multisig, dust and the
    OP_RETURN count. The first reason not in ignore_rejects is reported.
    """
    if settings is None:
        settings = _DEFAULT_SETTINGS
    rejects = RejectionFilter(ignore_rejects)

    _check_version(tx, rejects)
    _check_weight(tx, rejects)
    _check_script_sigs(tx, rejects)
    _check_outputs(tx, witness_enabled, settings, rejects)
    return PolicyResult.accept()


def _redeem_script(tx: 'bitcointx.core.CTransaction', inIdx: int,
                   rejects: RejectionFilter) -> CScript:
    # Convert the scriptSig into a stack, so we can inspect the redeemScript.
    # A failure here means the transaction is invalid.
    try:
        stack = EvalScriptSigStack(tx.vin[inIdx].scriptSig, tx, inIdx)
    except ScriptSigEvalError as err:
        log.debug('%s', err)
        rejects.reject(REASON_SCRIPTSIG_FAILURE)
    if not stack:
        rejects.reject(REASON_SCRIPTCHECK_MISSING)
    return CScript(stack[-1])


@_policy_check
def AreInputsStandard(tx: 'bitcointx.core.CTransaction',
                      mapInputs: CoinsViewCache, *,
                      reason_prefix: str = '',
                      ignore_rejects: Iterable[str] = ()) -> PolicyResult:
    """Check transaction inputs to mitigate two potential denial-of-service attacks

    1. scriptSigs with extra data stuffed into them, not consumed by
       scriptPubKey (or P2SH script)
    2. P2SH scripts with a crazy number of expensive CHECKSIG/CHECKMULTISIG
       operations

    An attacker can submit a standard HASH... OP_EQUAL transaction, which will
    get accepted into blocks. The redemption script can be anything; an
    attacker could use a very expensive-to-check-upon-redemption script like:
      DUP CHECKSIG DROP ... repeated 100 times... OP_1
    """
    if tx.is_coinbase():
        # Coinbases don't use vin normally
        return PolicyResult.accept()

    rejects = RejectionFilter(ignore_rejects, reason_prefix)

    for i, txin in enumerate(tx.vin):
        prevScript = mapInputs.AccessCoin(txin.prevout).out.scriptPubKey

        whichType, _ = Solver(prevScript)
        if whichType == TxoutType.NONSTANDARD:
            rejects.maybe_reject(REASON_SCRIPT_UNKNOWN)

        if whichType != TxoutType.SCRIPTHASH:
            continue

        if not txin.scriptSig.is_push_only():
            # Only reachable when "scriptsig-not-pushonly" was ignored. The
            # input is invalid and will be caught later on; do not run the
            # possibly expensive script here.
            continue

        subscript = _redeem_script(tx, i, rejects)
        if GetSigOpCount(subscript, True) > MAX_P2SH_SIGOPS:
            rejects.maybe_reject(REASON_SCRIPTCHECK_SIGOPS)

    return PolicyResult.accept()


@_policy_check
def IsWitnessStandard(tx: 'bitcointx.core.CTransaction',
                      mapInputs: CoinsViewCache, *,
                      reason_prefix: str = '',
                      ignore_rejects: Iterable[str] = ()) -> PolicyResult:
    """Check the witnesses of transaction inputs against the P2WSH limits"""
    if tx.is_coinbase():
        return PolicyResult.accept()

    rejects = RejectionFilter(ignore_rejects, reason_prefix)

    for i, txin in enumerate(tx.vin):
        witness = GetInputWitness(tx, i)
        # An empty witness cannot be bloated. If the script is invalid
        # without a witness, validation will catch it.
        if witness.is_null():
            continue

        prevScript = mapInputs.AccessCoin(txin.prevout).out.scriptPubKey

        if prevScript.is_p2sh():
            # Extract the redeemScript casually; push-only-ness and the hash
            # are checked during validation anyway.
            prevScript = _redeem_script(tx, i, rejects)

        witprog = IsWitnessProgram(prevScript)
        # Non-witness program must not be associated with any witness
        if witprog is None:
            rejects.reject(REASON_NONWITNESS_INPUT)
        witnessversion, witnessprogram = witprog

        # Check P2WSH standard limits
        if witnessversion == 0 and len(witnessprogram) == 32:
            if len(witness.stack[-1]) > MAX_STANDARD_P2WSH_SCRIPT_SIZE:
                rejects.maybe_reject(REASON_SCRIPT_SIZE)
            stack_items = witness.stack[:-1]
            if len(stack_items) > MAX_STANDARD_P2WSH_STACK_ITEMS:
                rejects.maybe_reject(REASON_STACKITEM_COUNT)
            for item in stack_items:
                if len(item) > MAX_STANDARD_P2WSH_STACK_ITEM_SIZE:
                    rejects.maybe_reject(REASON_STACKITEM_SIZE)

    return PolicyResult.accept()


def GetSigOpsAdjustedWeight(weight: int, sigop_cost: int,
                            bytes_per_sigop: int = DEFAULT_BYTES_PER_SIGOP
                            ) -> int:
    return max(weight, sigop_cost * bytes_per_sigop)


def GetVirtualTransactionSize(weight: int, sigop_cost: int = 0,
                              bytes_per_sigop: int = DEFAULT_BYTES_PER_SIGOP
                              ) -> int:
    """Virtual size: the larger of the weight and the sigop-derived weight,
    divided by WITNESS_SCALE_FACTOR and rounded up."""
    adjusted = GetSigOpsAdjustedWeight(weight, sigop_cost, bytes_per_sigop)
    return (adjusted + WITNESS_SCALE_FACTOR - 1) // WITNESS_SCALE_FACTOR


def GetTxVirtualSize(tx: 'bitcointx.core.CTransaction', sigop_cost: int = 0,
                     bytes_per_sigop: int = DEFAULT_BYTES_PER_SIGOP) -> int:
    return GetVirtualTransactionSize(GetTransactionWeight(tx), sigop_cost,
                                     bytes_per_sigop)


def GetAccurateTransactionSigOpCost(
    tx: 'bitcointx.core.CTransaction', inputs: CoinsViewCache,
    flags: Iterable[ScriptVerifyFlag_Type]
) -> int:
    """Total sigop cost of the inputs of tx

    Legacy and P2SH sigops are scaled by WITNESS_SCALE_FACTOR, witness
    sigops are not. Every coin spent by tx must be present and unspent in
    inputs, otherwise SpentCoinAccessError is raised.
    """
    if tx.is_coinbase():
        return 0

    flags = set(flags)

    nSigOps = 0
    for txin in tx.vin:
        nSigOps += GetSigOpCount(txin.scriptSig, False)

    if SCRIPT_VERIFY_P2SH in flags:
        nSigOps += GetP2SHSigOpCount(tx, inputs)

    nSigOps *= WITNESS_SCALE_FACTOR

    if SCRIPT_VERIFY_WITNESS in flags:
        for i, txin in enumerate(tx.vin):
            coin = inputs.AccessCoin(txin.prevout)
            if coin.is_spent():
                raise SpentCoinAccessError(txin.prevout)
            nSigOps += CountWitnessSigOps(txin.scriptSig,
                                          coin.out.scriptPubKey,
                                          GetInputWitness(tx, i), flags)

    return nSigOps


@_policy_check
def CheckSigOpCost(tx: 'bitcointx.core.CTransaction', sigop_cost: int, *,
                   settings: Optional[PolicySettings] = None,
                   ignore_rejects: Iterable[str] = ()) -> PolicyResult:
    """Check the sigop cost of tx against the standard limits

    Besides the absolute MAX_STANDARD_TX_SIGOPS_COST cap, a transaction whose
    sigops would take more room at bytes_per_sigop_strict than its actual
    size is rejected.
    """
    if settings is None:
        settings = _DEFAULT_SETTINGS
    rejects = RejectionFilter(ignore_rejects)

    if sigop_cost > MAX_STANDARD_TX_SIGOPS_COST:
        rejects.maybe_reject(REASON_TOO_MANY_SIGOPS)

    strict = settings.bytes_per_sigop_strict
    if strict and not rejects.ignores(REASON_BYTES_PER_SIGOP):
        weight = GetTransactionWeight(tx)
        if GetVirtualTransactionSize(weight, sigop_cost, strict) \
                > GetVirtualTransactionSize(weight, 0, strict):
            rejects.maybe_reject(REASON_BYTES_PER_SIGOP)

    return PolicyResult.accept()


def standard_sigop_flags(witness_enabled: bool) -> Set[ScriptVerifyFlag_Type]:
    """Verify flags that select which sigops are counted"""
    if witness_enabled:
        return {SCRIPT_VERIFY_P2SH, SCRIPT_VERIFY_WITNESS}
    return {SCRIPT_VERIFY_P2SH}


__all__ = (
    'MAX_STANDARD_VERSION',
    'MAX_STANDARD_TX_WEIGHT',
    'MAX_STANDARD_SCRIPTSIG_SIZE',
    'MAX_P2SH_SIGOPS',
    'MAX_BLOCK_SIGOPS_COST',
    'MAX_STANDARD_TX_SIGOPS_COST',
    'MAX_STANDARD_P2WSH_STACK_ITEMS',
    'MAX_STANDARD_P2WSH_STACK_ITEM_SIZE',
    'MAX_STANDARD_P2WSH_SCRIPT_SIZE',
    'GetDustThreshold',
    'IsDust',
    'IsStandard',
    'IsStandardTx',
    'AreInputsStandard',
    'IsWitnessStandard',
    'GetSigOpsAdjustedWeight',
    'GetVirtualTransactionSize',
    'GetTxVirtualSize',
    'GetAccurateTransactionSigOpCost',
    'CheckSigOpCost',
    'standard_sigop_flags',
)
