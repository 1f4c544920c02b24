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

"""Run every standardness check for one transaction, in mempool order"""

import logging
from typing import Iterable, Optional

import bitcointx.core
from bitcointx.core import b2lx

from ..core.coins import CoinsViewCache
from ..core.sigops import GetTransactionWeight
from .policy import (
    IsStandardTx, AreInputsStandard, IsWitnessStandard, CheckSigOpCost,
    GetAccurateTransactionSigOpCost, GetVirtualTransactionSize,
    standard_sigop_flags,
)
from .rejects import INPUT_REASON_PREFIX, WITNESS_REASON_PREFIX, PolicyResult
from .settings import PolicySettings

log = logging.getLogger(__name__)


class StandardnessReport:
    """Outcome of CheckTxStandardness()

    vsize and sigop_cost are None when the pipeline stopped before they
    were computed.
    """

    __slots__ = ['result', 'vsize', 'sigop_cost']

    def __init__(self, result: PolicyResult, *,
                 vsize: Optional[int] = None,
                 sigop_cost: Optional[int] = None) -> None:
        self.result = result
        self.vsize = vsize
        self.sigop_cost = sigop_cost

    @property
    def accepted(self) -> bool:
        return self.result.accepted

    @property
    def reason(self) -> Optional[str]:
        return self.result.reason

    def __bool__(self) -> bool:
        return self.result.accepted

    def __repr__(self) -> str:
        return (f'StandardnessReport({self.result!r}, vsize={self.vsize}, '
                f'sigop_cost={self.sigop_cost})')


def CheckTxStandardness(tx: 'bitcointx.core.CTransaction',
                        coins: CoinsViewCache, *,
                        settings: Optional[PolicySettings] = None,
                        witness_enabled: bool = True,
                        ignore_rejects: Iterable[str] = ()
                        ) -> StandardnessReport:
    """Check tx against the full relay policy

    Input failures are reported with the 'bad-txns-input-' prefix and
    witness failures with 'bad-witness-'; ignore_rejects must use the same
    prefixed names to suppress them.
    """
    if settings is None:
        settings = PolicySettings()
    ignore_rejects = frozenset(ignore_rejects)

    result = IsStandardTx(tx, witness_enabled=witness_enabled,
                          settings=settings, ignore_rejects=ignore_rejects)
    if not result:
        return StandardnessReport(result)

    result = AreInputsStandard(tx, coins, reason_prefix=INPUT_REASON_PREFIX,
                               ignore_rejects=ignore_rejects)
    if not result:
        return StandardnessReport(result)

    if witness_enabled and tx.has_witness():
        result = IsWitnessStandard(tx, coins,
                                   reason_prefix=WITNESS_REASON_PREFIX,
                                   ignore_rejects=ignore_rejects)
        if not result:
            return StandardnessReport(result)

    sigop_cost = GetAccurateTransactionSigOpCost(
        tx, coins, standard_sigop_flags(witness_enabled))
    vsize = GetVirtualTransactionSize(GetTransactionWeight(tx), sigop_cost,
                                      settings.bytes_per_sigop)

    result = CheckSigOpCost(tx, sigop_cost, settings=settings,
                            ignore_rejects=ignore_rejects)

    if result and log.isEnabledFor(logging.DEBUG):
        log.debug('tx %s is standard: vsize=%d sigop_cost=%d',
                  b2lx(tx.GetTxid()), vsize, sigop_cost)

    return StandardnessReport(result, vsize=vsize, sigop_cost=sigop_cost)


__all__ = (
    'StandardnessReport',
    'CheckTxStandardness',
)
