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

from .feerate import FeeRate
from .settings import PolicySettings, ConfigError, load_settings
from .rejects import PolicyResult, REASONS
from .policy import (
    GetDustThreshold, IsDust, IsStandard, IsStandardTx, AreInputsStandard,
    IsWitnessStandard, GetVirtualTransactionSize, GetTxVirtualSize,
    GetAccurateTransactionSigOpCost, CheckSigOpCost,
)
from .admission import StandardnessReport, CheckTxStandardness

__all__ = (
    'FeeRate',
    'PolicySettings',
    'ConfigError',
    'load_settings',
    'PolicyResult',
    'REASONS',
    'GetDustThreshold',
    'IsDust',
    'IsStandard',
    'IsStandardTx',
    'AreInputsStandard',
    'IsWitnessStandard',
    'GetVirtualTransactionSize',
    'GetTxVirtualSize',
    'GetAccurateTransactionSigOpCost',
    'CheckSigOpCost',
    'StandardnessReport',
    'CheckTxStandardness',
)
