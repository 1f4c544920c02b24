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

from .coins import Coin, CoinsView, CoinsViewCache, SpentCoinAccessError
from .solver import TxoutType, Solver, IsWitnessProgram

__all__ = (
    'Coin',
    'CoinsView',
    'CoinsViewCache',
    'SpentCoinAccessError',
    'TxoutType',
    'Solver',
    'IsWitnessProgram',
)
