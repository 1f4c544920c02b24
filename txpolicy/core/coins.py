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

"""Coin lookup views

A coin is an unspent transaction output together with the height and
coinbase-ness of the transaction that created it. Views map outpoints to
coins; the policy checks only ever read from them.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from bitcointx.core import COutPoint, CTransaction, CTxOut


class SpentCoinAccessError(AssertionError):
    """A spent or unknown coin was accessed where only unspent coins may be

    This is a programming error in the caller (the view was not populated
    with the inputs of the transaction), not a policy outcome.
    """

    def __init__(self, outpoint: COutPoint) -> None:
        super().__init__(f'coin {outpoint} is spent or unknown')
        self.outpoint = outpoint


class Coin:
    __slots__ = ['out', 'height', 'is_coinbase']

    def __init__(self, out: Optional[CTxOut] = None, height: int = 0,
                 is_coinbase: bool = False) -> None:
        # CTxOut() has nValue == -1, which marks the coin as spent
        self.out = out if out is not None else CTxOut()
        self.height = height
        self.is_coinbase = is_coinbase

    def is_spent(self) -> bool:
        return self.out.nValue == -1

    def __repr__(self) -> str:
        return (f'Coin({self.out!r}, height={self.height}, '
                f'is_coinbase={self.is_coinbase})')


class CoinsView(ABC):
    """Read-only coin lookup interface"""

    @abstractmethod
    def GetCoin(self, outpoint: COutPoint) -> Optional[Coin]:
        ...

    def HaveCoin(self, outpoint: COutPoint) -> bool:
        coin = self.GetCoin(outpoint)
        return coin is not None and not coin.is_spent()


class CoinsViewCache(CoinsView):
    """In-memory coin map layered over an optional backing view

    Lookups that miss the local map fall through to the base view. Writes
    only ever touch the local map.
    """

    def __init__(self, base: Optional[CoinsView] = None) -> None:
        self.base = base
        self._coins: Dict[COutPoint, Coin] = {}

    def GetCoin(self, outpoint: COutPoint) -> Optional[Coin]:
        coin = self._coins.get(outpoint)
        if coin is None and self.base is not None:
            coin = self.base.GetCoin(outpoint)
        return coin

    def AccessCoin(self, outpoint: COutPoint) -> Coin:
        """Return the coin for outpoint, or an empty (spent) coin if unknown"""
        coin = self.GetCoin(outpoint)
        if coin is None:
            return Coin()
        return coin

    def AddCoin(self, outpoint: COutPoint, coin: Coin) -> None:
        if coin.out.scriptPubKey.is_unspendable():
            return
        self._coins[outpoint] = coin

    def AddTransactionOutputs(self, tx: CTransaction, height: int = 0) -> None:
        txid = tx.GetTxid()
        for n, txout in enumerate(tx.vout):
            self.AddCoin(COutPoint(txid, n),
                         Coin(txout, height, tx.is_coinbase()))

    def SpendCoin(self, outpoint: COutPoint) -> bool:
        coin = self.GetCoin(outpoint)
        if coin is None or coin.is_spent():
            return False
        self._coins[outpoint] = Coin(height=coin.height,
                                     is_coinbase=coin.is_coinbase)
        return True

    def __len__(self) -> int:
        return len(self._coins)


__all__ = (
    'SpentCoinAccessError',
    'Coin',
    'CoinsView',
    'CoinsViewCache',
)
