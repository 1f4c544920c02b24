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

import functools

from bitcointx.core import CoreCoinParams
from bitcointx.util import ensure_isinstance


def _div_trunc(a: int, b: int) -> int:
    # integer division rounding toward zero
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


@functools.total_ordering
class FeeRate:
    """Fee rate in satoshis per kilobyte"""

    __slots__ = ['_satoshis_per_k']

    def __init__(self, satoshis_per_k: int = 0) -> None:
        ensure_isinstance(satoshis_per_k, int, 'fee rate')
        self._satoshis_per_k = satoshis_per_k

    @classmethod
    def from_fee(cls, fee_paid: int, num_bytes: int) -> 'FeeRate':
        """Fee rate of a transaction of num_bytes that paid fee_paid"""
        if num_bytes > 0:
            return cls(_div_trunc(fee_paid * 1000, num_bytes))
        return cls(0)

    def GetFee(self, num_bytes: int) -> int:
        """Fee in satoshis for num_bytes at this rate

        Never returns 0 for a non-zero size when the rate is non-zero.
        """
        fee = _div_trunc(self._satoshis_per_k * num_bytes, 1000)
        if fee == 0 and num_bytes != 0:
            if self._satoshis_per_k > 0:
                fee = 1
            elif self._satoshis_per_k < 0:
                fee = -1
        return fee

    def GetFeePerK(self) -> int:
        return self.GetFee(1000)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FeeRate):
            return NotImplemented
        return self._satoshis_per_k == other._satoshis_per_k

    def __lt__(self, other: 'FeeRate') -> bool:
        if not isinstance(other, FeeRate):
            return NotImplemented
        return self._satoshis_per_k < other._satoshis_per_k

    def __hash__(self) -> int:
        return hash(self._satoshis_per_k)

    def __add__(self, other: 'FeeRate') -> 'FeeRate':
        return FeeRate(self._satoshis_per_k + other._satoshis_per_k)

    def __str__(self) -> str:
        coin = CoreCoinParams.COIN
        sign = '-' if self._satoshis_per_k < 0 else ''
        value = abs(self._satoshis_per_k)
        return f'{sign}{value // coin}.{value % coin:08d} BTC/kB'

    def __repr__(self) -> str:
        return f'FeeRate({self._satoshis_per_k})'


__all__ = (
    'FeeRate',
)
