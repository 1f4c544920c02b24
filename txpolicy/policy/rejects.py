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

"""Rejection reasons and the suppressible-reason mechanism

Each policy check reports a failure by a short reason string. The caller may
pass a set of reasons to ignore; an ignored failure is skipped and evaluation
goes on. Structural failures bypass the ignore set altogether.
"""

import logging
from typing import AbstractSet, Iterable, NoReturn, Optional

import bitcointx.core

log = logging.getLogger(__name__)

REASON_VERSION = 'version'
REASON_TX_SIZE = 'tx-size'
REASON_SCRIPTSIG_SIZE = 'scriptsig-size'
REASON_SCRIPTSIG_NOT_PUSHONLY = 'scriptsig-not-pushonly'
REASON_SCRIPTPUBKEY = 'scriptpubkey'
REASON_BARE_MULTISIG = 'bare-multisig'
REASON_DUST = 'dust'
REASON_MULTI_OP_RETURN = 'multi-op-return'
REASON_SCRIPT_UNKNOWN = 'script-unknown'
REASON_SCRIPTSIG_FAILURE = 'scriptsig-failure'
REASON_SCRIPTCHECK_MISSING = 'scriptcheck-missing'
REASON_SCRIPTCHECK_SIGOPS = 'scriptcheck-sigops'
REASON_NONWITNESS_INPUT = 'nonwitness-input'
REASON_SCRIPT_SIZE = 'script-size'
REASON_STACKITEM_COUNT = 'stackitem-count'
REASON_STACKITEM_SIZE = 'stackitem-size'
REASON_TOO_MANY_SIGOPS = 'bad-txns-too-many-sigops'
REASON_BYTES_PER_SIGOP = 'bytespersigop'

REASONS = frozenset((
    REASON_VERSION,
    REASON_TX_SIZE,
    REASON_SCRIPTSIG_SIZE,
    REASON_SCRIPTSIG_NOT_PUSHONLY,
    REASON_SCRIPTPUBKEY,
    REASON_BARE_MULTISIG,
    REASON_DUST,
    REASON_MULTI_OP_RETURN,
    REASON_SCRIPT_UNKNOWN,
    REASON_SCRIPTSIG_FAILURE,
    REASON_SCRIPTCHECK_MISSING,
    REASON_SCRIPTCHECK_SIGOPS,
    REASON_NONWITNESS_INPUT,
    REASON_SCRIPT_SIZE,
    REASON_STACKITEM_COUNT,
    REASON_STACKITEM_SIZE,
    REASON_TOO_MANY_SIGOPS,
    REASON_BYTES_PER_SIGOP,
))

INPUT_REASON_PREFIX = 'bad-txns-input-'
WITNESS_REASON_PREFIX = 'bad-witness-'


class PolicyRejection(bitcointx.core.ValidationError):
    """A transaction failed a policy check

    Raised inside the checks to stop evaluation; the public check functions
    turn it into a PolicyResult.
    """

    def __init__(self, reason: str, *, structural: bool = False) -> None:
        super().__init__(reason)
        self.reason = reason
        self.structural = structural


class PolicyResult:
    """Outcome of a policy check, truthy if the transaction was accepted"""

    __slots__ = ['accepted', 'reason']

    def __init__(self, accepted: bool, reason: Optional[str] = None) -> None:
        if accepted and reason is not None:
            raise ValueError('accepted result must not carry a reason')
        if not accepted and not reason:
            raise ValueError('rejected result must carry a reason')
        self.accepted = accepted
        self.reason = reason

    @classmethod
    def accept(cls) -> 'PolicyResult':
        return cls(True)

    @classmethod
    def reject(cls, reason: str) -> 'PolicyResult':
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.accepted

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PolicyResult):
            return NotImplemented
        return (self.accepted, self.reason) == (other.accepted, other.reason)

    def __hash__(self) -> int:
        return hash((self.accepted, self.reason))

    def __repr__(self) -> str:
        if self.accepted:
            return 'PolicyResult(accepted)'
        return f'PolicyResult(rejected, {self.reason!r})'


class RejectionFilter:
    """Applies a caller's ignore set to the failures of one check sequence

    prefix is prepended to every reason, both when looking it up in the
    ignore set and when reporting it, so that nested checks can be told apart.
    """

    __slots__ = ['ignore_rejects', 'prefix']

    def __init__(self, ignore_rejects: Iterable[str] = (),
                 prefix: str = '') -> None:
        self.ignore_rejects: AbstractSet[str] = frozenset(ignore_rejects)
        self.prefix = prefix

    def ignores(self, reason: str) -> bool:
        return self.prefix + reason in self.ignore_rejects

    def maybe_reject(self, reason: str) -> None:
        """Fail with reason unless the caller chose to ignore it"""
        if self.ignores(reason):
            log.debug('ignoring policy rejection %s%s', self.prefix, reason)
            return
        raise PolicyRejection(self.prefix + reason)

    def reject(self, reason: str) -> NoReturn:
        """Fail with reason regardless of the ignore set"""
        raise PolicyRejection(self.prefix + reason, structural=True)


__all__ = (
    'REASONS',
    'INPUT_REASON_PREFIX',
    'WITNESS_REASON_PREFIX',
    'PolicyRejection',
    'PolicyResult',
    'RejectionFilter',
) + tuple(sorted(name for name in globals() if name.startswith('REASON_')))
