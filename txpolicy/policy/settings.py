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

"""Relay policy settings

Settings are an immutable value handed to every check that needs them.
load_settings() starts from the defaults, merges an optional JSON file, and
finally applies environment overrides prefixed with ``TXPOLICY_``.
"""

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .feerate import FeeRate

log = logging.getLogger(__name__)

ENV_PREFIX = 'TXPOLICY_'

# Min feerate for defining dust. Historically this has been based on the
# minRelayTxFee, however changing the dust limit changes which transactions
# are standard and should be done with care and ideally rarely.
DUST_RELAY_TX_FEE = 3000
# Default for -incrementalrelayfee, which sets the minimum feerate increase
# for mempool limiting or BIP 125 replacement
DEFAULT_INCREMENTAL_RELAY_FEE = 1000
DEFAULT_BYTES_PER_SIGOP = 20
DEFAULT_BYTES_PER_SIGOP_STRICT = 20
DEFAULT_ACCEPT_DATACARRIER = True
# 80 bytes of data, +1 for OP_RETURN, +2 for the pushdata opcodes
MAX_OP_RETURN_RELAY = 83
DEFAULT_PERMIT_BAREMULTISIG = True

_FEE_RATE_FIELDS = ('dust_relay_fee', 'incremental_relay_fee')
_BOOL_FIELDS = ('accept_datacarrier', 'permit_bare_multisig')


class ConfigError(Exception):
    """Raised when policy settings fail validation."""


@dataclass(frozen=True)
class PolicySettings:
    dust_relay_fee: FeeRate = field(
        default_factory=lambda: FeeRate(DUST_RELAY_TX_FEE))
    incremental_relay_fee: FeeRate = field(
        default_factory=lambda: FeeRate(DEFAULT_INCREMENTAL_RELAY_FEE))
    bytes_per_sigop: int = DEFAULT_BYTES_PER_SIGOP
    bytes_per_sigop_strict: int = DEFAULT_BYTES_PER_SIGOP_STRICT
    accept_datacarrier: bool = DEFAULT_ACCEPT_DATACARRIER
    max_datacarrier_bytes: int = MAX_OP_RETURN_RELAY
    permit_bare_multisig: bool = DEFAULT_PERMIT_BAREMULTISIG

    def validate(self) -> None:
        for name in _FEE_RATE_FIELDS:
            rate = getattr(self, name)
            if not isinstance(rate, FeeRate):
                raise ConfigError(f'{name} must be a FeeRate, got {rate!r}')
            if rate.GetFeePerK() < 0:
                raise ConfigError(f'{name} must not be negative')
        if self.bytes_per_sigop < 0:
            raise ConfigError('bytes_per_sigop must not be negative')
        if self.bytes_per_sigop_strict < 0:
            raise ConfigError('bytes_per_sigop_strict must not be negative')
        if self.max_datacarrier_bytes < 0:
            raise ConfigError('max_datacarrier_bytes must not be negative')

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'PolicySettings':
        """Build settings from plain values; fee rates are given in sat/kB"""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(
                f"Unknown policy setting(s): {', '.join(sorted(unknown))}")

        kwargs: Dict[str, Any] = {}
        for name, value in values.items():
            if name in _FEE_RATE_FIELDS:
                if not isinstance(value, FeeRate):
                    value = FeeRate(_as_int(name, value))
            elif name in _BOOL_FIELDS:
                value = _as_bool(name, value)
            else:
                value = _as_int(name, value)
            kwargs[name] = value

        settings = cls(**kwargs)
        settings.validate()
        return settings

    def replace(self, **changes: Any) -> 'PolicySettings':
        settings = dataclasses.replace(self, **changes)
        settings.validate()
        return settings

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        for name in _FEE_RATE_FIELDS:
            data[name] = getattr(self, name).GetFeePerK()
        return data


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f'{name} must be an integer, got {value!r}')
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f'{name} must be an integer, got {value!r}') from exc


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('1', 'true', 'yes', 'on'):
            return True
        if lowered in ('0', 'false', 'no', 'off'):
            return False
    raise ConfigError(f'{name} must be a boolean, got {value!r}')


def _env_overrides(env: Mapping[str, str]) -> Dict[str, str]:
    overrides = {}
    for key, value in env.items():
        if key.startswith(ENV_PREFIX):
            overrides[key[len(ENV_PREFIX):].lower()] = value
    return overrides


def load_settings(path: Optional[Union[str, Path]] = None,
                  env: Optional[Mapping[str, str]] = None
                  ) -> PolicySettings:
    values: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except OSError as exc:
            raise ConfigError(f'Cannot read policy settings {path}: {exc}') from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f'Invalid JSON in {path}: {exc}') from exc
        if not isinstance(data, dict):
            raise ConfigError(f'{path} must contain a JSON object')
        values.update(data)

    overrides = _env_overrides(os.environ if env is None else env)
    if overrides:
        log.debug('Applying policy overrides from environment: %s',
                  ', '.join(sorted(overrides)))
    values.update(overrides)

    return PolicySettings.from_mapping(values)


__all__ = (
    'DUST_RELAY_TX_FEE',
    'DEFAULT_INCREMENTAL_RELAY_FEE',
    'DEFAULT_BYTES_PER_SIGOP',
    'DEFAULT_BYTES_PER_SIGOP_STRICT',
    'DEFAULT_ACCEPT_DATACARRIER',
    'MAX_OP_RETURN_RELAY',
    'DEFAULT_PERMIT_BAREMULTISIG',
    'ConfigError',
    'PolicySettings',
    'load_settings',
)
