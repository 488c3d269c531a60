"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses its ``engine:`` and
``machines:`` sections into ``EngineConfig`` and ``MachineDef`` values.

Architecture position
---------------------
**Config layer** -- infrastructure tooling above the kernel.  The kernel
never imports from ``approval_config``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Machine without ``category``  -> ``KeyError`` propagates.
* Unknown ``hook_failure_policy``, a negative ``max_opinion_length``
  or a negative ``max_hook_attempts``  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_kernel.domain.engine_config import EngineConfig, HookFailurePolicy
from approval_kernel.domain.machine import LevelDef, MachineDef, parse_flag


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_level_def(data: dict[str, Any]) -> LevelDef:
    """Parse a LevelDef from a dict (YAML lists or comma strings both work)."""
    if not isinstance(data, dict):
        raise ValueError(f"Level must be a mapping, got {data!r}")
    return LevelDef.from_dict(data)


def parse_machine_def(data: dict[str, Any]) -> MachineDef:
    """
    Parse a MachineDef from a dict.

    Raises:
        KeyError: if ``category`` is missing.
        ValueError: if ``levels`` is not a list.
    """
    levels = data.get("levels") or []
    if not isinstance(levels, list):
        raise ValueError(
            f"Machine {data.get('category')!r}: levels must be a list, got {levels!r}"
        )
    machine = MachineDef.from_dict({**data, "levels": []})
    return MachineDef(
        category=machine.category,
        name=machine.name,
        submitter_name=machine.submitter_name,
        submitter_edit_fields=machine.submitter_edit_fields,
        submitter_confirm=machine.submitter_confirm,
        submitter_confirm_edit_fields=machine.submitter_confirm_edit_fields,
        levels=tuple(parse_level_def(lv) for lv in levels),
    )


def parse_engine_config(data: dict[str, Any] | None) -> EngineConfig:
    """Parse the ``engine:`` section; absent keys keep their defaults."""
    if not data:
        return EngineConfig()

    defaults = EngineConfig()
    policy = data.get("hook_failure_policy", defaults.hook_failure_policy.value)
    try:
        policy = HookFailurePolicy(str(policy).lower())
    except ValueError:
        raise ValueError(
            f"Unknown hook_failure_policy {policy!r}; "
            f"expected one of {[p.value for p in HookFailurePolicy]}"
        ) from None

    max_opinion_length = int(data.get("max_opinion_length", defaults.max_opinion_length))
    if max_opinion_length < 0:
        raise ValueError(f"max_opinion_length must be >= 0, got {max_opinion_length}")

    max_hook_attempts = int(data.get("max_hook_attempts", defaults.max_hook_attempts))
    if max_hook_attempts < 0:
        raise ValueError(f"max_hook_attempts must be >= 0, got {max_hook_attempts}")

    return EngineConfig(
        hook_failure_policy=policy,
        record_hook_failures=parse_flag(
            data.get("record_hook_failures"), defaults.record_hook_failures,
        ),
        max_opinion_length=max_opinion_length,
        max_hook_attempts=max_hook_attempts,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
