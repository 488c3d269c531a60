"""
approval_config -- YAML configuration for the approval engine.

Responsibility:
    ``load_config(path)`` reads one YAML file and returns an
    ``ApprovalConfigSet``: the ``EngineConfig`` for the engine constructor
    and the machine definitions to register, every one of them already
    validated by the Level Graph Builder.

Architecture position:
    Configuration -- sits above ``approval_kernel`` and ``approval_engines``.
    The kernel MUST NEVER import from ``approval_config``.

Failure modes:
    - ``FileNotFoundError`` / ``yaml.YAMLError`` from reading the file.
    - ``ValueError`` for structural problems, including two machines with
      the same category.
    - ``MachineDefinitionError`` subclasses for invalid machines.

Example file::

    engine:
      hook_failure_policy: log
      max_opinion_length: 500
    machines:
      - category: 1
        name: leave
        submitterName: applicant
        submitterEditFields: reason,days
        levels:
          - {name: lead, roles: "5", refuse: true}
          - {name: hr, users: [7], edit: true, editFields: days}
"""

from __future__ import annotations

import logging
from pathlib import Path

from approval_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_engine_config,
    parse_machine_def,
)
from approval_config.schema import ApprovalConfigSet
from approval_engines.level_graph import build_machine

_logger = logging.getLogger("approval_kernel.config")


def load_config(path: Path | str) -> ApprovalConfigSet:
    """Load, validate and fingerprint one approval configuration file."""
    path = Path(path)
    data = load_yaml_file(path)

    engine = parse_engine_config(data.get("engine"))
    machines = tuple(parse_machine_def(m) for m in data.get("machines") or ())

    seen: set[int] = set()
    for definition in machines:
        if definition.category in seen:
            raise ValueError(f"{path}: duplicate machine category {definition.category}")
        seen.add(definition.category)
        build_machine(definition)

    checksum = compute_checksum({
        "engine": {
            "hook_failure_policy": engine.hook_failure_policy.value,
            "record_hook_failures": engine.record_hook_failures,
            "max_opinion_length": engine.max_opinion_length,
            "max_hook_attempts": engine.max_hook_attempts,
        },
        "machines": [m.to_dict() for m in machines],
    })

    _logger.info(
        "APPROVAL_CONFIG_TRACE",
        extra={
            "trace_type": "APPROVAL_CONFIG_TRACE",
            "path": str(path),
            "checksum": checksum,
            "machine_count": len(machines),
        },
    )
    return ApprovalConfigSet(engine=engine, machines=machines, checksum=checksum)


__all__ = [
    "ApprovalConfigSet",
    "load_config",
]
