"""Data models for vm-sandbox."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, NamedTuple, Optional


class InstanceState(str, Enum):
    ABSENT = "absent"
    PROVISIONING = "provisioning"
    DEFINED = "defined"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Identity:
    uuid: str
    mac: str
    chassis_serial: str
    disk_serial: str

    def fields(self) -> List[tuple]:
        return [
            ("uuid", self.uuid),
            ("mac", self.mac),
            ("chassis_serial", self.chassis_serial),
            ("disk_serial", self.disk_serial),
        ]


@dataclass(frozen=True)
class Template:
    key: str
    path: Path
    document: str
    placeholders: FrozenSet[str]
    profile_path: Optional[Path] = None


class InstancePaths(NamedTuple):
    disk: Path
    definition: Path
    nvram: Path
    profile_link: Path


class Registration(NamedTuple):
    name: str
    uuid: str


@dataclass
class VMInstance:
    template_key: str
    name: str
    identity: Identity
    paths: InstancePaths
    iso_path: Path
    state: InstanceState = InstanceState.PROVISIONING


STEP_DONE = "done"
STEP_NOT_FOUND = "not found"
STEP_FAILED = "failed"


class TeardownStep(NamedTuple):
    step: str
    outcome: str
    detail: str = ""


@dataclass
class TeardownReport:
    name: str
    steps: List[TeardownStep] = field(default_factory=list)

    def record(self, step: str, outcome: str, detail: str = "") -> TeardownStep:
        entry = TeardownStep(step, outcome, detail)
        self.steps.append(entry)
        return entry

    def outcome(self, step: str) -> Optional[str]:
        for entry in self.steps:
            if entry.step == step:
                return entry.outcome
        return None

    @property
    def ok(self) -> bool:
        return all(entry.outcome != STEP_FAILED for entry in self.steps)

    @property
    def all_absent(self) -> bool:
        return all(entry.outcome == STEP_NOT_FOUND for entry in self.steps)

    @property
    def failures(self) -> List[TeardownStep]:
        return [entry for entry in self.steps if entry.outcome == STEP_FAILED]
