# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/orchestrator/models.py
"""
Values passed between the stages of a template migration.
"""
from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.cred import DEFAULT_PASSWORD_ENV


class WorkflowStage(Enum):
    INIT = 0
    SAFETY_CHECK = 1
    CONNECTED = 2
    ENUMERATED = 3
    SELECTED = 4
    CONFIRMED = 5
    CONVERTED = 6
    EXPORTED = 7
    IMPORTED = 8
    RESTORED = 9
    CLEANED = 10
    DONE = 11
    FAILED = 12
    ABORTED = 13

    @property
    def terminal(self) -> bool:
        return self in (WorkflowStage.DONE, WorkflowStage.FAILED, WorkflowStage.ABORTED)


# Four operator-visible checkpoints: converted, exported, imported, restored.
CHECKPOINTS = (
    (WorkflowStage.CONVERTED, "Template converted to machine"),
    (WorkflowStage.EXPORTED, "Appliance exported"),
    (WorkflowStage.IMPORTED, "Appliance imported"),
    (WorkflowStage.RESTORED, "Template restored"),
)


def checkpoint_for(stage: WorkflowStage) -> int:
    """Number of checkpoints reached at `stage` (0..4)."""
    if stage in (WorkflowStage.FAILED, WorkflowStage.ABORTED):
        return 0
    reached = 0
    for i, (cp, _label) in enumerate(CHECKPOINTS, start=1):
        if stage.value >= cp.value:
            reached = i
    return reached


@dataclass(frozen=True)
class Session:
    source_domain: str
    destination_domain: str
    confirmed: bool = False


@dataclass(frozen=True)
class TemplateCandidate:
    name: str
    exists_on_destination: bool = False


@dataclass
class MigrationJob:
    """
    One template travelling through the workflow.

    The stage only moves forward; FAILED/ABORTED may be entered from any
    non-terminal stage and nothing leaves a terminal stage.
    """
    selected_template: str
    stage: WorkflowStage = WorkflowStage.SELECTED
    exported_artifact_path: Optional[Path] = None
    history: List[WorkflowStage] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.stage)

    def advance(self, stage: WorkflowStage) -> None:
        if self.stage.terminal:
            raise ValueError(f"Job for {self.selected_template!r} already finished at {self.stage.name}")
        if stage not in (WorkflowStage.FAILED, WorkflowStage.ABORTED) and stage.value <= self.stage.value:
            raise ValueError(f"Stage may only move forward: {self.stage.name} -> {stage.name}")
        self.stage = stage
        self.history.append(stage)


@dataclass(frozen=True)
class Placement:
    datacenter: str
    cluster: str
    datastore: str
    network: str

    def as_dict(self) -> Dict[str, str]:
        return {
            "datacenter": self.datacenter,
            "cluster": self.cluster,
            "datastore": self.datastore,
            "network": self.network,
        }


@dataclass(frozen=True)
class MigrationSettings:
    placement: Placement
    template_prefix: str = "tmpl-"
    safe_marker: str = "lab"
    template_folder: str = "Templates"
    artifact_dir: Path = Path("~/Downloads/tmpl2vc")
    sha_algorithm: str = "SHA256"
    disk_mode: Optional[str] = None

    vc_user: str = ""
    vc_password_env: str = DEFAULT_PASSWORD_ENV
    vc_port: int = 443
    vc_insecure: bool = False
    vc_timeout: Optional[float] = None

    task_timeout_s: float = 1800.0
    poll_interval_s: float = 2.0
    ovftool_path: Optional[str] = None

    source: Optional[str] = None
    destination: Optional[str] = None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "MigrationSettings":
        def get(name: str, default: Any = None) -> Any:
            v = getattr(args, name, None)
            return default if v is None else v

        return cls(
            placement=Placement(
                datacenter=str(get("datacenter", "")),
                cluster=str(get("cluster", "")),
                datastore=str(get("datastore", "")),
                network=str(get("network", "")),
            ),
            template_prefix=str(get("template_prefix", "tmpl-")),
            safe_marker=str(get("safe_marker", "lab")),
            template_folder=str(get("template_folder", "Templates")),
            artifact_dir=Path(str(get("artifact_dir", "~/Downloads/tmpl2vc"))).expanduser(),
            sha_algorithm=str(get("sha_algorithm", "SHA256")).upper(),
            disk_mode=get("disk_mode"),
            vc_user=str(get("vc_user", "")),
            vc_password_env=str(get("vc_password_env", DEFAULT_PASSWORD_ENV)),
            vc_port=int(get("vc_port", 443)),
            vc_insecure=bool(get("vc_insecure", False)),
            vc_timeout=float(args.vc_timeout) if getattr(args, "vc_timeout", None) is not None else None,
            task_timeout_s=float(get("task_timeout", 1800.0)),
            poll_interval_s=float(get("poll_interval", 2.0)),
            ovftool_path=get("ovftool_path"),
            source=get("source"),
            destination=get("destination"),
        )
