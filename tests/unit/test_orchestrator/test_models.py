# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for workflow value types."""
from __future__ import annotations

import argparse
from pathlib import Path

import pytest

from tmpl2vc.orchestrator.models import (
    CHECKPOINTS,
    MigrationJob,
    MigrationSettings,
    Placement,
    WorkflowStage,
    checkpoint_for,
)


@pytest.mark.unit
class TestMigrationJob:
    def test_starts_selected(self):
        job = MigrationJob(selected_template="tmpl-web")
        assert job.stage == WorkflowStage.SELECTED
        assert job.history == [WorkflowStage.SELECTED]
        assert job.exported_artifact_path is None

    def test_advance_forward(self):
        job = MigrationJob(selected_template="tmpl-web")
        job.advance(WorkflowStage.CONFIRMED)
        job.advance(WorkflowStage.EXPORTED)
        assert job.stage == WorkflowStage.EXPORTED
        assert job.history[-1] == WorkflowStage.EXPORTED

    def test_advance_backward_rejected(self):
        job = MigrationJob(selected_template="tmpl-web")
        job.advance(WorkflowStage.EXPORTED)
        with pytest.raises(ValueError):
            job.advance(WorkflowStage.CONVERTED)

    def test_advance_to_same_stage_rejected(self):
        job = MigrationJob(selected_template="tmpl-web")
        with pytest.raises(ValueError):
            job.advance(WorkflowStage.SELECTED)

    def test_failed_reachable_from_any_stage(self):
        job = MigrationJob(selected_template="tmpl-web")
        job.advance(WorkflowStage.IMPORTED)
        job.advance(WorkflowStage.FAILED)
        assert job.stage == WorkflowStage.FAILED

    def test_nothing_leaves_terminal(self):
        job = MigrationJob(selected_template="tmpl-web")
        job.advance(WorkflowStage.ABORTED)
        with pytest.raises(ValueError):
            job.advance(WorkflowStage.DONE)
        with pytest.raises(ValueError):
            job.advance(WorkflowStage.FAILED)


@pytest.mark.unit
class TestCheckpoints:
    def test_four_checkpoints(self):
        assert len(CHECKPOINTS) == 4

    @pytest.mark.parametrize(
        "stage,expected",
        [
            (WorkflowStage.INIT, 0),
            (WorkflowStage.CONFIRMED, 0),
            (WorkflowStage.CONVERTED, 1),
            (WorkflowStage.EXPORTED, 2),
            (WorkflowStage.IMPORTED, 3),
            (WorkflowStage.RESTORED, 4),
            (WorkflowStage.DONE, 4),
            (WorkflowStage.FAILED, 0),
        ],
    )
    def test_checkpoint_for(self, stage, expected):
        assert checkpoint_for(stage) == expected

    def test_terminal_stages(self):
        terminal = {s for s in WorkflowStage if s.terminal}
        assert terminal == {WorkflowStage.DONE, WorkflowStage.FAILED, WorkflowStage.ABORTED}


@pytest.mark.unit
class TestMigrationSettings:
    def test_from_args_defaults(self):
        args = argparse.Namespace(datacenter="DC1", cluster="C1", datastore="ds1", network="net1")
        s = MigrationSettings.from_args(args)
        assert s.placement == Placement("DC1", "C1", "ds1", "net1")
        assert s.template_prefix == "tmpl-"
        assert s.safe_marker == "lab"
        assert s.template_folder == "Templates"
        assert s.sha_algorithm == "SHA256"
        assert s.vc_port == 443
        assert s.vc_timeout is None
        assert s.source is None and s.destination is None
        assert s.artifact_dir == Path("~/Downloads/tmpl2vc").expanduser()

    def test_from_args_overrides(self):
        args = argparse.Namespace(
            datacenter="DC1",
            cluster="C1",
            datastore="ds1",
            network="net1",
            template_prefix="gold-",
            sha_algorithm="sha1",
            vc_timeout=30,
            task_timeout=60,
            poll_interval=0.5,
            source="vc-a",
            destination="vc-b",
        )
        s = MigrationSettings.from_args(args)
        assert s.template_prefix == "gold-"
        assert s.sha_algorithm == "SHA1"
        assert s.vc_timeout == 30.0
        assert s.task_timeout_s == 60.0
        assert s.poll_interval_s == 0.5
        assert (s.source, s.destination) == ("vc-a", "vc-b")
