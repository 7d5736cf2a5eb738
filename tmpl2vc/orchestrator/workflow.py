# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/orchestrator/workflow.py
"""
Migration workflow controller.

Drives one template from a source vCenter to a destination vCenter:

  INIT -> SAFETY_CHECK -> CONNECTED -> ENUMERATED -> SELECTED -> CONFIRMED
       -> CONVERTED -> EXPORTED -> IMPORTED -> RESTORED -> CLEANED -> DONE

Any checkpoint may end in ABORTED (operator said no, nothing to migrate) or
FAILED (a remote call failed, import rejected). Completed remote changes are
never rolled back; instead the controller reports which side holds what so
the operator can finish by hand.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..core.cred import resolve_vsphere_creds
from ..core.exceptions import (
    ExitCode,
    Fatal,
    ImportRejected,
    Interrupted,
    MigrationError,
    PlacementInvalid,
    ConnectFailed,
    PreconditionFailed,
    RemoteCallFailed,
    UserAborted,
    no_selection,
    safety_declined,
)
from ..core.logger import Log
from ..core.utils import U
from ..vmware.clients.client import VSphereClient
from ..vmware.vmware_utils import safe_vm_name
from .candidates import compute_candidates, filter_by_prefix, is_safe_domain, selectable
from .models import (
    CHECKPOINTS,
    MigrationJob,
    MigrationSettings,
    Session,
    TemplateCandidate,
    WorkflowStage,
    checkpoint_for,
)

ClientFactory = Callable[[str], Any]


@dataclass
class PartialState:
    """What each side holds right now; only meaningful once CONVERTED started."""
    source: str = "template"
    destination: str = "absent"
    artifact: Optional[Path] = None
    # Set while an export is running; the directory may hold a partial appliance.
    artifact_partial: bool = False
    in_flight: Optional[str] = None

    def _artifact_text(self) -> str:
        if self.artifact is None:
            return "none"
        if self.artifact_partial:
            return f"possibly partial at {self.artifact}" if self.artifact.exists() else "none"
        return str(self.artifact)

    def as_dict(self) -> Dict[str, str]:
        d = {
            "source": self.source,
            "destination": self.destination,
            "local artifact": self._artifact_text(),
        }
        if self.in_flight:
            d["interrupted operation"] = f"{self.in_flight} (outcome unknown, verify manually)"
        return d


@dataclass
class MigrationResult:
    stage: WorkflowStage
    reason: str
    exit_code: int
    message: str
    session: Optional[Session] = None
    job: Optional[MigrationJob] = None
    partial_state: Optional[Dict[str, str]] = None
    history: List[WorkflowStage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.stage == WorkflowStage.DONE


def vsphere_client_factory(logger: logging.Logger, settings: MigrationSettings, operator: Any) -> ClientFactory:
    """
    Build one VSphereClient per domain name, resolving credentials on demand.
    Both domains share one account, so a prompted password is asked for once.
    """
    cfg = {"vc_user": settings.vc_user, "vc_password_env": settings.vc_password_env}
    prompted: List[str] = []

    def prompt_once(prompt: str) -> str:
        if not prompted:
            prompted.append(operator.secret(prompt))
        return prompted[0]

    def build(domain: str) -> VSphereClient:
        creds = resolve_vsphere_creds(cfg, domain, prompt_secret=prompt_once)
        return VSphereClient(
            logger,
            creds.host,
            creds.user,
            creds.password,
            port=settings.vc_port,
            insecure=settings.vc_insecure,
            timeout=settings.vc_timeout,
            ovftool_path=settings.ovftool_path,
            disk_mode=settings.disk_mode,
            task_timeout_s=settings.task_timeout_s,
            poll_interval_s=settings.poll_interval_s,
        )

    return build


class MigrationWorkflow:
    def __init__(
        self,
        logger: logging.Logger,
        settings: MigrationSettings,
        operator: Any,
        client_factory: Optional[ClientFactory] = None,
        remove_artifact: Optional[Callable[[Path], Any]] = None,
    ) -> None:
        self.logger = logger
        self.settings = settings
        self.operator = operator
        self.client_factory = client_factory or vsphere_client_factory(logger, settings, operator)
        self.remove_artifact = remove_artifact or (lambda p: U.remove_artifact(logger, p))

        self.stage = WorkflowStage.INIT
        self.history: List[WorkflowStage] = [WorkflowStage.INIT]
        self.session: Optional[Session] = None
        self.job: Optional[MigrationJob] = None
        self.candidates: List[TemplateCandidate] = []
        self.partial = PartialState()
        self._clients: List[Any] = []

    # ------------------------------------------------------------------
    # Stage bookkeeping
    # ------------------------------------------------------------------

    def _enter(self, stage: WorkflowStage) -> None:
        if self.job is not None:
            self.job.advance(stage)
        elif not stage.terminal and stage.value <= self.stage.value:
            raise ValueError(f"Stage may only move forward: {self.stage.name} -> {stage.name}")
        self.stage = stage
        self.history.append(stage)

        ctx = {"stage": stage.name}
        if self.job is not None:
            ctx["template"] = self.job.selected_template
        Log.step(self.logger, f"Stage {stage.name}", **ctx)

        reached = checkpoint_for(stage)
        for cp, label in CHECKPOINTS:
            if cp == stage:
                self.operator.progress(reached, len(CHECKPOINTS), label)
                Log.checkpoint(self.logger, reached, len(CHECKPOINTS), label, **ctx)

    def _call(self, op: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run one remote call; anything but a workflow error becomes RemoteCallFailed."""
        self.partial.in_flight = op
        try:
            result = fn(*args, **kwargs)
        except (MigrationError, Fatal):
            raise
        except Exception as e:
            ctx: Dict[str, Any] = {"operation": op}
            if self.job is not None:
                ctx["template"] = self.job.selected_template
            raise RemoteCallFailed(msg=f"{op} failed: {e}", cause=e, stage=self.stage.name, context=ctx)
        self.partial.in_flight = None
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _collect_session(self) -> Session:
        source = (self.settings.source or self.operator.ask("Source vCenter")).strip()
        destination = (self.settings.destination or self.operator.ask("Destination vCenter")).strip()
        if not source or not destination:
            raise Fatal(ExitCode.USAGE, "Both source and destination vCenter names are required")
        if source.lower() == destination.lower():
            raise Fatal(ExitCode.USAGE, f"Source and destination are the same vCenter: {source}")
        self.session = Session(source_domain=source, destination_domain=destination)

        self._enter(WorkflowStage.SAFETY_CHECK)
        marker = self.settings.safe_marker
        if not (is_safe_domain(source, marker) or is_safe_domain(destination, marker)):
            Log.warn(self.logger, f"Neither vCenter name contains the safe marker {marker!r}", source=source, destination=destination)
            if not self.operator.confirm(
                f"Neither {source} nor {destination} looks like a '{marker}' vCenter. Continue anyway?"
            ):
                raise safety_declined("Safety override declined by operator", source=source, destination=destination)
        self.session = dataclasses.replace(self.session, confirmed=True)
        return self.session

    def _connect_one(self, domain: str) -> Any:
        try:
            client = self.client_factory(domain)
            client.connect()
        except Fatal:
            raise
        except Exception as e:
            raise ConnectFailed(msg=f"Cannot connect to {domain}: {e}", cause=e, stage=self.stage.name, context={"domain": domain})
        self._clients.append(client)
        return client

    def _connect(self, session: Session) -> List[Any]:
        src = self._connect_one(session.source_domain)
        dst = self._connect_one(session.destination_domain)
        try:
            dst.validate_placement(self.settings.placement, self.settings.template_folder)
        except Exception as e:
            raise PlacementInvalid(
                msg=f"Destination placement invalid on {session.destination_domain}: {e}",
                cause=e,
                stage=self.stage.name,
                context=self.settings.placement.as_dict(),
            )
        self._enter(WorkflowStage.CONNECTED)
        return [src, dst]

    def _enumerate(self, src: Any, dst: Any) -> List[str]:
        prefix = self.settings.template_prefix
        src_names = filter_by_prefix(self._call("list source templates", src.list_template_names, prefix), prefix)
        if not src_names:
            raise PreconditionFailed(
                msg=f"No templates matching '{prefix}*' on {self.session.source_domain}",
                stage=self.stage.name,
            )
        dst_names = self._call("list destination templates", dst.list_template_names, prefix)
        self.candidates = compute_candidates(src_names, dst_names, prefix)
        remaining = selectable(self.candidates)
        skipped = [c.name for c in self.candidates if c.exists_on_destination]
        if skipped:
            self.logger.info("Already on %s: %s", self.session.destination_domain, ", ".join(skipped))
        if not remaining:
            raise PreconditionFailed(
                msg=f"All {len(self.candidates)} '{prefix}*' templates already exist on {self.session.destination_domain}",
                stage=self.stage.name,
            )
        self._enter(WorkflowStage.ENUMERATED)
        return remaining

    def _select(self, options: List[str]) -> MigrationJob:
        choice = self.operator.choose("Select the template to migrate", options)
        if not choice or choice not in options:
            raise no_selection("No template selected")
        self._enter(WorkflowStage.SELECTED)
        self.job = MigrationJob(selected_template=choice)
        self.logger.info("Selected template %s", choice)
        return self.job

    def _confirm(self, session: Session, job: MigrationJob) -> None:
        s = self.settings
        self.operator.summary(
            "Migration summary",
            {
                "Source vCenter": session.source_domain,
                "Destination vCenter": session.destination_domain,
                "Template": job.selected_template,
                "Placement": "{datacenter} / {cluster} / {datastore} / {network}".format(**s.placement.as_dict()),
                "Target folder": s.template_folder,
                "Artifact dir": str(s.artifact_dir),
            },
        )
        if not self.operator.confirm("Proceed with the migration?"):
            raise UserAborted(msg="Migration cancelled by operator", stage=self.stage.name)
        self._enter(WorkflowStage.CONFIRMED)

    def _convert(self, src: Any, job: MigrationJob) -> None:
        name = job.selected_template
        self._call("convert to machine", src.convert_to_machine, name)
        self.partial.source = "machine"
        self._call("remove removable media", src.remove_removable_media, name)
        self._enter(WorkflowStage.CONVERTED)

    def _export(self, src: Any, job: MigrationJob) -> None:
        self.partial.artifact = Path(self.settings.artifact_dir).expanduser() / safe_vm_name(job.selected_template)
        self.partial.artifact_partial = True
        path = self._call(
            "export appliance",
            src.export_appliance,
            job.selected_template,
            self.settings.artifact_dir,
            self.settings.sha_algorithm,
        )
        job.exported_artifact_path = Path(path)
        self.partial.artifact = job.exported_artifact_path
        self.partial.artifact_partial = False
        self._enter(WorkflowStage.EXPORTED)

    def _import(self, dst: Any, job: MigrationJob) -> None:
        name = job.selected_template
        self._call("refresh destination session", dst.ensure_session)
        accepted = self._call("import appliance", dst.import_appliance, job.exported_artifact_path, name, self.settings.placement)
        if not accepted:
            self.partial.destination = "absent or partial machine (import rejected)"
            raise ImportRejected(
                msg=f"Import of {name} into {self.session.destination_domain} was rejected",
                stage=self.stage.name,
                context={"template": name},
            )
        self.partial.destination = "machine"
        self._enter(WorkflowStage.IMPORTED)

    def _restore(self, dst: Any, job: MigrationJob) -> None:
        name = job.selected_template
        folder = self.settings.template_folder
        self._call("convert to template", dst.convert_to_template, name)
        self.partial.destination = "template (outside target folder)"
        self._call("move to folder", dst.move_to_folder, name, folder)
        self.partial.destination = f"template in {folder}"
        self._enter(WorkflowStage.RESTORED)

    def _cleanup(self, job: MigrationJob) -> None:
        self._call("delete local artifact", self.remove_artifact, job.exported_artifact_path)
        self.partial.artifact = None
        self._enter(WorkflowStage.CLEANED)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def _run_stages(self) -> None:
        session = self._collect_session()
        src, dst = self._connect(session)
        options = self._enumerate(src, dst)
        job = self._select(options)
        self._confirm(session, job)
        self._convert(src, job)
        self._export(src, job)
        self._import(dst, job)
        self._restore(dst, job)
        self._cleanup(job)

    def _disconnect_all(self) -> None:
        while self._clients:
            client = self._clients.pop()
            try:
                client.disconnect()
            except Exception as e:
                Log.warn(self.logger, f"Disconnect from {getattr(client, 'host', client)} failed: {e}")

    def _result_for(self, terminal: WorkflowStage, reason: str, code: int, msg: str) -> MigrationResult:
        # Remote state only changes after the operator confirmed.
        partial = self.partial.as_dict() if WorkflowStage.CONFIRMED in self.history else None
        self._enter(terminal)
        return MigrationResult(
            stage=terminal,
            reason=reason,
            exit_code=code,
            message=msg,
            session=self.session,
            job=self.job,
            partial_state=partial,
            history=list(self.history),
        )

    def _run_guarded(self) -> MigrationResult:
        try:
            self._run_stages()
        except (UserAborted, PreconditionFailed, Interrupted) as e:
            return self._result_for(WorkflowStage.ABORTED, e.reason, e.code, e.msg)
        except MigrationError as e:
            return self._result_for(WorkflowStage.FAILED, e.reason, e.code, e.msg)
        except Fatal as e:
            return self._result_for(WorkflowStage.FAILED, "Usage", e.code, e.msg)
        except KeyboardInterrupt:
            it = Interrupted(msg="Interrupted by operator", stage=self.stage.name)
            return self._result_for(WorkflowStage.ABORTED, it.reason, it.code, it.msg)

        self._enter(WorkflowStage.DONE)
        return MigrationResult(
            stage=WorkflowStage.DONE,
            reason="Done",
            exit_code=ExitCode.OK,
            message=(
                f"{self.job.selected_template} migrated from {self.session.source_domain} "
                f"to {self.session.destination_domain} ({self.settings.template_folder})"
            ),
            session=self.session,
            job=self.job,
            history=list(self.history),
        )

    def _report(self, result: MigrationResult) -> None:
        if result.ok:
            Log.ok(self.logger, result.message)
            self.operator.success(result.message)
            return

        ctx = {"stage": result.history[-2].name if len(result.history) > 1 else result.stage.name}
        if result.job is not None:
            ctx["template"] = result.job.selected_template
        if result.stage == WorkflowStage.ABORTED:
            Log.warn(self.logger, f"{result.reason}: {result.message}", **ctx)
        else:
            Log.fail(self.logger, f"{result.reason}: {result.message}", **ctx)
        self.operator.error(f"{result.reason}: {result.message}")

        if result.partial_state:
            for k, v in result.partial_state.items():
                self.logger.error("  %s: %s", k, v)
            self.operator.summary("Partial state (manual recovery needed)", result.partial_state)

    def run(self) -> MigrationResult:
        Log.banner(self.logger, "tmpl2vc template migration")
        try:
            result = self._run_guarded()
        finally:
            self._disconnect_all()
        self._report(result)
        return result
