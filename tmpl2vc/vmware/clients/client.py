# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/vmware/clients/client.py
"""
vSphere / vCenter client for tmpl2vc.

Wraps the handful of pyvmomi calls a template migration needs:
template enumeration, template <-> machine conversion, removable media
removal, folder moves and read-only placement validation. Appliance
export/import is delegated to ovftool (see ..ovftool_client).
"""
from __future__ import annotations

import logging
import socket
import ssl
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence
from urllib.parse import quote

from ...core.exceptions import VMwareError
from ..ovftool_client import (
    OvfDeployOptions,
    OvfExportOptions,
    OvfToolError,
    OvfToolNotFound,
    OvfToolPaths,
    deploy_ovf,
    export_to_ovf,
    find_ovftool,
    ovftool_version,
)
from ..vmware_utils import quote_inventory_path, safe_vm_name

# Optional: vSphere / vCenter integration (pyvmomi)
try:
    from pyVim.connect import Disconnect, SmartConnect  # type: ignore
    from pyVmomi import vim  # type: ignore

    PYVMOMI_AVAILABLE = True
except Exception:  # pragma: no cover
    SmartConnect = None  # type: ignore
    Disconnect = None  # type: ignore
    vim = None  # type: ignore
    PYVMOMI_AVAILABLE = False


_TASK_SUCCESS = "success"
_TASK_ERROR = "error"


class VSphereClient:
    """
    vSphere/vCenter client for a single domain (one vCenter endpoint).
    """

    def __init__(
        self,
        logger: logging.Logger,
        host: str,
        user: str,
        password: str,
        *,
        port: int = 443,
        insecure: bool = False,
        timeout: Optional[float] = None,
        ovftool_path: Optional[str] = None,
        disk_mode: Optional[str] = None,
        task_timeout_s: float = 1800.0,
        poll_interval_s: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = logger
        self.host = (host or "").strip()
        self.user = (user or "").strip()
        self.password = password or ""
        self.port = int(port)
        self.insecure = bool(insecure)
        self.timeout = timeout
        self.ovftool_path = ovftool_path
        self.disk_mode = disk_mode
        self.task_timeout_s = float(task_timeout_s)
        self.poll_interval_s = float(poll_interval_s)
        self._sleep = sleep
        self._clock = clock

        self.si: Any = None
        self._ovftool_paths: Optional[OvfToolPaths] = None

    def __repr__(self) -> str:
        return f"VSphereClient(host={self.host!r}, user={self.user!r}, port={self.port})"

    # Connection

    def _require_pyvmomi(self) -> None:
        if not PYVMOMI_AVAILABLE:
            raise VMwareError(msg="pyvmomi not installed. Install: pip install pyvmomi")

    def _ssl_context(self) -> ssl.SSLContext:
        """
        SSL context for vSphere connections.

        insecure=True disables certificate verification entirely; only for
        lab vCenters with self-signed certificates.
        """
        if self.insecure:
            self.logger.warning("TLS certificate verification is DISABLED for %s", self.host)
            ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            return ctx
        return ssl.create_default_context()

    def connect(self) -> None:
        self._require_pyvmomi()
        ctx = self._ssl_context()
        old_timeout = socket.getdefaulttimeout()
        try:
            if self.timeout is not None:
                socket.setdefaulttimeout(self.timeout)
            self.si = SmartConnect(  # type: ignore[misc]
                host=self.host,
                user=self.user,
                pwd=self.password,
                port=self.port,
                sslContext=ctx,
            )
        except Exception as e:
            self.si = None
            raise VMwareError(msg=f"Failed to connect to vSphere {self.host}: {e}", cause=e)
        finally:
            socket.setdefaulttimeout(old_timeout)
        self.logger.info("Connected to vSphere: %s:%s", self.host, self.port)

    def disconnect(self) -> None:
        if self.si is None:
            return
        try:
            Disconnect(self.si)  # type: ignore[misc]
            self.logger.info("Disconnected from vSphere: %s", self.host)
        finally:
            self.si = None

    def is_connected(self) -> bool:
        return self.si is not None

    def ensure_session(self) -> None:
        """
        Re-validate the session before a long operation; reconnect when the
        server no longer knows it (idle expiry during a long export).
        """
        if self.si is None:
            self.connect()
            return
        try:
            alive = self._content().sessionManager.currentSession is not None
        except Exception as e:
            self.logger.debug("Session probe failed for %s: %s", self.host, e)
            alive = False
        if not alive:
            self.logger.warning("vSphere session to %s expired; reconnecting", self.host)
            self.si = None
            self.connect()

    def _content(self) -> Any:
        if not self.si:
            raise VMwareError(msg=f"Not connected to {self.host}")
        try:
            return self.si.RetrieveContent()
        except Exception as e:
            raise VMwareError(msg=f"Failed to retrieve content from {self.host}: {e}", cause=e)

    @contextmanager
    def _view(self, types: Sequence[Any], root: Any = None) -> Iterator[List[Any]]:
        self._require_pyvmomi()
        content = self._content()
        view = content.viewManager.CreateContainerView(root or content.rootFolder, list(types), True)
        try:
            yield list(view.view)
        finally:
            try:
                view.Destroy()
            except Exception as e:
                self.logger.debug("Container view cleanup failed on %s: %s", self.host, e)

    # Waiting

    def _wait_until(self, predicate: Callable[[], bool], what: str) -> None:
        deadline = self._clock() + self.task_timeout_s
        while not predicate():
            if self._clock() >= deadline:
                raise VMwareError(msg=f"Timed out after {self.task_timeout_s:.0f}s waiting for {what}")
            self._sleep(self.poll_interval_s)

    def wait_for_task(self, task: Any, what: str = "task") -> Any:
        self._wait_until(lambda: str(task.info.state) in (_TASK_SUCCESS, _TASK_ERROR), what)
        if str(task.info.state) == _TASK_ERROR:
            err = getattr(task.info, "error", None)
            detail = getattr(err, "msg", None) or str(err)
            raise VMwareError(msg=f"{what} failed: {detail}")
        return getattr(task.info, "result", None)

    # Inventory

    def get_vm_by_name(self, name: str) -> Any:
        n = (name or "").strip()
        if not n:
            return None
        with self._view([vim.VirtualMachine]) as vms:
            for vm_obj in vms:
                if getattr(vm_obj, "name", None) == n:
                    return vm_obj
        return None

    def _require_vm(self, name: str) -> Any:
        vm_obj = self.get_vm_by_name(name)
        if vm_obj is None:
            raise VMwareError(msg=f"VM not found on {self.host}: {name!r}")
        return vm_obj

    @staticmethod
    def _is_template_obj(vm_obj: Any) -> bool:
        cfg = getattr(vm_obj, "config", None)
        return bool(getattr(cfg, "template", False)) if cfg is not None else False

    def list_template_names(self, prefix: str = "") -> List[str]:
        names = set()
        with self._view([vim.VirtualMachine]) as vms:
            for vm_obj in vms:
                name = str(getattr(vm_obj, "name", "") or "")
                if not name or not name.startswith(prefix):
                    continue
                if self._is_template_obj(vm_obj):
                    names.add(name)
        return sorted(names)

    def _datacenter_of(self, obj: Any) -> Any:
        cur = obj
        for _ in range(0, 64):
            if cur is None:
                break
            if isinstance(cur, vim.Datacenter):
                return cur
            cur = getattr(cur, "parent", None)
        raise VMwareError(msg=f"Could not resolve datacenter for {getattr(obj, 'name', obj)!r}")

    def _inventory_path_under_vmfolder(self, vm_obj: Any, dc_obj: Any) -> str:
        """
        Inventory path relative to <Datacenter>/vm, e.g. "<folder1>/<folder2>/<vmname>".
        This is what ovftool expects after ".../<dc_name>/vm/".
        """
        vm_folder = getattr(dc_obj, "vmFolder", None)
        parts: List[str] = []
        obj = vm_obj
        for _ in range(0, 96):
            if obj is None or obj == vm_folder:
                break
            name = getattr(obj, "name", None)
            if name:
                parts.append(str(name))
            obj = getattr(obj, "parent", None)
        return "/".join(reversed(parts)) or str(getattr(vm_obj, "name", "vm"))

    def _resource_pool_for(self, vm_obj: Any) -> Any:
        host = getattr(getattr(vm_obj, "runtime", None), "host", None)
        compute = getattr(host, "parent", None) if host is not None else None
        pool = getattr(compute, "resourcePool", None) if compute is not None else None
        if pool is not None:
            return pool

        dc = self._datacenter_of(vm_obj)
        with self._view([vim.ComputeResource], root=dc.hostFolder) as computes:
            for cr in computes:
                if getattr(cr, "resourcePool", None) is not None:
                    return cr.resourcePool
        raise VMwareError(msg=f"No resource pool available for {getattr(vm_obj, 'name', '?')!r}")

    def find_vm_folder(self, folder_name: str, dc_obj: Any) -> Any:
        with self._view([vim.Folder], root=dc_obj.vmFolder) as folders:
            for f in folders:
                if getattr(f, "name", None) == folder_name and "VirtualMachine" in list(getattr(f, "childType", []) or []):
                    return f
        return None

    # Template <-> machine

    def convert_to_machine(self, name: str) -> None:
        vm_obj = self._require_vm(name)
        if not self._is_template_obj(vm_obj):
            self.logger.info("%s is already a machine on %s", name, self.host)
            return
        host = getattr(getattr(vm_obj, "runtime", None), "host", None)
        pool = self._resource_pool_for(vm_obj)
        vm_obj.MarkAsVirtualMachine(pool=pool, host=host)
        self._wait_until(lambda: not self._is_template_obj(vm_obj), f"{name} to become a machine")
        self.logger.info("Converted template %s to a machine on %s", name, self.host)

    def convert_to_template(self, name: str) -> None:
        vm_obj = self._require_vm(name)
        if self._is_template_obj(vm_obj):
            self.logger.info("%s is already a template on %s", name, self.host)
            return
        vm_obj.MarkAsTemplate()
        self._wait_until(lambda: self._is_template_obj(vm_obj), f"{name} to become a template")
        self.logger.info("Converted %s to a template on %s", name, self.host)

    def remove_removable_media(self, name: str) -> List[str]:
        """
        Remove every CD-ROM and floppy device in a single reconfigure task.
        Returns the labels of removed devices (empty when there was nothing to do).
        """
        vm_obj = self._require_vm(name)
        hardware = getattr(getattr(vm_obj, "config", None), "hardware", None)
        devices = list(getattr(hardware, "device", None) or [])
        removable = [d for d in devices if isinstance(d, (vim.vm.device.VirtualCdrom, vim.vm.device.VirtualFloppy))]
        if not removable:
            self.logger.debug("No removable media attached to %s", name)
            return []

        spec = vim.vm.ConfigSpec()
        spec.deviceChange = [
            vim.vm.device.VirtualDeviceSpec(
                operation=vim.vm.device.VirtualDeviceSpec.Operation.remove,
                device=d,
            )
            for d in removable
        ]
        task = vm_obj.ReconfigVM_Task(spec=spec)
        self.wait_for_task(task, f"removable media removal on {name}")

        labels = [str(getattr(getattr(d, "deviceInfo", None), "label", None) or f"device-{d.key}") for d in removable]
        for label in labels:
            self.logger.info("  ✓ Removed: %s", label)
        return labels

    def move_to_folder(self, name: str, folder_name: str) -> None:
        vm_obj = self._require_vm(name)
        dc = self._datacenter_of(vm_obj)
        folder = self.find_vm_folder(folder_name, dc)
        if folder is None:
            raise VMwareError(msg=f"VM folder {folder_name!r} not found in datacenter {dc.name!r} on {self.host}")
        if getattr(vm_obj, "parent", None) == folder:
            self.logger.info("%s already in folder %s", name, folder_name)
            return
        task = folder.MoveIntoFolder_Task([vm_obj])
        self.wait_for_task(task, f"move of {name} into {folder_name}")
        self.logger.info("Moved %s into folder %s", name, folder_name)

    # Placement validation (read-only)

    def get_datacenter_by_name(self, name: str) -> Any:
        with self._view([vim.Datacenter]) as dcs:
            for dc in dcs:
                if getattr(dc, "name", None) == name:
                    return dc
        return None

    def _datacenter_names(self) -> List[str]:
        with self._view([vim.Datacenter]) as dcs:
            return sorted(str(dc.name) for dc in dcs)

    @staticmethod
    def _pick(objs: Sequence[Any], name: str) -> Any:
        for o in objs:
            if getattr(o, "name", None) == name:
                return o
        return None

    @staticmethod
    def _names(objs: Sequence[Any]) -> List[str]:
        return sorted(str(getattr(o, "name", "")) for o in objs)

    def validate_placement(self, placement: Any, template_folder: str) -> Dict[str, str]:
        """
        Resolve datacenter, cluster, datastore, network and template folder
        by name; raise VMwareError naming the first one that is missing.
        """
        dc = self.get_datacenter_by_name(placement.datacenter)
        if dc is None:
            raise VMwareError(
                msg=f"Datacenter {placement.datacenter!r} not found on {self.host}. Available: {self._datacenter_names()}"
            )

        with self._view([vim.ComputeResource], root=dc.hostFolder) as computes:
            if self._pick(computes, placement.cluster) is None:
                raise VMwareError(
                    msg=f"Cluster {placement.cluster!r} not found in {placement.datacenter!r}. Available: {self._names(computes)}"
                )

        datastores = list(getattr(dc, "datastore", None) or [])
        if self._pick(datastores, placement.datastore) is None:
            raise VMwareError(
                msg=f"Datastore {placement.datastore!r} not found in {placement.datacenter!r}. Available: {self._names(datastores)}"
            )

        networks = list(getattr(dc, "network", None) or [])
        if self._pick(networks, placement.network) is None:
            raise VMwareError(
                msg=f"Network {placement.network!r} not found in {placement.datacenter!r}. Available: {self._names(networks)}"
            )

        if self.find_vm_folder(template_folder, dc) is None:
            raise VMwareError(msg=f"VM folder {template_folder!r} not found in {placement.datacenter!r}")

        self.logger.info(
            "Placement on %s resolved: dc=%s cluster=%s datastore=%s network=%s folder=%s",
            self.host,
            placement.datacenter,
            placement.cluster,
            placement.datastore,
            placement.network,
            template_folder,
        )
        return {
            "datacenter": placement.datacenter,
            "cluster": placement.cluster,
            "datastore": placement.datastore,
            "network": placement.network,
            "folder": template_folder,
        }

    # Appliance export / import (ovftool)

    def _ovftool(self) -> OvfToolPaths:
        if self._ovftool_paths is None:
            try:
                self._ovftool_paths = find_ovftool(self.ovftool_path)
            except OvfToolNotFound as e:
                raise VMwareError(msg=f"OVF Tool not found: {e}", cause=e)
            self.logger.info(
                "OVF Tool found: %s (version: %s)",
                self._ovftool_paths.ovftool_bin,
                ovftool_version(self._ovftool_paths) or "unknown",
            )
        return self._ovftool_paths

    def _vi_base(self) -> str:
        # Credentials must be embedded for ovftool; never log this URL unmasked.
        netloc = self.host if self.port == 443 else f"{self.host}:{self.port}"
        return f"vi://{quote(self.user, safe='')}:{quote(self.password, safe='')}@{netloc}"

    def vm_source_url(self, name: str) -> str:
        vm_obj = self._require_vm(name)
        dc = self._datacenter_of(vm_obj)
        inv = quote_inventory_path(self._inventory_path_under_vmfolder(vm_obj, dc))
        return f"{self._vi_base()}/{quote_inventory_path(str(dc.name))}/vm/{inv}"

    def placement_target_url(self, placement: Any) -> str:
        return (
            f"{self._vi_base()}/{quote_inventory_path(placement.datacenter)}"
            f"/host/{quote_inventory_path(placement.cluster)}/"
        )

    def export_appliance(self, name: str, artifact_dir: Path, sha_algorithm: str = "SHA256") -> Path:
        """
        Export `name` as an OVF appliance under <artifact_dir>/<safe-name>/.
        Returns the appliance directory.
        """
        safe = safe_vm_name(name)
        out_dir = Path(artifact_dir).expanduser() / safe
        try:
            export_to_ovf(
                self.logger,
                paths=self._ovftool(),
                source=self.vm_source_url(name),
                destination=out_dir / f"{safe}.ovf",
                options=OvfExportOptions(no_ssl_verify=self.insecure, sha_algorithm=sha_algorithm),
            )
        except OvfToolError as e:
            raise VMwareError(msg=f"Export of {name} from {self.host} failed: {e}", cause=e)
        return out_dir

    @staticmethod
    def find_descriptor(artifact: Path) -> Path:
        p = Path(artifact)
        if p.is_file():
            return p
        found = sorted(p.glob("*.ovf")) + sorted(p.glob("*.ova"))
        if not found:
            raise VMwareError(msg=f"No .ovf/.ova descriptor under {p}")
        return found[0]

    def import_appliance(self, artifact: Path, name: str, placement: Any) -> bool:
        """
        Import an exported appliance into this vCenter.

        Returns False when ovftool rejects the import (non-zero exit);
        raises VMwareError for anything that prevents even trying.
        """
        descriptor = self.find_descriptor(artifact)
        paths = self._ovftool()
        try:
            deploy_ovf(
                self.logger,
                paths=paths,
                source=descriptor,
                target_vi=self.placement_target_url(placement),
                options=OvfDeployOptions(
                    no_ssl_verify=self.insecure,
                    name=name,
                    datastore=placement.datastore,
                    network=placement.network,
                    disk_mode=self.disk_mode,
                ),
            )
        except OvfToolNotFound as e:
            raise VMwareError(msg=f"OVF Tool not runnable: {e}", cause=e)
        except OvfToolError as e:
            first = str(e).splitlines()[0] if str(e) else type(e).__name__
            self.logger.error("ovftool rejected the import of %s into %s: %s", name, self.host, first)
            return False
        return True
