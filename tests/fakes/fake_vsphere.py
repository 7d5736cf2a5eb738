# SPDX-License-Identifier: LGPL-3.0-or-later
from pathlib import Path

MUTATING = (
    "convert_to_machine",
    "remove_removable_media",
    "export_appliance",
    "import_appliance",
    "convert_to_template",
    "move_to_folder",
)


class FakeDomainClient:
    """
    Stand-in for VSphereClient on one domain. Calls are appended to a
    shared `journal` as (host, method, *args) so ordering across both
    domains can be asserted. `fail` maps a method name to an exception.
    """

    def __init__(self, host, journal, templates=(), fail=None, import_ok=True, artifact_root="/tmp/tmpl2vc-test"):
        self.host = host
        self.journal = journal
        self.templates = list(templates)
        self.fail = dict(fail or {})
        self.import_ok = import_ok
        self.artifact_root = Path(artifact_root)
        self.connected = False

    def _rec(self, method, *args):
        self.journal.append((self.host, method) + args)
        exc = self.fail.get(method)
        if exc is not None:
            raise exc

    def connect(self):
        self._rec("connect")
        self.connected = True

    def disconnect(self):
        self.connected = False
        self._rec("disconnect")

    def ensure_session(self):
        self._rec("ensure_session")

    def validate_placement(self, placement, folder):
        self._rec("validate_placement", placement.datacenter, folder)
        return placement.as_dict()

    def list_template_names(self, prefix=""):
        self._rec("list_template_names", prefix)
        return sorted(n for n in self.templates if n.startswith(prefix))

    def convert_to_machine(self, name):
        self._rec("convert_to_machine", name)

    def remove_removable_media(self, name):
        self._rec("remove_removable_media", name)
        return []

    def export_appliance(self, name, artifact_dir, sha_algorithm="SHA256"):
        self._rec("export_appliance", name, sha_algorithm)
        return self.artifact_root / name

    def import_appliance(self, artifact, name, placement):
        self._rec("import_appliance", name, placement.datastore)
        return self.import_ok

    def convert_to_template(self, name):
        self._rec("convert_to_template", name)

    def move_to_folder(self, name, folder):
        self._rec("move_to_folder", name, folder)


class FakeFactory:
    """client_factory for MigrationWorkflow: one FakeDomainClient per host."""

    def __init__(self, journal, clients=None, fail_connect=None):
        self.journal = journal
        self.clients = dict(clients or {})
        self.fail_connect = dict(fail_connect or {})

    def __call__(self, host):
        self.journal.append((host, "factory"))
        if host in self.fail_connect:
            client = FakeDomainClient(host, self.journal, fail={"connect": self.fail_connect[host]})
            self.clients[host] = client
            return client
        if host not in self.clients:
            self.clients[host] = FakeDomainClient(host, self.journal)
        return self.clients[host]


def methods(journal, host=None):
    return [e[1] for e in journal if host is None or e[0] == host]


def mutating_calls(journal):
    return [e for e in journal if e[1] in MUTATING]
