# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Unit tests for CLI parsing with YAML/JSON config files (two-phase parse).
"""
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock

import yaml

from tmpl2vc.cli.argument_parser import build_parser, parse_args_with_config
from tmpl2vc.core.exceptions import ExitCode, Fatal

REQUIRED = {
    "datacenter": "DC1",
    "cluster": "Cluster-A",
    "datastore": "ssd-01",
    "network": "VM Network",
    "vc_user": "admin@vsphere.local",
}


def _argv(**extra):
    argv = []
    for k, v in dict(REQUIRED, **extra).items():
        argv += ["--" + k.replace("_", "-"), v]
    return argv


class TestTwoPhaseParse(unittest.TestCase):
    def setUp(self):
        self.logger = Mock()

    def _write(self, td: Path, name: str, data) -> Path:
        p = td / name
        if name.endswith(".json"):
            p.write_text(json.dumps(data), encoding="utf-8")
        else:
            p.write_text(yaml.safe_dump(data), encoding="utf-8")
        return p

    def test_config_satisfies_placement(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = self._write(Path(td), "site.yaml", REQUIRED)
            args, conf, _ = parse_args_with_config(["--config", str(cfg)], logger=self.logger)

            self.assertEqual(args.datacenter, "DC1")
            self.assertEqual(args.network, "VM Network")
            self.assertEqual(args.vc_user, "admin@vsphere.local")
            self.assertEqual(conf["cluster"], "Cluster-A")

    def test_defaults(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = self._write(Path(td), "site.yaml", REQUIRED)
            args, _conf, _ = parse_args_with_config(["--config", str(cfg)], logger=self.logger)

            self.assertEqual(args.template_prefix, "tmpl-")
            self.assertEqual(args.safe_marker, "lab")
            self.assertEqual(args.template_folder, "Templates")
            self.assertEqual(args.sha_algorithm, "SHA256")
            self.assertEqual(args.vc_password_env, "TMPL2VC_PASSWORD")
            self.assertEqual(args.vc_port, 443)
            self.assertEqual(args.task_timeout, 1800.0)
            self.assertEqual(args.poll_interval, 2.0)
            self.assertIsNone(args.source)

    def test_cli_overrides_config(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = self._write(Path(td), "site.yaml", dict(REQUIRED, datastore="slow-01"))
            args, _conf, _ = parse_args_with_config(
                ["--config", str(cfg), "--datastore", "ssd-02", "--sha-algorithm", "sha512"],
                logger=self.logger,
            )
            self.assertEqual(args.datastore, "ssd-02")
            self.assertEqual(args.sha_algorithm, "SHA512")

    def test_later_config_wins_and_dashes_accepted(self):
        with tempfile.TemporaryDirectory() as td:
            td = Path(td)
            base = self._write(td, "base.yaml", dict(REQUIRED, **{"template-prefix": "gold-"}))
            over = self._write(td, "over.json", {"cluster": "Cluster-B", "source": "vc-lab-a"})
            args, conf, _ = parse_args_with_config(["--config", str(base), "--config", str(over)], logger=self.logger)

            self.assertEqual(args.cluster, "Cluster-B")
            self.assertEqual(args.template_prefix, "gold-")
            self.assertEqual(args.source, "vc-lab-a")
            self.assertEqual(conf["datacenter"], "DC1")

    def test_unknown_key_warns(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = self._write(Path(td), "site.yaml", dict(REQUIRED, colour="blue"))
            parse_args_with_config(["--config", str(cfg)], logger=self.logger)
            self.assertTrue(self.logger.warning.called)
            self.assertIn("colour", self.logger.warning.call_args[0][1])

    def test_missing_placement_is_fatal(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = self._write(Path(td), "site.yaml", {"datacenter": "DC1"})
            with self.assertRaises(Fatal) as cm:
                parse_args_with_config(["--config", str(cfg)], logger=self.logger)
            self.assertEqual(cm.exception.code, ExitCode.USAGE)
            self.assertIn("--datastore", cm.exception.msg)

    def test_missing_config_file_is_fatal(self):
        with self.assertRaises(Fatal) as cm:
            parse_args_with_config(["--config", "/nonexistent/tmpl2vc.yaml"], logger=self.logger)
        self.assertEqual(cm.exception.code, ExitCode.USAGE)

    def test_non_mapping_config_is_fatal(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = Path(td) / "list.yaml"
            cfg.write_text("- a\n- b\n", encoding="utf-8")
            with self.assertRaises(Fatal):
                parse_args_with_config(["--config", str(cfg)], logger=self.logger)

    def test_same_source_and_destination_is_fatal(self):
        argv = _argv(source="vc-lab-a", destination="VC-LAB-A")
        with self.assertRaises(Fatal):
            parse_args_with_config(argv, logger=self.logger)

    def test_non_positive_timeout_is_fatal(self):
        argv = _argv(task_timeout="0")
        with self.assertRaises(Fatal):
            parse_args_with_config(argv, logger=self.logger)

    def test_bad_sha_algorithm_rejected_by_parser(self):
        argv = _argv(sha_algorithm="md5")
        with self.assertRaises(SystemExit):
            parse_args_with_config(argv, logger=self.logger)

    def test_missing_vc_user_is_fatal_before_any_prompt(self):
        argv = [a for a in _argv() if a not in ("--vc-user", REQUIRED["vc_user"])]
        with self.assertRaises(Fatal) as cm:
            parse_args_with_config(argv, logger=self.logger)
        self.assertEqual(cm.exception.code, ExitCode.USAGE)
        self.assertIn("--vc-user", cm.exception.msg)

    def test_disk_mode(self):
        args, _conf, _ = parse_args_with_config(_argv(disk_mode="thin"), logger=self.logger)
        self.assertEqual(args.disk_mode, "thin")
        args, _conf, _ = parse_args_with_config(_argv(), logger=self.logger)
        self.assertIsNone(args.disk_mode)

    def test_unknown_disk_mode_rejected_by_parser(self):
        with self.assertRaises(SystemExit):
            parse_args_with_config(_argv(disk_mode="sparse"), logger=self.logger)

    def test_dump_config_redacts_and_exits(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = self._write(Path(td), "site.yaml", dict(REQUIRED, password="hunter2"))
            with self.assertRaises(SystemExit) as cm:
                parse_args_with_config(["--config", str(cfg), "--dump-config"], logger=self.logger)
            self.assertEqual(cm.exception.code, 0)


class TestParserSurface(unittest.TestCase):
    def test_help_mentions_yaml_example(self):
        text = build_parser().format_help()
        self.assertIn("--template-prefix", text)
        self.assertIn("datacenter:", text)


if __name__ == "__main__":
    unittest.main()
