# SPDX-License-Identifier: LGPL-3.0-or-later
import unittest

from tmpl2vc.orchestrator.candidates import compute_candidates, filter_by_prefix, is_safe_domain, selectable
from tmpl2vc.orchestrator.models import TemplateCandidate


class TestCandidates(unittest.TestCase):
    def test_filter_by_prefix_sorted_unique(self):
        names = ["tmpl-web", "base-db", "tmpl-app", "tmpl-web", ""]
        self.assertEqual(filter_by_prefix(names, "tmpl-"), ["tmpl-app", "tmpl-web"])

    def test_prefix_is_case_sensitive(self):
        self.assertEqual(filter_by_prefix(["TMPL-web", "tmpl-db"], "tmpl-"), ["tmpl-db"])

    def test_compute_candidates_flags_existing(self):
        got = compute_candidates(["tmpl-web", "tmpl-db"], ["tmpl-db", "other"], "tmpl-")
        self.assertEqual(
            got,
            [
                TemplateCandidate("tmpl-db", exists_on_destination=True),
                TemplateCandidate("tmpl-web", exists_on_destination=False),
            ],
        )
        self.assertEqual(selectable(got), ["tmpl-web"])

    def test_exact_name_match_only(self):
        got = compute_candidates(["tmpl-web"], ["tmpl-web-old", "TMPL-WEB"], "tmpl-")
        self.assertEqual(selectable(got), ["tmpl-web"])

    def test_empty_source(self):
        self.assertEqual(compute_candidates([], ["tmpl-db"], "tmpl-"), [])

    def test_all_present(self):
        got = compute_candidates(["tmpl-db"], ["tmpl-db"], "tmpl-")
        self.assertEqual(selectable(got), [])


class TestSafeDomain(unittest.TestCase):
    def test_marker_case_insensitive(self):
        self.assertTrue(is_safe_domain("vc-LAB-01.example.com", "lab"))
        self.assertTrue(is_safe_domain("vc-lab-01", "LAB"))

    def test_marker_absent(self):
        self.assertFalse(is_safe_domain("vc-prod-01", "lab"))

    def test_empty_marker_never_safe(self):
        self.assertFalse(is_safe_domain("vc-lab-01", ""))
        self.assertFalse(is_safe_domain("", "lab"))


if __name__ == "__main__":
    unittest.main()
