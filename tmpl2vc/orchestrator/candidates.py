# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/orchestrator/candidates.py
from __future__ import annotations

from typing import Iterable, List

from .models import TemplateCandidate


def filter_by_prefix(names: Iterable[str], prefix: str) -> List[str]:
    """Names that start with `prefix`, de-duplicated and sorted."""
    return sorted({n for n in names if n and n.startswith(prefix)})


def compute_candidates(source_names: Iterable[str], destination_names: Iterable[str], prefix: str) -> List[TemplateCandidate]:
    """
    One candidate per prefixed source template, flagged when a template of
    the exact same name already exists on the destination.
    """
    on_destination = set(filter_by_prefix(destination_names, prefix))
    return [
        TemplateCandidate(name=n, exists_on_destination=n in on_destination)
        for n in filter_by_prefix(source_names, prefix)
    ]


def selectable(candidates: Iterable[TemplateCandidate]) -> List[str]:
    return [c.name for c in candidates if not c.exists_on_destination]


def is_safe_domain(name: str, marker: str) -> bool:
    m = (marker or "").strip().lower()
    return bool(m) and m in (name or "").lower()
