"""
app/services/manual_mapping.py

Manual local-name overrides and the review/mapping queues built from enrichment rows.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping, Sequence

from app.domain.drug_records import Confidence, EnrichmentRecord

logger = logging.getLogger(__name__)


def _override_key(sequence: str | int) -> str:
    return str(sequence).strip()


def apply_manual_mappings(
    records: Sequence[EnrichmentRecord],
    overrides: Mapping[str | int, str],
    *,
    force: bool = False,
) -> list[EnrichmentRecord]:
    """
    Return new records with user-supplied local names applied.

    An override only fills rows whose local name is empty unless `force` is
    set. Overridden rows are searched with the given term verbatim.
    """

    by_sequence = {_override_key(key): value.strip() for key, value in overrides.items() if value and value.strip()}
    updated: list[EnrichmentRecord] = []
    applied = 0
    for record in records:
        local_name = by_sequence.get(_override_key(record.sequence))
        if local_name and (force or not record.local_ingredient_name.strip()):
            record = replace(
                record,
                local_ingredient_name=local_name,
                local_search_term=local_name,
                manual_search_term=local_name,
                local_name_mapped=True,
            )
            applied += 1
        updated.append(record)

    logger.info("Manual mappings applied requested=%s applied=%s force=%s", len(by_sequence), applied, force)
    return updated


def unmapped_records(records: Sequence[EnrichmentRecord]) -> list[EnrichmentRecord]:
    return [record for record in records if not record.local_ingredient_name.strip()]


def review_records(records: Sequence[EnrichmentRecord]) -> list[EnrichmentRecord]:
    return [record for record in records if record.confidence == Confidence.REVIEW]
