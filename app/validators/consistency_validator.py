"""
app/validators/consistency_validator.py

Cross-table checks between result rows and generic item rows.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Sequence

from app.domain.drug_records import GenericItemRecord, OriginalFlag, ResultRecord


@dataclass(frozen=True)
class ConsistencyErrorDetail:
    """
    One invariant violation found on a result row.
    """

    code: str
    sequence: str | int
    message: str


class CrossTableValidator:
    """
    Validates that the derived tables of one run agree with each other.

    Must run after every row's generic items are collected. Violations are
    reported, never raised.
    """

    def inspect(
        self,
        *,
        results: Sequence[ResultRecord],
        generic_items: Sequence[GenericItemRecord],
    ) -> list[ConsistencyErrorDetail]:
        item_counts = Counter(item.source_sequence for item in generic_items)
        errors: list[ConsistencyErrorDetail] = []

        for result in results:
            item_count = item_counts.get(result.sequence, 0)
            if item_count != result.generic_count:
                errors.append(
                    ConsistencyErrorDetail(
                        code="generic_count_mismatch",
                        sequence=result.sequence,
                        message=(
                            f"Row sequence={result.sequence}: generic_items count ({item_count}) "
                            f"!= result generic_count ({result.generic_count})"
                        ),
                    )
                )

            if result.not_found and (
                result.generic_count or result.total_count or result.has_original != OriginalFlag.NOT_FOUND
            ):
                errors.append(
                    ConsistencyErrorDetail(
                        code="not_found_with_counts",
                        sequence=result.sequence,
                        message=(
                            f"Row sequence={result.sequence}: not found but counts are "
                            f"generic={result.generic_count} total={result.total_count} "
                            f"original={result.has_original}"
                        ),
                    )
                )

        return errors

    def validate(
        self,
        *,
        results: Sequence[ResultRecord],
        generic_items: Sequence[GenericItemRecord],
    ) -> list[str]:
        """
        Return violation messages, deduplicated, in first-seen order.
        """

        messages: list[str] = []
        seen: set[str] = set()
        for error in self.inspect(results=results, generic_items=generic_items):
            if error.message in seen:
                continue
            seen.add(error.message)
            messages.append(error.message)
        return messages
