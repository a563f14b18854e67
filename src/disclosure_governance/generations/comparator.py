"""Structural diff between two report generations.

Sections and data points are matched by id. The caller's argument order
sets the direction: anything only in the first generation is "removed",
anything only in the second is "added". A data point present in both
counts as modified when its value differs. Read-only: comparing never
writes to storage or the audit trail.
"""

from __future__ import annotations

from disclosure_governance.errors import InvalidInputError
from disclosure_governance.generations.store import GenerationStore
from disclosure_governance.models import (
    ComparisonSummary,
    DataPointDifference,
    DataPointSnapshot,
    DifferenceType,
    GenerationComparison,
    ReportSnapshot,
    SectionDifference,
    SectionSnapshot,
)


def _label(dp: DataPointSnapshot) -> str:
    return dp.title or dp.id


def _diff_data_points(
    before: list[DataPointSnapshot],
    after: list[DataPointSnapshot],
) -> tuple[list[DataPointDifference], set[str]]:
    """Per-data-point differences plus the data sources touched by them."""
    before_by_id = {dp.id: dp for dp in before}
    after_by_id = {dp.id: dp for dp in after}
    differences: list[DataPointDifference] = []
    sources: set[str] = set()

    for dp in before:
        if dp.id not in after_by_id:
            differences.append(DataPointDifference(
                data_point_id=dp.id, title=dp.title,
                difference_type=DifferenceType.REMOVED, old_value=dp.value,
            ))
            if dp.source:
                sources.add(dp.source)
            continue
        new = after_by_id[dp.id]
        if new.value != dp.value:
            differences.append(DataPointDifference(
                data_point_id=dp.id, title=new.title or dp.title,
                difference_type=DifferenceType.MODIFIED, old_value=dp.value, new_value=new.value,
            ))
        if new.value != dp.value or new.source != dp.source:
            sources.update(s for s in (dp.source, new.source) if s)

    for dp in after:
        if dp.id not in before_by_id:
            differences.append(DataPointDifference(
                data_point_id=dp.id, title=dp.title,
                difference_type=DifferenceType.ADDED, new_value=dp.value,
            ))
            if dp.source:
                sources.add(dp.source)

    return differences, sources


def _describe(diff: DataPointDifference, titles: dict[str, str]) -> str:
    name = titles.get(diff.data_point_id) or diff.title or diff.data_point_id
    if diff.difference_type == DifferenceType.ADDED:
        return f"Data point '{name}' added"
    if diff.difference_type == DifferenceType.REMOVED:
        return f"Data point '{name}' removed"
    return f"Data point '{name}' value changed from {diff.old_value!r} to {diff.new_value!r}"


def _whole_section(section: SectionSnapshot, kind: DifferenceType) -> SectionDifference:
    dp_kind = DifferenceType.ADDED if kind == DifferenceType.ADDED else DifferenceType.REMOVED
    count = len(section.data_points)
    return SectionDifference(
        section_id=section.id,
        section_title=section.title,
        catalog_code=section.catalog_code,
        difference_type=kind,
        data_point_count1=count if kind == DifferenceType.REMOVED else 0,
        data_point_count2=count if kind == DifferenceType.ADDED else 0,
        changes=[f"Section '{section.title or section.id}' {kind.value}"],
        data_point_differences=[
            DataPointDifference(
                data_point_id=dp.id,
                title=dp.title,
                difference_type=dp_kind,
                old_value=dp.value if dp_kind == DifferenceType.REMOVED else None,
                new_value=dp.value if dp_kind == DifferenceType.ADDED else None,
            )
            for dp in section.data_points
        ],
    )


def diff_snapshots(
    before: ReportSnapshot,
    after: ReportSnapshot,
) -> tuple[list[SectionDifference], ComparisonSummary, list[str]]:
    """Compare two snapshots.

    Returns (section differences, summary, changed data sources). Sections
    are listed in ``before`` order followed by sections new in ``after``.
    """
    after_by_id = {s.id: s for s in after.sections}
    before_ids = {s.id for s in before.sections}
    differences: list[SectionDifference] = []
    sources: set[str] = set()

    for section in before.sections:
        new = after_by_id.get(section.id)
        if new is None:
            differences.append(_whole_section(section, DifferenceType.REMOVED))
            sources.update(dp.source for dp in section.data_points if dp.source)
            continue

        dp_diffs, dp_sources = _diff_data_points(section.data_points, new.data_points)
        sources |= dp_sources
        changes: list[str] = []
        if new.title != section.title:
            changes.append(f"Title changed from {section.title!r} to {new.title!r}")
        if new.catalog_code != section.catalog_code:
            changes.append(f"Catalog code changed from {section.catalog_code!r} to {new.catalog_code!r}")
        titles = {dp.id: dp.title for dp in [*section.data_points, *new.data_points] if dp.title}
        changes.extend(_describe(d, titles) for d in dp_diffs)

        differences.append(SectionDifference(
            section_id=section.id,
            section_title=new.title or section.title,
            catalog_code=new.catalog_code,
            difference_type=DifferenceType.MODIFIED if changes else DifferenceType.UNCHANGED,
            data_point_count1=len(section.data_points),
            data_point_count2=len(new.data_points),
            changes=changes,
            data_point_differences=dp_diffs,
        ))

    for section in after.sections:
        if section.id not in before_ids:
            differences.append(_whole_section(section, DifferenceType.ADDED))
            sources.update(dp.source for dp in section.data_points if dp.source)

    summary = ComparisonSummary(
        total_data_points1=before.data_point_count,
        total_data_points2=after.data_point_count,
    )
    for diff in differences:
        if diff.difference_type == DifferenceType.ADDED:
            summary.sections_added += 1
        elif diff.difference_type == DifferenceType.REMOVED:
            summary.sections_removed += 1
        elif diff.difference_type == DifferenceType.MODIFIED:
            summary.sections_modified += 1
        else:
            summary.sections_unchanged += 1
        for dp in diff.data_point_differences:
            if dp.difference_type == DifferenceType.ADDED:
                summary.data_points_added += 1
            elif dp.difference_type == DifferenceType.REMOVED:
                summary.data_points_removed += 1
            else:
                summary.data_points_modified += 1

    return differences, summary, sorted(sources)


class VersionComparator:
    """Compares two stored generations of the same reporting period."""

    def __init__(self, generations: GenerationStore) -> None:
        self._generations = generations

    def compare(self, generation_id1: str, generation_id2: str) -> GenerationComparison:
        generation1 = self._generations.get(generation_id1)
        generation2 = self._generations.get(generation_id2)
        if generation1.period_id != generation2.period_id:
            raise InvalidInputError(
                "Cannot compare generations from different periods", field="generation_id2",
            )

        differences, summary, sources = diff_snapshots(
            self._generations.get_snapshot(generation_id1),
            self._generations.get_snapshot(generation_id2),
        )
        return GenerationComparison(
            generation1=generation1,
            generation2=generation2,
            summary=summary,
            section_differences=differences,
            changed_data_sources=sources,
        )
