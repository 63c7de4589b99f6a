"""Assembly of the final, deterministically ordered report entries."""

from typing import Iterable, Mapping

from extscout.services.scan.models import (
    DetectionResult,
    ReportEntry,
    VulnerabilityMatch,
)


def report_sort_key(detection: DetectionResult) -> tuple:
    """Slug (case-insensitive), then kind, then version, then raw slug."""
    return (
        detection.slug.casefold(),
        detection.kind.order,
        detection.version or "",
        detection.slug,
    )


class ResultAggregator:
    """Merges detections and matches into sorted report entries."""

    def aggregate(
        self,
        detections: Iterable[DetectionResult],
        matches_by_slug: Mapping[str, Iterable[VulnerabilityMatch]],
    ) -> tuple[ReportEntry, ...]:
        """Build report entries for present extensions.

        Output order depends only on the detections themselves, never on the
        order they were produced in.

        Args:
            detections: Detection results, present or not
            matches_by_slug: Matches keyed by slug

        Returns:
            ReportEntry tuple sorted by :func:`report_sort_key`
        """
        present = sorted(
            (d for d in detections if d.present),
            key=report_sort_key,
        )
        return tuple(
            ReportEntry(
                detection=d,
                matches=tuple(matches_by_slug.get(d.slug, ()))
                if d.version is not None
                else (),
            )
            for d in present
        )
