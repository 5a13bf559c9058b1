from __future__ import annotations

from typing import Sequence

from siteschema.crawl.models import Page

from .confidence import StructuralTuning, structural_confidence
from .fields import classify_value, infer_fields, sanitize_field_name
from .models import (
    AnalysisReport,
    AnalysisStats,
    DetectedObject,
    NavigationStructure,
    PageType,
    Relationship,
    ValidationResult,
)
from .objects import ObjectDetector
from .page_types import SiteAnalyzer
from .validator import AIValidator, InstanceValidator


async def analyze_site(
    pages: Sequence[Page],
    *,
    max_clusters: int = 20,
    include_singletons: bool = True,
    validator: InstanceValidator | None = None,
    tuning: StructuralTuning = StructuralTuning(),
) -> AnalysisReport:
    """Run page-type, navigation, relationship and object analysis on a snapshot."""
    analyzer = SiteAnalyzer(pages)
    page_types = analyzer.detect_page_types(max_clusters, include_singletons)
    relationships = analyzer.detect_relationships(page_types)
    objects = await ObjectDetector(analyzer.pages, validator, tuning=tuning).detect_objects()
    return AnalysisReport(
        navigation=analyzer.analyze_navigation(),
        page_types=page_types,
        relationships=relationships,
        objects=objects,
        stats=AnalysisStats(
            pages_total=analyzer.total_pages,
            pages_analyzed=len(analyzer.pages),
            page_types=len(page_types),
            relationships=len(relationships),
            objects=len(objects),
        ),
    )


__all__ = [
    "AIValidator",
    "AnalysisReport",
    "DetectedObject",
    "InstanceValidator",
    "NavigationStructure",
    "ObjectDetector",
    "PageType",
    "Relationship",
    "SiteAnalyzer",
    "StructuralTuning",
    "ValidationResult",
    "analyze_site",
    "classify_value",
    "infer_fields",
    "sanitize_field_name",
    "structural_confidence",
]
