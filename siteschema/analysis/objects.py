"""Cross-page detection of reusable content objects."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Iterator, Sequence

from siteschema.crawl.models import Page

from .confidence import StructuralTuning, structural_confidence
from .fields import infer_fields
from .models import ContentObjectInstance, DetectedObject, InstanceSource, ObjectType
from .validator import InstanceValidator

logger = logging.getLogger(__name__)

MIN_INSTANCES = 2

_CATEGORY_URL_MARKERS = ("/category/", "/categories/", "/topic/", "/topics/")
_LOCATION_TYPES = {"Place", "LocalBusiness"}


def json_ld_types(item: dict[str, Any]) -> list[str]:
    value = item.get("@type")
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else [value]


def _instance(page: Page, data: dict[str, Any], source: InstanceSource) -> ContentObjectInstance:
    return ContentObjectInstance(page_url=page.url, data=data, source=source)


def _named_values(page: Page, values: Any, source: InstanceSource) -> Iterator[ContentObjectInstance]:
    """Strings become ``{"name": value}``; mappings with a name are kept as-is."""
    for value in _as_list(values):
        if isinstance(value, str):
            if value.strip():
                yield _instance(page, {"name": value.strip()}, source)
        elif isinstance(value, dict) and value.get("name"):
            yield _instance(page, value, source)


def _split_keywords(page: Page, keywords: Any, source: InstanceSource) -> Iterator[ContentObjectInstance]:
    tags = keywords.split(",") if isinstance(keywords, str) else _as_list(keywords)
    for tag in tags:
        if isinstance(tag, str) and tag.strip():
            yield _instance(page, {"name": tag.strip()}, source)


def collect_authors(page: Page) -> Iterator[ContentObjectInstance]:
    for item in page.json_ld or []:
        if item.get("author"):
            yield from _named_values(page, item["author"], "jsonld")
    name = page.meta.author or page.meta.article_author
    if name:
        yield _instance(page, {"name": name}, "meta")


def collect_categories(page: Page) -> Iterator[ContentObjectInstance]:
    for item in page.json_ld or []:
        value = item.get("articleSection") or item.get("category") or item.get("genre")
        if value:
            yield from _named_values(page, value, "jsonld")

    for link in page.links:
        if link.context == "breadcrumb" and link.text and link.text.lower() != "home":
            yield _instance(page, {"name": link.text, "url": link.href}, "content")

    for marker in _CATEGORY_URL_MARKERS:
        if marker in page.url:
            slug = page.url.split(marker, 1)[1].split("/")[0].split("?")[0]
            if slug:
                name = slug.replace("-", " ").title()
                yield _instance(page, {"name": name, "slug": slug}, "structured")


def collect_tags(page: Page) -> Iterator[ContentObjectInstance]:
    for item in page.json_ld or []:
        if item.get("keywords"):
            yield from _split_keywords(page, item["keywords"], "jsonld")
    if page.meta.keywords:
        yield from _split_keywords(page, page.meta.keywords, "meta")


def collect_locations(page: Page) -> Iterator[ContentObjectInstance]:
    for item in page.json_ld or []:
        address = item.get("address")
        if not (address or _LOCATION_TYPES.intersection(json_ld_types(item))):
            continue
        if isinstance(address, dict):
            yield _instance(page, address, "jsonld")
        elif isinstance(address, str):
            yield _instance(page, {"name": item.get("name") or address, "address": address}, "jsonld")
        else:
            yield _instance(page, item, "jsonld")


def _collect_typed(type_name: str) -> Callable[[Page], Iterator[ContentObjectInstance]]:
    def collect(page: Page) -> Iterator[ContentObjectInstance]:
        for item in page.json_ld or []:
            if type_name in json_ld_types(item):
                yield _instance(page, item, "jsonld")

    collect.__name__ = f"collect_{type_name.lower()}s"
    return collect


# Evaluated in order; each category aggregates into at most one object.
COLLECTORS: tuple[tuple[ObjectType, Callable[[Page], Iterable[ContentObjectInstance]]], ...] = (
    ("author", collect_authors),
    ("category", collect_categories),
    ("tag", collect_tags),
    ("location", collect_locations),
    ("event", _collect_typed("Event")),
    ("product", _collect_typed("Product")),
)


def instance_count_confidence(count: int) -> float:
    if count >= 10:
        return 0.95
    if count >= 5:
        return 0.85
    if count >= 2:
        return 0.7
    return 0.5


class ObjectDetector:
    """Aggregates per-category signals across pages into one object per category."""

    def __init__(
        self,
        pages: Sequence[Page],
        validator: InstanceValidator | None = None,
        *,
        tuning: StructuralTuning = StructuralTuning(),
    ) -> None:
        self._pages = list(pages)
        self._validator = validator
        self._tuning = tuning

    async def detect_objects(self) -> list[DetectedObject]:
        objects: list[DetectedObject] = []
        for object_type, collector in COLLECTORS:
            instances = [instance for page in self._pages for instance in collector(page)]
            if len(instances) < MIN_INSTANCES:
                continue
            instances = await self._validate(object_type, instances)
            if len(instances) < MIN_INSTANCES:
                logger.info(
                    "object dropped after validation",
                    extra={"category": object_type, "instances": len(instances)},
                )
                continue
            objects.append(self._build(object_type, instances))

        logger.info(
            "objects detected",
            extra={"pages": len(self._pages), "objects": [o.type for o in objects]},
        )
        return objects

    async def _validate(
        self, category: str, instances: list[ContentObjectInstance]
    ) -> list[ContentObjectInstance]:
        if self._validator is None:
            return instances

        score = structural_confidence(instances, self._tuning)
        if score >= self._tuning.skip_threshold:
            logger.debug(
                "validation skipped",
                extra={"category": category, "structural_confidence": round(score, 3)},
            )
            return instances

        try:
            result = await self._validator.validate(instances, category)
        except Exception:
            logger.warning(
                "instance validation failed, keeping all instances",
                extra={"category": category, "instances": len(instances)},
                exc_info=True,
            )
            return instances
        return list(result.valid_instances)

    @staticmethod
    def _build(object_type: ObjectType, instances: list[ContentObjectInstance]) -> DetectedObject:
        names = {str(i.data["name"]) for i in instances if i.data.get("name") is not None}
        page_refs = list(dict.fromkeys(i.page_url for i in instances))
        return DetectedObject(
            id=object_type,
            type=object_type,
            name=object_type,
            instances=instances,
            confidence=instance_count_confidence(len(instances)),
            suggested_fields=infer_fields(i.data for i in instances),
            page_type_refs=page_refs,
            rationale=(
                f"Found {len(instances)} {object_type} instances ({len(names)} unique) "
                f"across {len(page_refs)} pages"
            ),
        )
