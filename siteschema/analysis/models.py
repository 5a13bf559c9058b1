"""Analysis output models: page types, navigation, relationships and objects."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from siteschema.crawl.models import LinkContext

RelationshipType = Literal["index-detail", "taxonomy"]
ObjectType = Literal["author", "category", "tag", "location", "event", "product", "custom"]
InstanceSource = Literal["jsonld", "meta", "content", "structured"]
FieldType = Literal["string", "number", "boolean", "datetime", "url", "array", "object"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class PageFeatures(_Frozen):
    has_date: bool = False
    has_author: bool = False
    has_price: bool = False
    has_form: bool = False
    has_gallery: bool = False
    has_breadcrumbs: bool = False
    has_related_content: bool = False
    rich_content: bool = False

    def count(self) -> int:
        return sum(1 for value in self.model_dump().values() if value)


class PageType(_Frozen):
    id: str
    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    examples: list[str] = Field(max_length=5)
    url_pattern: str
    dom_signature: str
    json_ld_types: list[str] = []
    features: PageFeatures
    page_count: int
    rationale: str


class RelationshipEvidence(_Frozen):
    from_url: str
    to_url: str
    context: str


class Relationship(_Frozen):
    type: RelationshipType
    from_: str = Field(alias="from")
    to: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: list[RelationshipEvidence] = Field(default_factory=list, max_length=5)
    description: str

    model_config = ConfigDict(frozen=True, populate_by_name=True, serialize_by_alias=True)


class NavItem(_Frozen):
    text: str
    url: str
    frequency: int


class Breadcrumb(_Frozen):
    text: str
    url: str | None = None


class BreadcrumbPattern(_Frozen):
    url: str
    breadcrumbs: list[Breadcrumb]
    source: Literal["html", "jsonld"]


class GraphNode(_Frozen):
    id: str
    url: str
    type: str | None = None
    depth: int


class GraphEdge(_Frozen):
    from_: str = Field(alias="from")
    to: str
    context: LinkContext
    confidence: float

    model_config = ConfigDict(frozen=True, populate_by_name=True, serialize_by_alias=True)


class SiteGraph(_Frozen):
    nodes: list[GraphNode] = []
    edges: list[GraphEdge] = []


class NavigationStructure(_Frozen):
    primary_nav: list[NavItem] = []
    footer: list[NavItem] = []
    breadcrumbs: list[BreadcrumbPattern] = []
    site_graph: SiteGraph = SiteGraph()


class ContentObjectInstance(_Frozen):
    page_url: str
    data: dict[str, Any]
    source: InstanceSource


class FieldSchema(_Frozen):
    """Element schema of an array field."""

    type: FieldType
    fields: list[ObjectField] | None = None


class ObjectField(_Frozen):
    name: str
    type: FieldType
    required: bool
    examples: list[Any] = Field(default_factory=list, max_length=3)
    fields: list[ObjectField] | None = None
    of: list[FieldSchema] | None = None


class DetectedObject(_Frozen):
    id: str
    type: ObjectType
    name: str
    instances: list[ContentObjectInstance] = Field(min_length=2)
    confidence: float = Field(ge=0.0, le=1.0)
    suggested_fields: list[ObjectField]
    page_type_refs: list[str]
    rationale: str


class ValidationResult(_Frozen):
    valid_instances: list[ContentObjectInstance]
    outliers: list[ContentObjectInstance] = []
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    reasoning: str = ""


class AnalysisStats(_Frozen):
    pages_total: int
    pages_analyzed: int
    page_types: int
    relationships: int
    objects: int


class AnalysisReport(_Frozen):
    navigation: NavigationStructure
    page_types: list[PageType]
    relationships: list[Relationship]
    objects: list[DetectedObject]
    stats: AnalysisStats


FieldSchema.model_rebuild()
ObjectField.model_rebuild()
