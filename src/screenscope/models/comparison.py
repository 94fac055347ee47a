"""Pydantic schemas for side-by-side app comparisons and short summaries."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from screenscope.models.analysis import AppAnalysis, ColorPalette

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class FeatureTier(StrEnum):
    CORE = "core"
    NICE_TO_HAVE = "niceToHave"
    DIFFERENTIATORS = "differentiators"


class ComparedApp(BaseModel):
    """An already analyzed app offered for comparison."""

    model_config = _CAMEL

    entity_id: str
    name: str
    category: str | None = None
    screenshot_count: int | None = None
    analysis: AppAnalysis


class AppComparisonItem(BaseModel):
    model_config = _CAMEL

    app_id: str
    app_name: str
    category: str | None = None
    screenshot_count: int = 0


class AppItems(BaseModel):
    model_config = _CAMEL

    app_id: str
    app_name: str
    items: list[str] = Field(default_factory=list)


class ComparisonCategory(BaseModel):
    model_config = _CAMEL

    category: str
    apps: list[AppItems] = Field(default_factory=list)


class AppFeatures(BaseModel):
    model_config = _CAMEL

    app_id: str
    app_name: str
    features: list[str] = Field(default_factory=list)


class FeatureComparison(BaseModel):
    model_config = _CAMEL

    category: FeatureTier
    apps: list[AppFeatures] = Field(default_factory=list)


class PaletteComparison(BaseModel):
    model_config = _CAMEL

    app_id: str
    app_name: str
    palette: ColorPalette


class AppStrengths(BaseModel):
    model_config = _CAMEL

    app_id: str
    app_name: str
    strengths: list[str] = Field(default_factory=list)


class AppComparison(BaseModel):
    """Structured comparison of two or three analyzed apps.

    ``id``, ``compared_at`` and ``apps`` are filled in by the analyzer from
    the inputs, so the model may omit them.
    """

    model_config = _CAMEL

    id: str | None = None
    compared_at: str | None = None
    apps: list[AppComparisonItem] = Field(default_factory=list)
    design_pattern_comparison: list[ComparisonCategory]
    user_flow_comparison: list[ComparisonCategory]
    feature_comparison: list[FeatureComparison]
    color_palette_comparison: list[PaletteComparison] = Field(default_factory=list)
    strengths: list[AppStrengths] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    def to_result(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class AppSummary(BaseModel):
    model_config = _CAMEL

    summary: str
    app_name: str | None = None
    generated_at: str | None = None
