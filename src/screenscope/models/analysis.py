"""Pydantic schema for a screenshot-set analysis."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

# Accept both camelCase (model output) and snake_case (cached dumps)
_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class ScreenType(StrEnum):
    ONBOARDING = "onboarding"
    HOME = "home"
    LIST = "list"
    DETAIL = "detail"
    FORM = "form"
    SETTINGS = "settings"
    PROFILE = "profile"
    MODAL = "modal"
    OTHER = "other"


class PatternFrequency(StrEnum):
    SINGLE_SCREEN = "single_screen"
    MULTIPLE_SCREENS = "multiple_screens"
    ALL_SCREENS = "all_screens"


class FlowComplexity(StrEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class ScreenAnalysis(BaseModel):
    model_config = _CAMEL

    index: int
    screen_name: str
    screen_type: ScreenType
    components: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    navigation: list[str] = Field(default_factory=list)
    interactions: list[str] = Field(default_factory=list)
    notes: str | None = None


class UIPattern(BaseModel):
    model_config = _CAMEL

    name: str
    description: str
    frequency: PatternFrequency
    components: list[str] = Field(default_factory=list)
    screenshot_indices: list[int] = Field(default_factory=list)


class UserFlow(BaseModel):
    model_config = _CAMEL

    name: str
    description: str
    step_count: int
    screens: list[str] = Field(default_factory=list)
    screenshot_indices: list[int] = Field(default_factory=list)
    complexity: FlowComplexity


class FeatureSet(BaseModel):
    model_config = _CAMEL

    core: list[str] = Field(default_factory=list)
    nice_to_have: list[str] = Field(default_factory=list)
    differentiators: list[str] = Field(default_factory=list)


class ColorPalette(BaseModel):
    model_config = _CAMEL

    primary: str
    secondary: str
    accent: str
    background: str
    surface: str
    text: str
    text_secondary: str
    success: str | None = None
    warning: str | None = None
    error: str | None = None


class Typography(BaseModel):
    model_config = _CAMEL

    heading_font: str
    heading_size: str
    heading_weight: str
    body_font: str
    body_size: str
    body_weight: str
    caption_font: str | None = None
    caption_size: str | None = None


class AppAnalysis(BaseModel):
    """Structured result of analysing one app's screenshots.

    ``analyzed_at`` and ``screens_analyzed`` are stamped by the analyzer
    after validation, so the model may omit them.
    """

    model_config = _CAMEL

    analyzed_at: str | None = None
    screens_analyzed: int | None = None
    screens: list[ScreenAnalysis]
    design_patterns: list[UIPattern]
    user_flows: list[UserFlow]
    feature_set: FeatureSet
    color_palette: ColorPalette
    typography: Typography
    overall_style: str
    target_audience: str
    unique_selling_points: list[str] = Field(default_factory=list)
    improvement_opportunities: list[str] = Field(default_factory=list)

    def to_result(self) -> dict:
        """Dump to the camelCase JSON dict stored in the cache."""
        return self.model_dump(mode="json", by_alias=True)
