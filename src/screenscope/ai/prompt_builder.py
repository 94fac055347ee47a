"""Jinja2-based prompt builders for analysis, comparison and summary requests."""

from __future__ import annotations

from jinja2 import ChainableUndefined
from jinja2.sandbox import SandboxedEnvironment

_jinja_env = SandboxedEnvironment(
    autoescape=False,
    keep_trailing_newline=True,
    undefined=ChainableUndefined,
)

SYSTEM_TEMPLATE = """\
You are a senior product designer reviewing mobile app screenshots.
Identify screens, recurring UI patterns, user flows, the feature set,
the colour palette and the typography. Respond with a single JSON object
and nothing else."""

USER_TEMPLATE = """\
Analyze the {{ screen_count }} screenshot{{ "s" if screen_count != 1 }}\
{% if app_name %} of "{{ app_name }}"{% endif %}.

Return JSON with these keys: screens, designPatterns, userFlows, featureSet,
colorPalette, typography, overallStyle, targetAudience, uniqueSellingPoints,
improvementOpportunities. Screen indices are zero-based in the order given.
Colours are hex strings."""


def build_prompt(
    app_name: str | None,
    screen_count: int,
    system_template: str = SYSTEM_TEMPLATE,
    user_template: str = USER_TEMPLATE,
) -> tuple[str, str]:
    """Render system and user prompts.

    Returns (system_prompt, user_prompt).
    """
    context = {"app_name": app_name, "screen_count": screen_count}
    system = _render_template(system_template, context)
    user = _render_template(user_template, context)
    return system, user


def _render_template(template_str: str, context: dict) -> str:
    template = _jinja_env.from_string(template_str)
    return template.render(**context)


COMPARISON_SYSTEM_TEMPLATE = """\
You are a senior product designer comparing mobile apps that were already
analyzed. Contrast their design patterns, user flows, features, colour
palettes and strengths, then recommend an approach for a new app.
Respond with a single JSON object and nothing else."""

COMPARISON_USER_TEMPLATE = """\
Compare these {{ apps | length }} apps:
{% for app in apps %}
---
App: {{ app.name }} (id: {{ app.entity_id }})
{% if app.category %}Category: {{ app.category }}
{% endif %}Screenshots: {{ app.screenshot_count }}
Analysis:
{{ app.analysis_json }}
{% endfor %}
---

Return JSON with these keys: designPatternComparison, userFlowComparison,
featureComparison, colorPaletteComparison, strengths, recommendations.
Comparison entries are {"category", "apps": [{"appId", "appName", "items"}]}.
featureComparison categories are core, niceToHave or differentiators, with
"features" per app. Use the ids given above as appId."""

SUMMARY_SYSTEM_TEMPLATE = """\
You are a senior product designer writing short app descriptions."""

SUMMARY_USER_TEMPLATE = """\
Based on this analysis{% if app_name %} of "{{ app_name }}"{% endif %}, write a
2-3 sentence summary of the app's key design characteristics and target use
case. Respond with the summary text only, no formatting.

{{ analysis_json }}"""


def build_comparison_prompt(
    apps: list[dict],
    system_template: str = COMPARISON_SYSTEM_TEMPLATE,
    user_template: str = COMPARISON_USER_TEMPLATE,
) -> tuple[str, str]:
    """Render comparison prompts.

    Each app dict carries ``entity_id``, ``name``, ``category``,
    ``screenshot_count`` and the pre-serialised ``analysis_json``.
    """
    context = {"apps": apps}
    return (
        _render_template(system_template, context),
        _render_template(user_template, context),
    )


def build_summary_prompt(
    analysis_json: str,
    app_name: str | None = None,
    system_template: str = SUMMARY_SYSTEM_TEMPLATE,
    user_template: str = SUMMARY_USER_TEMPLATE,
) -> tuple[str, str]:
    context = {"analysis_json": analysis_json, "app_name": app_name}
    return (
        _render_template(system_template, context),
        _render_template(user_template, context),
    )
