import pytest

from fakes import FakeClock, FakeFetcher, FakeSleep


@pytest.fixture
def sample_image_bytes():
    """Minimal valid PNG for testing (1x1 white pixel)."""
    import base64
    return base64.b64decode(
        "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR4"
        "nGP4z8BQDwAEgAF/pooBPQAAAABJRU5ErkJggg=="
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(fake_clock):
    return FakeSleep(fake_clock)


@pytest.fixture
def fetcher():
    return FakeFetcher({"img1": b"image-one", "img2": b"image-two", "img3": b"image-three"})


@pytest.fixture
def analysis_payload():
    """A minimal analysis body as the model would return it."""
    return {
        "screens": [
            {
                "index": 0,
                "screenName": "Home",
                "screenType": "home",
                "components": ["tab bar"],
                "patterns": ["card list"],
                "navigation": ["bottom tabs"],
                "interactions": ["tap"],
            }
        ],
        "designPatterns": [
            {
                "name": "Card list",
                "description": "Content in cards",
                "frequency": "multiple_screens",
                "components": ["card"],
                "screenshotIndices": [0, 1],
            }
        ],
        "userFlows": [
            {
                "name": "Browse",
                "description": "Browse content",
                "stepCount": 2,
                "screens": ["Home", "Detail"],
                "screenshotIndices": [0, 1],
                "complexity": "simple",
            }
        ],
        "featureSet": {"core": ["feed"], "niceToHave": [], "differentiators": ["offline"]},
        "colorPalette": {
            "primary": "#112233",
            "secondary": "#445566",
            "accent": "#FF0000",
            "background": "#FFFFFF",
            "surface": "#F5F5F5",
            "text": "#000000",
            "textSecondary": "#666666",
        },
        "typography": {
            "headingFont": "SF Pro",
            "headingSize": "28px",
            "headingWeight": "700",
            "bodyFont": "SF Pro",
            "bodySize": "16px",
            "bodyWeight": "400",
        },
        "overallStyle": "Minimal",
        "targetAudience": "Readers",
        "uniqueSellingPoints": ["Fast"],
        "improvementOpportunities": ["Dark mode"],
    }


@pytest.fixture
def comparison_payload():
    """A minimal comparison body as the model would return it."""
    return {
        "designPatternComparison": [
            {
                "category": "Navigation",
                "apps": [
                    {"appId": "A", "appName": "Acme", "items": ["bottom tabs"]},
                    {"appId": "B", "appName": "Beta", "items": ["side drawer"]},
                ],
            }
        ],
        "userFlowComparison": [
            {
                "category": "Onboarding",
                "apps": [
                    {"appId": "A", "appName": "Acme", "items": ["3 steps"]},
                    {"appId": "B", "appName": "Beta", "items": ["5 steps"]},
                ],
            }
        ],
        "featureComparison": [
            {
                "category": "core",
                "apps": [
                    {"appId": "A", "appName": "Acme", "features": ["feed"]},
                    {"appId": "B", "appName": "Beta", "features": ["search"]},
                ],
            }
        ],
        "strengths": [{"appId": "A", "appName": "Acme", "strengths": ["Fast"]}],
        "recommendations": ["Keep onboarding short"],
    }


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Run with no config files or SCREENSCOPE_/OPENAI_ variables in effect."""
    import os

    from screenscope.config import hierarchy

    for name in list(os.environ):
        if name.startswith(("SCREENSCOPE_", "OPENAI_")):
            monkeypatch.delenv(name)
    monkeypatch.setattr(hierarchy, "_GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work
