"""
Tests for prompt construction and catalog parsing.

Run with: pytest tests/test_design_prompts.py -v
"""

import pytest

from api.design_prompts import (
    UNCHANGED_IMAGE_PROMPT,
    build_element_image_prompt,
    build_redesign_prompt,
    build_refinement_prompt,
    build_suggestions_prompt,
    parse_design_catalog,
)
from api.schemas import RefinementModifications


def _redesign(**overrides):
    options = dict(
        styles=["modern"],
        allow_structural_changes=False,
        climate_zone="",
        lock_aspect_ratio=True,
        redesign_density="default",
        has_layout_mask=False,
    )
    options.update(overrides)
    return build_redesign_prompt(**options)


class TestRedesignPrompt:
    def test_single_style(self):
        assert "in a 'Modern' style" in _redesign()

    def test_blended_styles(self):
        prompt = _redesign(styles=["japanese", "minimalist"])
        assert "blended style that combines 'Japanese Garden' and 'Minimalist'" in prompt

    def test_requires_a_style(self):
        with pytest.raises(ValueError):
            _redesign(styles=[])

    def test_house_is_always_immutable(self):
        for allow in (True, False):
            assert "THE HOUSE IS IMMUTABLE" in _redesign(allow_structural_changes=allow)

    def test_structural_permission(self):
        assert "You are allowed to make structural changes" in _redesign(allow_structural_changes=True)
        assert "**ABSOLUTELY NO** structural changes" in _redesign(allow_structural_changes=False)

    def test_vehicle_handling_follows_structural_flag(self):
        assert "completely remove any such objects" in _redesign(allow_structural_changes=True)
        assert "STRICTLY FORBIDDEN** from removing or altering any people" in _redesign()

    def test_arid_climate_adds_drought_guidance(self):
        prompt = _redesign(climate_zone="Arizona (Desert)")
        assert "suitable for the 'Arizona (Desert)' climate/region" in prompt
        assert "drought-tolerant" in prompt

    def test_temperate_climate_has_no_drought_guidance(self):
        assert "drought-tolerant" not in _redesign(climate_zone="Pacific Northwest")

    def test_empty_climate_infers_from_image(self):
        assert "appropriate for the visual context of the image" in _redesign(climate_zone="  ")

    def test_aspect_ratio_lock(self):
        assert "exact aspect ratio" in _redesign(lock_aspect_ratio=True)
        assert "Preserve the original aspect ratio if possible." in _redesign(lock_aspect_ratio=False)

    @pytest.mark.parametrize("density,marker", [
        ("minimal", "MINIMAL design"),
        ("lush", "LUSH design"),
        ("default", "BALANCED design"),
        ("unknown", "BALANCED design"),
    ])
    def test_density(self, density, marker):
        assert marker in _redesign(redesign_density=density)

    def test_mask_replaces_access_rules(self):
        with_mask = _redesign(has_layout_mask=True)
        assert "DRIVEWAY & PATHWAY MASK" in with_mask
        assert "Functional Access" not in with_mask
        assert "Functional Access" in _redesign(has_layout_mask=False)


class TestRefinementPrompt:
    def test_no_modifications_returns_unchanged_prompt(self):
        assert build_refinement_prompt(RefinementModifications()) == UNCHANGED_IMAGE_PROMPT

    def test_task_order(self):
        mods = RefinementModifications.model_validate({
            "deletions": ["Old Shed", "Birdbath"],
            "replacements": [{"from": "Boxwood", "to": "Lavender"}, {"from": "Gravel", "to": "Mulch"}],
            "additions": ["Fire Pit"],
        })
        prompt = build_refinement_prompt(mods, has_layout_mask=True)
        positions = [
            prompt.index("Layout Refinement Mask"),
            prompt.index("**Deletions:**"),
            prompt.index("**Replacements:**"),
            prompt.index("**Additions:**"),
        ]
        assert positions == sorted(positions)
        assert "Old Shed, Birdbath." in prompt
        assert "'Boxwood' with 'Lavender'; 'Gravel' with 'Mulch'." in prompt

    def test_mask_only(self):
        prompt = build_refinement_prompt(RefinementModifications(), has_layout_mask=True)
        assert "Layout Refinement Mask" in prompt
        assert "**Deletions:**" not in prompt


class TestSupplementaryPrompts:
    def test_suggestions_without_styles(self):
        prompt = build_suggestions_prompt("Boxwood", [], "")
        assert '"Boxwood" in a landscape.' in prompt

    def test_suggestions_with_styles_and_climate(self):
        prompt = build_suggestions_prompt("Boxwood", ["modern", "rustic"], "Zone 7")
        assert 'blends these styles: "Modern", "Rustic"' in prompt
        assert "'Zone 7' climate/region" in prompt

    def test_element_image_prompt(self):
        assert '"Fire Pit" isolated on a clean' in build_element_image_prompt("Fire Pit")
        assert '"Fire Pit" (round steel), isolated' in build_element_image_prompt("Fire Pit", "round steel")


class TestCatalogParsing:
    def test_fenced_json(self):
        text = 'Here you go\n```json\n{"plants": [{"name": "Agave", "species": "Agave americana"}], "features": []}\n```'
        catalog = parse_design_catalog(text)
        assert catalog.plants[0].name == "Agave"
        assert catalog.features == []

    def test_brace_slice(self):
        text = 'prefix {"plants": [], "features": [{"name": "Pergola", "description": "Cedar"}]} suffix'
        catalog = parse_design_catalog(text)
        assert catalog.features[0].description == "Cedar"

    def test_fenced_and_bare_json_parse_the_same(self):
        payload = (
            '{"plants": [{"name": "Rosemary", "species": "Salvia rosmarinus"}], '
            '"features": [{"name": "Gravel Court", "description": "Pea gravel seating area"}]}'
        )
        fenced = parse_design_catalog(f"Here is the catalog:\n```json\n{payload}\n```\nEnjoy!")
        bare = parse_design_catalog(f"Here is the catalog: {payload} Enjoy!")

        assert fenced is not None
        assert fenced == bare

    def test_entries_without_name_are_dropped(self):
        catalog = parse_design_catalog('{"plants": [{"species": "x"}, {"name": "Fern"}], "features": "bad"}')
        assert [p.name for p in catalog.plants] == ["Fern"]
        assert catalog.features == []

    @pytest.mark.parametrize("text", ["", "no json here", "{not valid json}", "```json\n{broken\n```"])
    def test_unparseable_returns_none(self, text):
        assert parse_design_catalog(text) is None

    def test_non_object_json(self):
        assert parse_design_catalog("```json\n[1, 2]\n```") is None
