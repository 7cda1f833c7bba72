"""
Tests for request / tree schemas, prompts and settings.
"""

import pytest
from pydantic import ValidationError

from smartdraw.core.config import Settings
from smartdraw.schemas.diagram import ChartType, DiagramRequest, ProviderConfig, ProviderType
from smartdraw.schemas.mindmap import unwrap_mindmap_root, validate_mindmap
from smartdraw.services.prompts import IMAGE_PROMPT_SUFFIX, build_diagram_prompt


NODE = {"text": "Root", "children": [{"text": "A", "children": []}]}


class TestMindmapValidation:

    @pytest.mark.parametrize("value", [NODE, {"root": NODE}, {"mindmap": {"root": NODE}}])
    def test_accepted_wrappers(self, value):
        assert unwrap_mindmap_root(value) is NODE
        result = validate_mindmap(value)
        assert result.ok
        assert result.mindmap.root.children[0].text == "A"

    def test_children_default_to_empty(self):
        result = validate_mindmap({"text": "Solo"})
        assert result.ok
        assert result.mindmap.root.children == []

    def test_error_names_the_offending_path(self):
        result = validate_mindmap({"text": "Root", "children": [{"text": "A"}, {"text": None}]})
        assert not result.ok
        assert "root.children[1]" in result.error

    def test_depth_bound(self):
        deep = {"text": "leaf"}
        for _ in range(5):
            deep = {"text": "n", "children": [deep]}

        assert validate_mindmap(deep, max_depth=5).ok
        result = validate_mindmap(deep, max_depth=4)
        assert not result.ok
        assert "exceeds 4" in result.error

    def test_non_object_rejected(self):
        assert not validate_mindmap(["not", "a", "tree"]).ok


class TestProviderConfig:

    def test_aliases_and_field_names(self):
        by_alias = ProviderConfig(type="anthropic", baseUrl="https://x/v1/", apiKey="k", model="m")
        by_name = ProviderConfig(type="anthropic", base_url="https://x/v1/", api_key="k", model="m")

        assert by_alias == by_name
        assert by_alias.type is ProviderType.anthropic
        assert by_alias.endpoint_root == "https://x/v1"

    def test_frozen(self, openai_config):
        with pytest.raises(ValidationError):
            openai_config.model = "other"

    @pytest.mark.parametrize("overrides", [{"type": "cohere"}, {"apiKey": ""}, {"model": ""}])
    def test_invalid_config_rejected(self, overrides):
        fields = {"type": "openai", "baseUrl": "https://x", "apiKey": "k", "model": "m", **overrides}
        with pytest.raises(ValidationError):
            ProviderConfig(**fields)


class TestDiagramRequest:

    def test_chart_type_by_value(self):
        request = DiagramRequest(userInput="classes", chartType="class")
        assert request.chart_type is ChartType.uml_class

    def test_chart_type_defaults_to_auto(self):
        assert DiagramRequest(userInput="x").chart_type is ChartType.auto

    def test_unknown_chart_type_rejected(self):
        with pytest.raises(ValidationError):
            DiagramRequest(userInput="x", chartType="hologram")


class TestPrompts:

    def test_prompt_names_chart_type(self):
        prompt = build_diagram_prompt("Order service", "class")
        assert prompt.startswith("Diagram type: UML class diagram.")
        assert prompt.endswith("Order service")

    def test_image_suffix(self):
        assert build_diagram_prompt("x", ChartType.flowchart, with_image=True).endswith(IMAGE_PROMPT_SUFFIX)


class TestSettings:

    def test_server_llm_type_normalised(self):
        assert Settings(_env_file=None, SERVER_LLM_TYPE="OpenAI").SERVER_LLM_TYPE == "openai"

    def test_blank_server_llm_type_is_none(self):
        assert Settings(_env_file=None, SERVER_LLM_TYPE="  ").SERVER_LLM_TYPE is None

    def test_unknown_server_llm_type_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, SERVER_LLM_TYPE="cohere")

    def test_layout_defaults(self):
        defaults = Settings(_env_file=None)
        assert (defaults.MINDMAP_BASE_RADIUS, defaults.MINDMAP_RADIUS_STEP) == (240, 240)
        assert defaults.MAX_MINDMAP_DEPTH == 32
