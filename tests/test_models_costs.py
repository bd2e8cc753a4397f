import pytest

from semantic_video.constants import DEFAULT_MODEL, GEMINI_2_5_FLASH, GPT_5_MINI, GPT_5_NANO
from semantic_video.models import (
    PricingTable,
    calculate_cost,
    get_image_token_multiplier,
    get_model_config,
    get_models_by_cost,
    get_supported_models,
)


def test_calculate_cost_uses_per_million_rates():
    # gpt-5-mini: $0.25 in / $2.00 out
    assert calculate_cost(1_000_000, 1_000_000, GPT_5_MINI) == pytest.approx(2.25)
    assert calculate_cost(2_000, 500, GPT_5_NANO) == pytest.approx(2_000 / 1e6 * 0.05 + 500 / 1e6 * 0.40)


def test_calculate_cost_with_cached_input():
    assert calculate_cost(1_000_000, 0, GPT_5_MINI, use_cached_input=True) == pytest.approx(0.025)


def test_zero_tokens_cost_nothing():
    assert calculate_cost(0, 0, GPT_5_NANO) == 0


def test_unknown_model_falls_back_to_default_silently():
    table = PricingTable()
    resolution = table.resolve("not-a-model")

    assert resolution.fallback is True
    assert resolution.requested == "not-a-model"
    assert resolution.config.id == DEFAULT_MODEL
    assert table.calculate_cost(1_000, 1_000, "not-a-model") == table.calculate_cost(1_000, 1_000, DEFAULT_MODEL)
    assert get_model_config("nope").id == DEFAULT_MODEL
    assert table.resolve(GPT_5_MINI).fallback is False


def test_image_multipliers():
    assert get_image_token_multiplier(GPT_5_NANO) == 2.46
    assert get_image_token_multiplier(GPT_5_MINI) == 1.62
    assert get_image_token_multiplier("o4-mini") == 1.72
    assert get_image_token_multiplier("gpt-4.1") == 1.0


def test_model_catalogue_helpers():
    supported = get_supported_models()
    assert GPT_5_NANO in supported
    assert GEMINI_2_5_FLASH in supported

    by_cost = get_models_by_cost()
    rates = [cfg.pricing.input_cost_per_million for cfg in by_cost]
    assert rates == sorted(rates)


def test_pricing_table_requires_default_entry():
    with pytest.raises(ValueError):
        PricingTable({}, default_model=GPT_5_NANO)


def test_pricing_overrides_from_yaml(tmp_path):
    pricing_file = tmp_path / "pricing.yaml"
    pricing_file.write_text(
        "models:\n"
        "  gpt-5-nano:\n"
        "    input: 1.0\n"
        "    output: 2.0\n"
        "  custom-vision:\n"
        "    name: Custom\n"
        "    input: 3.0\n"
        "    output: 4.0\n"
        "    image_token_multiplier: 1.5\n"
    )

    table = PricingTable.from_yaml(pricing_file)

    assert table.calculate_cost(1_000_000, 1_000_000, GPT_5_NANO) == pytest.approx(3.0)
    assert table.get_model_pricing(GPT_5_NANO).cached_input_cost_per_million == 1.0
    assert table.get_image_token_multiplier(GPT_5_NANO) == 2.46
    assert "custom-vision" in table
    assert table.get_model_config("custom-vision").name == "Custom"
    assert table.get_image_token_multiplier("custom-vision") == 1.5


def test_missing_pricing_file_uses_builtin_table(tmp_path):
    table = PricingTable.from_yaml(tmp_path / "absent.yaml")

    assert table.calculate_cost(1_000_000, 0, GPT_5_MINI) == pytest.approx(0.25)


def test_invalid_pricing_yaml_uses_builtin_table(tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text("models: [unclosed")

    table = PricingTable.from_yaml(broken)

    assert table.calculate_cost(1_000_000, 0, GPT_5_MINI) == pytest.approx(0.25)
