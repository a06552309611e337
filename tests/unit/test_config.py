"""Unit tests for configuration models and the YAML loader."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from rtp_sampler.config import GeneratorConfig, PlayMode, StrategyVariant, load_config

EXAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "configs" / "example.yaml"


def _minimal() -> dict:
    return {"game": {"id": 101}, "bet": {"cs": 0.2, "ml": 1, "bl": 20, "fb": 75}}


class TestLoadConfig:
    """Test loading and error reporting."""

    def test_example_config_loads(self) -> None:
        config = load_config(EXAMPLE_CONFIG)
        assert config.game.id == 101
        assert config.source_table == "game_results_101"
        assert config.bet.per_spin == pytest.approx(4.0)
        assert len(config.stage_ratios.stages) == 4

    def test_from_yaml_matches_loader(self) -> None:
        assert GeneratorConfig.from_yaml(EXAMPLE_CONFIG) == load_config(EXAMPLE_CONFIG)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ValueError, match="Empty"):
            load_config(path)

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("game: [unclosed\n")
        with pytest.raises(ValueError, match="Malformed"):
            load_config(path)

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)

    def test_schema_error_propagates(self, tmp_path: Path) -> None:
        path = tmp_path / "invalid.yaml"
        path.write_text(yaml.safe_dump({"game": {"id": 1}, "bet": {"cs": -1, "ml": 1, "bl": 1}}))
        with pytest.raises(ValidationError):
            load_config(path)


class TestGeneratorConfig:
    """Test derived views over the configuration."""

    def test_defaults(self) -> None:
        config = GeneratorConfig.model_validate(_minimal())
        assert config.level_table(PlayMode.STANDARD)[4] == 0.8
        assert config.level_table(PlayMode.PURCHASE)[15] == 0.8
        assert config.band_table().band_for(4).name == "strict"
        assert config.band_table().band_for(200).name == "loose"

    def test_family_plan(self) -> None:
        config = GeneratorConfig.model_validate(
            {**_minimal(), "tables": {"data_num": 500, "data_table_num": 3, "data_num_fb": 50, "data_table_num_fb": 2}}
        )
        assert config.family_plan(StrategyVariant.DYNAMIC_RATIO) == (500, 3)
        assert config.family_plan(StrategyVariant.HIGH_RTP) == (50, 2)
        assert config.family_plan(StrategyVariant.BASELINE) == (50, 2)

    def test_bet_multiplier(self) -> None:
        config = GeneratorConfig.model_validate(_minimal())
        assert config.bet_multiplier(PlayMode.STANDARD) == 1.0
        assert config.bet_multiplier(PlayMode.PURCHASE) == 75

    def test_level_subset(self) -> None:
        config = GeneratorConfig.model_validate(_minimal())
        levels = config.level_specs(PlayMode.STANDARD, [4, 200])
        assert [level.level_id for level in levels] == [4, 200]
        with pytest.raises(KeyError):
            config.level_specs(PlayMode.STANDARD, [999])

    def test_strategy_groups_from_config(self) -> None:
        data = {
            **_minimal(),
            "strategy": {"groups": {"baseline": [4]}, "high_rtp_threshold": 3.0},
        }
        groups = GeneratorConfig.model_validate(data).strategy_groups()
        assert groups.variant_of(4) is StrategyVariant.BASELINE
        assert groups.high_rtp_threshold == 3.0


class TestValidation:
    """Test that inconsistent sections are rejected."""

    @pytest.mark.parametrize(
        "override",
        [
            {"stage_ratios": {"stage1_min_ratio": 0.6, "stage1_max_ratio": 0.5}},
            {"stage_ratios": {"stages": [{"ratio": 0.7}, {"ratio": 0.6, "min_multiplier": 1}]}},
            {"stage_ratios": {"stages": [{"ratio": 0.5, "min_multiplier": 5, "max_multiplier": 2}]}},
            {"policy": {"bands": {"strict": -0.1}}},
            {"policy": {"level_bands": {4: "narrow"}}},
            {"strategy": {"groups": {"baseline": [4], "staged": [4]}}},
            {"levels": {"standard": {4: 0.0}}},
            {"output": {"format": "csv"}},
        ],
    )
    def test_rejected(self, override: dict) -> None:
        with pytest.raises(ValidationError):
            GeneratorConfig.model_validate({**_minimal(), **override})

    def test_missing_bet(self) -> None:
        with pytest.raises(ValidationError):
            GeneratorConfig.model_validate({"game": {"id": 1}})
