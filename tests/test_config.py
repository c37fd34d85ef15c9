import pytest
from pathlib import Path

from engine.config import ConfigManager, ConfigError


def test_defaults_and_roundtrip(tmp_path):
    cfg_path = tmp_path / 'config.yaml'
    cm = ConfigManager(config_path=str(cfg_path))
    cfg = cm.load_config()
    assert cfg['analysis']['recommendation_mode'] == 'minimize_total_cost'
    assert cfg['market']['exclude_congested_worlds'] is True
    cfg['analysis']['enable_split_world'] = True
    cfg['logging']['level'] = 'DEBUG'
    cm.save_config(cfg)
    assert not (tmp_path / 'config.yaml.tmp').exists()
    cm2 = ConfigManager(config_path=str(cfg_path))
    loaded = cm2.load_config()
    assert loaded['analysis']['enable_split_world'] is True
    assert loaded['logging']['level'] == 'DEBUG'


def test_load_missing_returns_defaults(tmp_path):
    cfg_path = tmp_path / 'missing.yaml'
    cm = ConfigManager(config_path=str(cfg_path))
    assert cm.load_config() == cm.get_default_config()


def test_partial_file_merged_with_defaults(tmp_path):
    cfg_path = tmp_path / 'cfg.yaml'
    cfg_path.write_text('market:\n  data_center: Aether\nanalysis:\n  max_price_multiplier: 3\n')
    cm = ConfigManager(config_path=str(cfg_path))
    cfg = cm.load_config()
    assert cfg['market']['data_center'] == 'Aether'
    assert cfg['market']['blacklisted_worlds'] == []
    assert cfg['analysis']['max_price_multiplier'] == 3
    assert cfg['analysis']['split_savings_threshold'] == 0.05


def test_legacy_home_world_migrated(tmp_path):
    cfg_path = tmp_path / 'cfg.yaml'
    cfg_path.write_text('home_world: Siren\n')
    cm = ConfigManager(config_path=str(cfg_path))
    cfg = cm.load_config()
    assert 'home_world' not in cfg
    assert cm.get_home_world() == 'Siren'


def test_dot_notation_get_and_set(tmp_path):
    cm = ConfigManager(config_path=str(tmp_path / 'none.yaml'))
    cm.set('market.blacklisted_worlds', ['Gilgamesh'])
    cm.set('extra.nested.value', 4)
    assert cm.get_blacklisted_worlds() == ['Gilgamesh']
    assert cm.get('extra.nested.value') == 4
    assert cm.get('market.nope', 'fallback') == 'fallback'
    assert cm.get_max_age_hours() == 6


def test_validate_config(tmp_path):
    cm = ConfigManager(config_path=str(tmp_path / 'none.yaml'))
    assert cm.validate_config() == []
    cm.set('analysis.max_price_multiplier', 0.5)
    cm.set('planner.max_depth', 0)
    cm.set('universalis.base_url', '')
    errors = cm.validate_config()
    assert len(errors) == 3
    assert any('multiplier' in e for e in errors)


def test_non_mapping_root_raises(tmp_path):
    cfg_path = tmp_path / 'cfg.yaml'
    cfg_path.write_text('- a\n- b\n')
    cm = ConfigManager(config_path=str(cfg_path))
    with pytest.raises(ConfigError):
        cm.load_config()


def test_corrupt_yaml_raises(tmp_path):
    cfg_path = tmp_path / 'cfg.yaml'
    cfg_path.write_text('[')
    cm = ConfigManager(config_path=str(cfg_path))
    with pytest.raises(ConfigError):
        cm.load_config()


def test_permission_error(monkeypatch, tmp_path):
    cfg_path = tmp_path / 'cfg.yaml'
    cfg_path.write_text('x')
    cm = ConfigManager(config_path=str(cfg_path))

    def bad_open(*a, **k):
        raise PermissionError("nope")

    monkeypatch.setattr(Path, 'open', lambda self, *a, **k: bad_open())
    with pytest.raises(ConfigError):
        cm.load_config()
