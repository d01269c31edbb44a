import pytest
from coa_config import settings_from_dict


@pytest.fixture
def make_settings(tmp_path):
    def _make(products=("ACP-2",), **overrides):
        cfg = {
            "username": "qa@example.com",
            "password": "secret",
            "base_url": "https://spc.example.test:8091",
            "settle_ms": 10,
            "reload_backoff_ms": 1,
            "downloads_dir": str(tmp_path / "downloads"),
            "diagnostics_dir": str(tmp_path / "diagnostics"),
            "results_dir": str(tmp_path / "results"),
            "storage_state": str(tmp_path / "state" / "storageState.json"),
            "products": list(products),
        }
        cfg.update(overrides)
        return settings_from_dict(cfg, env={})
    return _make
