"""
Tier configuration - defaults loaded from data/tiers.yaml
"""
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

import yaml

TIERS_PATH = Path(__file__).parent.parent / "data" / "tiers.yaml"

_tier_config: Optional[Dict] = None
_tier_config_lock = Lock()


def load_tier_config(path: Optional[Path] = None) -> Dict:
    """Load tier configuration from YAML file (cached after first load)"""
    global _tier_config
    if path is not None:
        with open(path, 'r') as f:
            return (yaml.safe_load(f) or {}).get('tiers', {})

    if _tier_config is None:
        with _tier_config_lock:
            if _tier_config is None:
                with open(TIERS_PATH, 'r') as f:
                    _tier_config = (yaml.safe_load(f) or {}).get('tiers', {})
    return _tier_config


def get_tier_config(tier_name: str) -> Dict:
    """Get configuration for a specific tier (empty dict if unknown)"""
    return load_tier_config().get(tier_name) or {}


def get_free_tier_features() -> List[str]:
    """Features granted to teams without an entitling subscription"""
    return list(get_tier_config('free').get('features', []))


def get_tier_limits(tier_name: str) -> Dict[str, int]:
    return dict(get_tier_config(tier_name).get('limits', {}))


def get_quota_limits(tier_name: str) -> Dict[str, int]:
    return dict(get_tier_config(tier_name).get('quotas', {}))
