from prizepool.config.feature_flags import feature_flags, FeatureFlags
from prizepool.config.settings import SettlementConfig

__all__ = ["feature_flags", "FeatureFlags", "SettlementConfig"]
