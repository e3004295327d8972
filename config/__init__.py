from config.config import (
    BanditConfig,
    RewardConfig,
    StrategyConfig,
    LearningConfig,
    DatabaseConfig,
)

__all__ = [
    'BanditConfig',
    'RewardConfig',
    'StrategyConfig',
    'LearningConfig',
    'DatabaseConfig',
]
