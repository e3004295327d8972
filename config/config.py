"""
Configuration classes for the task recommendation engine.
Bandit, reward, strategy-threshold, learning and database settings.
"""

from dataclasses import dataclass


@dataclass
class BanditConfig:
    """Configuration for the LinUCB contextual bandit."""
    alpha: float = 0.5  # Exploration coefficient
    feature_dim: int = 11  # Context vector dimension, part of the persisted contract
    num_arms: int = 13  # Number of strategy arms
    model_version: int = 1  # Schema version written with every persisted model
    max_condition_number: float = 1e12  # Arms with a worse-conditioned A are skipped


@dataclass
class RewardConfig:
    """Reward values applied for each kind of user feedback."""
    accepted: float = 1.0  # Suggestion followed and completed
    failed_completion: float = -0.2  # Suggestion followed but not completed
    rejected: float = -0.5  # Suggestion explicitly dismissed
    organic_match: float = 1.0  # Arm that would have suggested the task the user picked
    organic_skipped: float = -0.1  # Suggested arm passed over for a different task
    synthetic: float = 1.0  # Calibration scenario


@dataclass
class StrategyConfig:
    """Thresholds behind the strategy arm rules and the feature encoder."""
    urgent_window_hours: float = 24.0  # Deadline horizon for The Crusher
    stale_task_days: int = 14  # Age after which an undated task is stale
    deep_flow_min_duration: int = 30  # Deep Flow needs tasks longer than this
    quick_spark_max_duration: int = 20  # Quick Spark needs tasks no longer than this
    small_task_max_duration: int = 15  # Snowball task size
    pull_back_queue_minutes: int = 180  # Queue size that unlocks Pull Back
    pull_back_energy: float = 40.0  # Energy below which Pull Back is unlocked
    twilight_start_hour: int = 17
    twilight_end_hour: int = 22
    queue_pressure_minutes: float = 480.0  # Queue size that saturates queue pressure
    recency_window_hours: float = 4.0  # Window over which completion recency decays


@dataclass
class LearningConfig:
    """Configuration for the historical pattern miner."""
    learning_window_days: int = 30  # Look-back window for decision logs
    max_patterns: int = 100  # Maximum decision records read per query
    default_task_duration: int = 30  # Duration assumed for logs that predate duration tracking
    strong_category_rate: float = 0.8  # Category completion rate worth praising
    weak_category_rate: float = 0.5  # Category completion rate worth flagging
    strong_bucket_rate: float = 0.7  # Time/energy bucket rate worth reporting


@dataclass
class DatabaseConfig:
    """Connection pool settings for the model and decision-log database."""
    pool_size: int = 5
    max_overflow: int = 10
    pool_pre_ping: bool = True  # Enable connection health checks
    pool_recycle: int = 3600  # Recycle connections every hour
    echo: bool = False

    def get_engine_kwargs(self, database_url: str) -> dict:
        """Get SQLAlchemy engine kwargs for the given URL."""
        if database_url.startswith('sqlite'):
            # SQLite connections are shared with worker threads
            return {
                'echo': self.echo,
                'connect_args': {'check_same_thread': False}
            }

        return {
            'pool_size': self.pool_size,
            'max_overflow': self.max_overflow,
            'pool_pre_ping': self.pool_pre_ping,
            'pool_recycle': self.pool_recycle,
            'echo': self.echo
        }
