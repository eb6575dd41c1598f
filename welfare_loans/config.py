"""Configuration management for welfare-loans."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from welfare_loans.exceptions import ConfigurationError


@dataclass
class KafkaConfig:
    """Kafka producer configuration for ledger events."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": self.acks,
            "batch.size": self.batch_size,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
        }


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "welfare"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class OutputConfig:
    """Output configuration for file sinks."""

    events_dir: Path = field(default_factory=lambda: Path("output"))
    pretty_json: bool = False


@dataclass
class ReconciliationConfig:
    """Batch reconciliation settings."""

    per_loan_timeout_seconds: float = 30.0
    max_workers: int = 4
    actor_id: str = "system"

    def __post_init__(self) -> None:
        if self.per_loan_timeout_seconds <= 0:
            raise ConfigurationError("per_loan_timeout_seconds must be positive")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")


@dataclass
class WelfareLoansConfig:
    """Main configuration for welfare-loans."""

    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    topic_prefix: str = "welfare.loans"
    seed: int | None = None
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "WelfareLoansConfig":
        """Create config from environment variables."""
        import os

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
        )

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=_env_number("POSTGRES_PORT", "5432", int),
            database=os.getenv("POSTGRES_DB", "welfare"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        output = OutputConfig(
            events_dir=Path(os.getenv("OUTPUT_DIR", "output")),
            pretty_json=os.getenv("PRETTY_JSON", "false").lower() == "true",
        )

        reconciliation = ReconciliationConfig(
            per_loan_timeout_seconds=_env_number("RECONCILE_TIMEOUT", "30", float),
            max_workers=_env_number("RECONCILE_WORKERS", "4", int),
            actor_id=os.getenv("RECONCILE_ACTOR", "system"),
        )

        seed = os.getenv("SEED")

        return cls(
            kafka=kafka,
            postgres=postgres,
            output=output,
            reconciliation=reconciliation,
            topic_prefix=os.getenv("TOPIC_PREFIX", "welfare.loans"),
            seed=_env_number("SEED", seed, int) if seed else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )


def _env_number(name: str, default: str, cast: type) -> Any:
    import os

    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
