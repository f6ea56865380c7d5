"""Configuration management for coop-loans."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class EmailConfig:
    """Outbound email (Resend HTTP API) configuration."""

    api_key: str | None = None
    api_url: str = "https://api.resend.com/emails"
    sender: str = "AWSLMCSL Cooperative <noreply@awslmcsl.org>"
    app_url: str = "http://localhost:3000"
    timeout_seconds: float = 5.0

    @property
    def configured(self) -> bool:
        """Whether an API key is available."""
        return bool(self.api_key) and self.api_key != "undefined"


@dataclass
class WorkflowConfig:
    """Loan workflow policy knobs."""

    approval_ttl_hours: int = 72
    max_custom_repayment_months: int = 12
    min_supporting_documents: int = 2


@dataclass
class KafkaConfig:
    """Kafka producer configuration for the audit event stream."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    topic: str = "coop.audit-events"

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
    """PostgreSQL connection configuration for the document store."""

    host: str = "localhost"
    port: int = 5432
    database: str = "coop"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class OutputConfig:
    """Output configuration for exports and JSON sinks."""

    output_dir: Path = field(default_factory=lambda: Path("output"))
    pretty_json: bool = False


@dataclass
class PortalConfig:
    """Main configuration for coop-loans."""

    email: EmailConfig = field(default_factory=EmailConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    seed: int | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "PortalConfig":
        """Create config from environment variables."""
        import os

        email = EmailConfig(
            api_key=os.getenv("RESEND_API_KEY") or None,
            api_url=os.getenv("EMAIL_API_URL", "https://api.resend.com/emails"),
            sender=os.getenv("EMAIL_FROM", "AWSLMCSL Cooperative <noreply@awslmcsl.org>"),
            app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
            timeout_seconds=float(os.getenv("EMAIL_TIMEOUT", "5")),
        )

        workflow = WorkflowConfig(
            approval_ttl_hours=int(os.getenv("APPROVAL_TTL_HOURS", "72")),
        )

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            topic=os.getenv("KAFKA_AUDIT_TOPIC", "coop.audit-events"),
        )

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "coop"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        output = OutputConfig(
            output_dir=Path(os.getenv("OUTPUT_DIR", "output")),
            pretty_json=os.getenv("PRETTY_JSON", "false").lower() == "true",
        )

        return cls(
            email=email,
            workflow=workflow,
            kafka=kafka,
            postgres=postgres,
            output=output,
            seed=int(os.getenv("SEED")) if os.getenv("SEED") else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
