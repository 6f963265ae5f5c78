"""Config file."""
from urllib.parse import quote_plus

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ENS_SUBGRAPH_URL = (
    "https://gateway.thegraph.com/api/subgraphs/id/5XqPmWe6gjyrJtFn9cLy237i4cWw2j9HcUJEXsP5qGtH"
)
SEAPORT_DEFAULT_START_BLOCK = 19_000_000


class Settings(BaseSettings):
    """Application settings."""

    # PROJECT
    project_name: str = Field("ens-indexer", alias="PROJECT_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # DATABASE
    postgres_user: str = Field(..., alias="POSTGRES_USER")
    postgres_password: SecretStr = Field(..., alias="POSTGRES_PASSWORD")
    postgres_server: str = Field(..., alias="POSTGRES_SERVER")
    postgres_port: int = Field(5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(..., alias="POSTGRES_DB")
    db_max_connections: int = Field(20, alias="DB_MAX_CONNECTIONS")
    database_url: str | None = Field(None, alias="DATABASE_URL")
    sync_database_url: str | None = None

    # CHAIN
    rpc_url: str = Field(..., alias="RPC_URL")
    chain_id: int = Field(1, alias="CHAIN_ID")
    ens_registrar_address: str = Field(
        "0x57f1887a8BF19b14fC0dF6Fd9B2acc9Af147eA85",
        alias="ENS_REGISTRAR_ADDRESS",
    )
    seaport_address: str = Field(
        "0x0000000000000068F116a894984e2DB1123eB395",
        alias="SEAPORT_ADDRESS",
    )
    start_block: int | None = Field(None, alias="START_BLOCK")
    confirmations: int = Field(12, alias="CONFIRMATIONS")

    # SCANNERS
    scanner_batch_size: int = Field(100, alias="SCANNER_BATCH_SIZE")
    scanner_concurrency: int = Field(5, alias="SCANNER_CONCURRENCY")
    scanner_idle_sleep_seconds: float = Field(12.0, alias="SCANNER_IDLE_SLEEP_SECONDS")
    scanner_error_backoff_seconds: float = Field(5.0, alias="SCANNER_ERROR_BACKOFF_SECONDS")

    # OPENSEA STREAM
    opensea_api_key: SecretStr | None = Field(None, alias="OPENSEA_API_KEY")
    opensea_stream_url: str = Field(
        "wss://stream.openseabeta.com/socket/websocket",
        alias="OPENSEA_STREAM_URL",
    )
    opensea_collection_slug: str = Field("ens", alias="OPENSEA_COLLECTION_SLUG")

    # NAME RESOLUTION
    the_graph_ens_subgraph_url: str = Field(DEFAULT_ENS_SUBGRAPH_URL, alias="THE_GRAPH_ENS_SUBGRAPH_URL")
    the_graph_api_key: SecretStr | None = Field(None, alias="THE_GRAPH_API_KEY")
    resolver_timeout_seconds: float = Field(10.0, alias="RESOLVER_TIMEOUT_SECONDS")

    # JOB QUEUE
    job_queue_database_url: str | None = Field(None, alias="JOB_QUEUE_DATABASE_URL")
    job_queue_shutdown_timeout_seconds: float = Field(5.0, alias="JOB_QUEUE_SHUTDOWN_TIMEOUT_SECONDS")

    @field_validator("rpc_url")
    @classmethod
    def reject_template_rpc_url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("RPC_URL must not be empty")
        if "YOUR_" in value:
            raise ValueError("RPC_URL still contains a template placeholder (YOUR_...)")
        return value

    @field_validator("ens_registrar_address", "seaport_address")
    @classmethod
    def lowercase_address(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def assemble_db_urls(self) -> "Settings":
        user = quote_plus(self.postgres_user)
        password = quote_plus(self.postgres_password.get_secret_value())
        host = self.postgres_server
        port = self.postgres_port
        db = self.postgres_db

        if not self.database_url:
            self.database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"

        if not self.sync_database_url:
            self.sync_database_url = f"postgresql://{user}:{password}@{host}:{port}/{db}"

        if not self.job_queue_database_url:
            self.job_queue_database_url = self.database_url

        return self

    @property
    def opensea_stream_enabled(self) -> bool:
        return self.opensea_api_key is not None and bool(self.opensea_api_key.get_secret_value())

    @property
    def seaport_start_block(self) -> int:
        return self.start_block if self.start_block is not None else SEAPORT_DEFAULT_START_BLOCK

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings: Settings = Settings()
