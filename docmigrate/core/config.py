import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration class for environment variables and migrator settings.
    """

    # Service settings
    service_name: str = os.getenv("SERVICE_NAME", "docmigrate")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "False").lower() == "true"

    # Logging settings
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    json_logs: bool = os.getenv("JSON_LOGS", "False").lower() == "true"

    # MongoDB settings
    mongodb: str = os.getenv("MONGODB", "mongodb://localhost:27017")
    mongodb_database: str = os.getenv("MONGODB_DATABASE", "docmigrate")

    # MongoDB connection settings
    mongo_connect_timeout_ms: int = int(os.getenv("MONGO_CONNECT_TIMEOUT_MS", "5000"))
    mongo_server_selection_timeout_ms: int = int(
        os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")
    )
    mongo_socket_timeout_ms: int = int(os.getenv("MONGO_SOCKET_TIMEOUT_MS", "30000"))

    # Migration settings
    migrations_prefix: str = os.getenv("MIGRATIONS_PREFIX", "app")
    migrations_dir: str = os.getenv("MIGRATIONS_DIR", "migrations")

    @property
    def logging_config(self) -> dict:
        """
        Returns logging configuration based on environment.
        """
        base_config = {
            "app_name": self.service_name,
            "log_level": self.log_level,
            "json_logs": self.json_logs,
        }

        if self.environment == "development":
            base_config.update({"json_logs": False, "log_level": "DEBUG" if self.debug else self.log_level})

        return base_config

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
