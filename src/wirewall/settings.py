from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WIREWALL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Static tunnel description and the per-client peer definitions.
    config_file: str = "/etc/wirewall/wirewall.conf"
    clients_dir: str = "/etc/wirewall/clients"

    # Well-known service identity. Only one daemon per host may own it.
    service_name: str = "no.mstarvik.wirewall"
    # Holds the ownership lock and the control socket, both named after service_name.
    run_dir: str = "/run/wirewall"

    wg_bin: str = "wg"
    nsupdate_bin: str = "nsupdate"
    # `-l` talks to the local named using its session key.
    nsupdate_args: list[str] = Field(default_factory=lambda: ["-l"])
    dns_ttl: int = 3600

    # Log the commands instead of running them (useful on hosts without wg/named).
    dry_run: bool = False
    # 0 disables the timeout; commands then run to completion.
    command_timeout_seconds: float = 0

    ctl_timeout_seconds: float = 60

    @property
    def socket_path(self) -> Path:
        return Path(self.run_dir) / f"{self.service_name}.sock"

    @property
    def lock_path(self) -> Path:
        return Path(self.run_dir) / f"{self.service_name}.lock"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def ensure_run_dir(settings: Settings) -> None:
    Path(settings.run_dir).mkdir(parents=True, exist_ok=True)
