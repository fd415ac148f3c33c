from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImapServerPreset(BaseModel):
    """Connection parameters for a known mail provider"""

    imap_host: str
    imap_port: int = 993
    imap_secure: bool = True


# Matched by substring against the host hint, first match wins
PROVIDER_PRESETS: dict[tuple[str, ...], ImapServerPreset] = {
    ("hostinger",): ImapServerPreset(imap_host="imap.hostinger.com"),
    ("google", "gmail"): ImapServerPreset(imap_host="imap.gmail.com"),
    ("outlook", "microsoft", "office365"): ImapServerPreset(imap_host="outlook.office365.com"),
    ("yahoo",): ImapServerPreset(imap_host="imap.mail.yahoo.com"),
    ("zoho",): ImapServerPreset(imap_host="imap.zoho.com"),
}


def resolve_imap_settings(host: str) -> ImapServerPreset:
    """Map a provider hint (domain, brand name or hostname) to IMAP connection settings.

    Unknown hosts are used verbatim on the implicit-TLS port.
    """
    host_lower = host.strip().lower()
    for keywords, preset in PROVIDER_PRESETS.items():
        if any(keyword in host_lower for keyword in keywords):
            return preset
    return ImapServerPreset(imap_host=host.strip())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MCP_IMAP_BODY_", env_file=".env", extra="ignore")

    # Seconds. Each phase has an overall deadline; every socket read is
    # additionally bounded by read_timeout.
    greeting_timeout: float = Field(default=10.0, gt=0)
    command_timeout: float = Field(default=30.0, gt=0)
    literal_header_timeout: float = Field(default=30.0, gt=0)
    literal_timeout: float = Field(default=60.0, gt=0)
    drain_timeout: float = Field(default=30.0, gt=0)
    read_timeout: float = Field(default=5.0, gt=0)
    read_chunk_size: int = Field(default=16384, gt=0)

    default_folder: str = "INBOX"
    store_path: Path | None = None
    include_diagnostics: bool = True


_settings: Settings | None = None


def get_settings(reload: bool = False) -> Settings:
    global _settings
    if _settings is None or reload:
        _settings = Settings()
    return _settings
