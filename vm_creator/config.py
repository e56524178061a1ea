"""
Configuration for the VM creator.

Reads the vCenter connection settings from environment variables, optionally
from a .env file, with sensible defaults for the tuning knobs.
"""

from typing import Optional
from urllib.parse import urlsplit

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from vm_creator.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # vCenter connection
    vmware_url: str = Field("", validation_alias=AliasChoices("VMWARE_URL", "vmware_url"))
    vmware_username: str = Field("", validation_alias=AliasChoices("VMWARE_USERNAME", "vmware_username"))
    vmware_password: str = Field("", validation_alias=AliasChoices("VMWARE_PASSWORD", "vmware_password"))
    vcenter_insecure: bool = Field(False, validation_alias=AliasChoices("VCENTER_INSECURE", "vcenter_insecure"))

    # Socket timeout while establishing the session
    connect_timeout: int = Field(30, validation_alias=AliasChoices("VM_CREATOR_CONNECT_TIMEOUT", "connect_timeout"))

    # Clone task polling
    task_poll_interval: float = Field(
        2.0, gt=0, validation_alias=AliasChoices("VM_CREATOR_TASK_POLL_INTERVAL", "task_poll_interval"))
    task_timeout: Optional[float] = Field(
        None, validation_alias=AliasChoices("VM_CREATOR_TASK_TIMEOUT", "task_timeout"))

    # Raise on bare names that match several objects instead of taking the first
    strict_name_resolution: bool = Field(
        False, validation_alias=AliasChoices("VM_CREATOR_STRICT_NAME_RESOLUTION", "strict_name_resolution"))

    # Logging
    log_level: str = Field("INFO", validation_alias=AliasChoices("VM_CREATOR_LOG_LEVEL", "log_level"))

    def _parsed_url(self):
        url = self.vmware_url.strip()
        if "://" not in url:
            url = f"https://{url}"
        return urlsplit(url)

    @property
    def host(self) -> str:
        return self._parsed_url().hostname or ""

    @property
    def port(self) -> int:
        try:
            return self._parsed_url().port or 443
        except ValueError as e:
            raise ConfigurationError(f"Failed to parse VMWARE_URL: {e}") from e

    def validate_connection(self) -> None:
        """Fail fast when the connection settings cannot possibly work."""
        missing = [name for name, value in (
            ("VMWARE_URL", self.vmware_url),
            ("VMWARE_USERNAME", self.vmware_username),
            ("VMWARE_PASSWORD", self.vmware_password),
        ) if not value]
        if missing:
            raise ConfigurationError(f"{', '.join(missing)} must be set")
        if not self.host:
            raise ConfigurationError(f"Failed to parse VMWARE_URL: no host in '{self.vmware_url}'")
        # Port parse errors surface here rather than mid-connect
        self.port


def load_settings(env_file: Optional[str] = ".env") -> Settings:
    """Load settings, turning malformed values into a ConfigurationError"""
    try:
        return Settings(_env_file=env_file)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}" for error in e.errors())
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
