"""
Configuration management using Pydantic Settings
Loads registrar credentials and workflow tuning from the environment / .env file
"""

from pathlib import Path
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.validators import parse_tld_list


ProviderName = Literal[
    "GODADDY",
    "CLOUDFLARE",
    "DNSIMPLE",
    "CENTRALNIC",
    "DOMAINBOX",
    "REGTONS",
    "DOMAINNAMEAPI",
    "NAMECHEAP",
    "OPENSRS",
    "OXXA",
    "AWS",
    "SANDBOX",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Every provider has its own credential block plus a live/test switch;
    only the block of the selected provider has to be filled in.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Provider selection
    registrar_provider: ProviderName = Field(
        default="SANDBOX",
        description="Registrar used by the workflows and the CLI"
    )
    sandbox_mode: bool = Field(
        default=True,
        description="Simulate every registrar operation (no real registrations)"
    )

    # GoDaddy
    godaddy_api_key: str = Field(default="", description="GoDaddy API key")
    godaddy_api_secret: str = Field(default="", description="GoDaddy API secret")
    godaddy_env: Literal["OTE", "PRODUCTION"] = Field(
        default="OTE",
        description="GoDaddy environment: OTE (test) or PRODUCTION"
    )

    # Cloudflare Registrar
    cloudflare_api_token: str = Field(default="", description="Cloudflare API token")
    cloudflare_account_id: str = Field(default="", description="Cloudflare account ID")

    # DNSimple
    dnsimple_api_token: str = Field(default="", description="DNSimple API token")
    dnsimple_account_id: str = Field(default="", description="DNSimple account ID")
    dnsimple_sandbox: bool = Field(default=True, description="Use DNSimple sandbox environment")

    # CentralNic
    centralnic_username: str = Field(default="", description="CentralNic reseller username")
    centralnic_password: str = Field(default="", description="CentralNic reseller password")
    centralnic_live: bool = Field(default=False, description="Use CentralNic live API instead of OTE")

    # Domainbox
    domainbox_api_key: str = Field(default="", description="Domainbox API key")
    domainbox_api_secret: str = Field(default="", description="Domainbox signing secret")
    domainbox_live: bool = Field(default=False, description="Use Domainbox live API instead of sandbox")

    # Regtons
    regtons_api_key: str = Field(default="", description="Regtons API key")
    regtons_api_secret: str = Field(default="", description="Regtons signing secret")
    regtons_username: str = Field(default="", description="Regtons account username")
    regtons_live: bool = Field(default=False, description="Use Regtons live API instead of sandbox")

    # DomainNameApi (SOAP)
    domainnameapi_username: str = Field(default="", description="DomainNameApi username")
    domainnameapi_password: str = Field(default="", description="DomainNameApi password")
    domainnameapi_live: bool = Field(default=False, description="Use DomainNameApi live service")

    # Namecheap
    namecheap_api_user: str = Field(default="", description="Namecheap API user")
    namecheap_api_key: str = Field(default="", description="Namecheap API key")
    namecheap_username: str = Field(default="", description="Namecheap account username")
    namecheap_client_ip: str = Field(default="", description="Whitelisted client IP for Namecheap")
    namecheap_sandbox: bool = Field(default=True, description="Use Namecheap sandbox environment")

    # OpenSRS
    opensrs_username: str = Field(default="", description="OpenSRS reseller username")
    opensrs_api_key: str = Field(default="", description="OpenSRS private key")
    opensrs_domain: str = Field(default="", description="OpenSRS reseller domain")
    opensrs_live: bool = Field(default=False, description="Use OpenSRS live environment")
    opensrs_tlds: str = Field(
        default="com,net,org,info,biz,ca",
        description="Comma separated TLDs offered through OpenSRS"
    )

    # Oxxa
    oxxa_username: str = Field(default="", description="Oxxa username")
    oxxa_password: str = Field(default="", description="Oxxa password")
    oxxa_live: bool = Field(default=False, description="Use Oxxa live API instead of OTE")

    # AWS Route53 / Route53 Domains
    aws_access_key_id: str = Field(default="", description="AWS Access Key ID")
    aws_secret_access_key: str = Field(default="", description="AWS Secret Access Key")
    aws_region: str = Field(default="us-east-1", description="AWS region for Route53 DNS calls")

    # Sandbox RDAP lookups
    rdap_base_url: str = Field(
        default="https://rdap.verisign.com",
        description="RDAP service used for sandbox availability checks"
    )

    # HTTP / retry behaviour
    http_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    read_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for read-only registrar calls (never applied to billed operations)"
    )
    read_retry_wait_min: float = Field(default=2.0, ge=0, description="Minimum backoff between read retries")
    read_retry_wait_max: float = Field(default=10.0, ge=0, description="Maximum backoff between read retries")

    # Workflow
    renewal_window_days: int = Field(
        default=30,
        ge=1,
        description="Domains expiring within this many days are due for renewal"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    @property
    def opensrs_tld_list(self) -> list:
        """TLDs offered through the OpenSRS account"""
        return parse_tld_list(self.opensrs_tlds)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("registrar_provider", mode="before")
    @classmethod
    def normalize_provider(cls, v):
        """Accept provider names in any case"""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def is_production(self) -> bool:
        """Check if the selected registrar talks to a live (billed) environment"""
        if self.sandbox_mode or self.registrar_provider == "SANDBOX":
            return False

        live_flags = {
            "GODADDY": self.godaddy_env == "PRODUCTION",
            "CLOUDFLARE": True,
            "DNSIMPLE": not self.dnsimple_sandbox,
            "CENTRALNIC": self.centralnic_live,
            "DOMAINBOX": self.domainbox_live,
            "REGTONS": self.regtons_live,
            "DOMAINNAMEAPI": self.domainnameapi_live,
            "NAMECHEAP": not self.namecheap_sandbox,
            "OPENSRS": self.opensrs_live,
            "OXXA": self.oxxa_live,
            "AWS": True,
        }
        return live_flags.get(self.registrar_provider, False)


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the settings singleton instance.
    Reads the .env file on first call when it exists; plain environment
    variables are used otherwise.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables are present but invalid
    """
    global _settings

    if _settings is None:
        env_file = Path(".env")
        if env_file.exists():
            _settings = Settings()
        else:
            _settings = Settings(_env_file=None)

    return _settings


def reset_settings():
    """
    Reset the settings singleton (useful for testing)
    """
    global _settings
    _settings = None
