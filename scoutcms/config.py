"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from scoutcms.exceptions import ConfigError
from scoutcms.github.models import GitHubConfig

_DEFAULT_JWT_SECRET = "change-me-in-production"


class Settings(BaseSettings):
    """ScoutCMS application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # CORS
    cors_origins: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=list)

    # Admin gate: secret used to verify the admin JWT issued by the login service
    jwt_secret: str = _DEFAULT_JWT_SECRET

    # GitHub App
    github_app_id: str = ""
    github_private_key: str = ""
    github_installation_id: str = ""
    github_user: str = ""
    github_repo: str = ""
    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"
    github_timeout_seconds: float = Field(default=30.0, gt=0)
    github_token_refresh_margin_seconds: int = Field(default=300, ge=0, le=3000)

    # Commit orchestration
    commit_conflict_retries: int = Field(default=1, ge=0, le=5)

    def validate_runtime_security(self) -> None:
        """Validate security-critical production settings."""
        if self.debug:
            return

        violations: list[str] = []
        if self.jwt_secret == _DEFAULT_JWT_SECRET or len(self.jwt_secret) < 32:
            violations.append(
                "JWT_SECRET must be overridden with a high-entropy value (>=32 chars)"
            )
        if not self.trusted_hosts:
            violations.append("TRUSTED_HOSTS must be configured in production")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")

    def github_config(self) -> GitHubConfig:
        """Build the explicit GitHub configuration or raise ConfigError.

        The private key is accepted with literal ``\\n`` escapes (the usual
        shape of a PEM stored in a single-line environment variable).
        """
        required = {
            "GITHUB_APP_ID": self.github_app_id,
            "GITHUB_PRIVATE_KEY": self.github_private_key,
            "GITHUB_USER": self.github_user,
            "GITHUB_REPO": self.github_repo,
            "GITHUB_BRANCH": self.github_branch,
        }
        missing = [name for name, value in required.items() if not value.strip()]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

        private_key = self.github_private_key.replace("\\n", "\n").strip() + "\n"
        _check_private_key(private_key)

        return GitHubConfig(
            app_id=self.github_app_id.strip(),
            private_key=private_key,
            installation_id=self.github_installation_id.strip() or None,
            owner=self.github_user.strip(),
            repo=self.github_repo.strip(),
            branch=self.github_branch.strip(),
            api_url=self.github_api_url.rstrip("/"),
            timeout_seconds=self.github_timeout_seconds,
            token_refresh_margin_seconds=self.github_token_refresh_margin_seconds,
        )


def _check_private_key(pem: str) -> None:
    """Reject a GitHub App private key that cannot be loaded as PEM."""
    from cryptography.exceptions import UnsupportedAlgorithm
    from cryptography.hazmat.primitives.serialization import load_pem_private_key

    try:
        load_pem_private_key(pem.encode("ascii"), password=None)
    except (ValueError, TypeError, UnicodeEncodeError, UnsupportedAlgorithm) as exc:
        raise ConfigError("GITHUB_PRIVATE_KEY is not a valid unencrypted PEM private key") from exc
