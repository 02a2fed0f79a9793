import json
import shlex
import sys
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gitgate import __version__


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GITGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    app_name: str = Field(default="gitgate", description="Application name")
    app_version: str = Field(default=__version__, description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment mode"
    )

    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8081, description="API server port")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log output format"
    )

    data_root: Path = Field(
        default=Path("./git-data"), description="Directory holding all repositories"
    )

    # Authentication settings
    jwt_secret: str = Field(
        default="", description="Shared secret used to verify HS256 tokens"
    )
    jwt_algorithm: str = Field(default="HS256", description="Token signing algorithm")
    jwt_validate_exp: bool = Field(
        default=True,
        description="Reject tokens whose exp claim is in the past",
    )
    auth_realm: str = Field(
        default="gitgate", description="Realm announced in WWW-Authenticate"
    )

    git_binary_path: str = Field(default="git", description="Path to git binary")
    default_branch: str = Field(
        default="main", description="Initial branch of newly created repositories"
    )
    protected_branches: List[str] = Field(
        default=["refs/heads/main", "refs/heads/master"],
        description="Refs that only accept fast-forward updates",
    )
    hook_command: Optional[str] = Field(
        default=None,
        description="Command line that runs this program from inside a git hook",
    )

    @field_validator("log_format", mode="before")
    @classmethod
    def validate_log_format(cls, v, info):
        if info.data.get("environment") == "production":
            return "json"
        return v

    @field_validator("protected_branches")
    @classmethod
    def validate_protected_branches(cls, v: List[str]) -> List[str]:
        return [b if b.startswith("refs/") else f"refs/heads/{b}" for b in v]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def resolved_hook_command(self) -> str:
        if self.hook_command:
            return self.hook_command
        return f"{shlex.quote(sys.executable)} -m gitgate"

    def hook_environment(self) -> Dict[str, str]:
        """Settings the pre-receive hook process needs, as GITGATE_ variables"""
        return {
            "GITGATE_PROTECTED_BRANCHES": json.dumps(self.protected_branches),
            "GITGATE_GIT_BINARY_PATH": self.git_binary_path,
        }


def get_settings() -> Settings:
    return Settings()
