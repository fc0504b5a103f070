"""Configuration management for CodeClaw."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.codeclaw/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "codeclaw.yaml"


class ModelConfig(BaseModel):
    """Chat backend configuration."""

    provider: str = "mistral"
    model: str = "devstral-small-2505"
    temperature: float | None = None
    max_tokens: int | None = None
    api_key: str = ""
    base_url: str = ""


class RequestConfig(BaseModel):
    """Backend request retry behaviour."""

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    timeout: float = 120.0


class ConversationConfig(BaseModel):
    """Turn loop limits."""

    max_rounds: int = 50


class FingerprintFamily(BaseModel):
    """How tool calls of one family are collapsed into a permission fingerprint.

    ``strategy`` picks the normalization applied to the first argument found
    under ``argument_keys``:

    - ``path``: absolute form of the path
    - ``directory``: parent directory of the path
    - ``hostname``: host part of a URL
    - ``command_prefix``: first ``command_words`` tokens of a shell command
    - ``tool``: ignore arguments, one decision per tool
    """

    tools: list[str] = Field(default_factory=list)
    argument_keys: list[str] = Field(default_factory=list)
    strategy: Literal["path", "directory", "hostname", "command_prefix", "tool"] = "tool"
    command_words: int = 2


def _default_families() -> dict[str, FingerprintFamily]:
    return {
        "edit": FingerprintFamily(
            tools=["edit", "multi_edit", "write"],
            argument_keys=["file_path", "path"],
            strategy="directory",
        ),
        "read": FingerprintFamily(
            tools=["read", "list", "glob", "grep"],
            argument_keys=["file_path", "path", "root"],
            strategy="directory",
        ),
        "web": FingerprintFamily(
            tools=["web_fetch"],
            argument_keys=["url"],
            strategy="hostname",
        ),
        "shell": FingerprintFamily(
            tools=["bash", "shell"],
            argument_keys=["command"],
            strategy="command_prefix",
            command_words=2,
        ),
    }


class PermissionsConfig(BaseModel):
    """Tool permission prompting."""

    enabled: bool = True
    auto_approve: list[str] = Field(default_factory=list)
    families: dict[str, FingerprintFamily] = Field(default_factory=_default_families)


class BashToolConfig(BaseModel):
    """Bash tool configuration."""

    timeout: int = 30
    blocked: list[str] = [
        "rm -rf /",
        "mkfs",
        ":(){:|:&};:",
    ]


class WebFetchToolConfig(BaseModel):
    """Web fetch tool configuration."""

    max_chars: int = 100000


class ToolsConfig(BaseModel):
    """Built-in tools configuration."""

    enabled: list[str] = [
        "read",
        "write",
        "edit",
        "multi_edit",
        "list",
        "glob",
        "grep",
        "bash",
        "web_fetch",
        "todo_write",
    ]
    bash: BashToolConfig = Field(default_factory=BashToolConfig)
    web_fetch: WebFetchToolConfig = Field(default_factory=WebFetchToolConfig)


class ToolServerConfig(BaseModel):
    """An out-of-process tool server launched over stdio."""

    name: str
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] | None = None


class UIConfig(BaseModel):
    """UI configuration."""

    show_tokens: bool = True
    colors: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for CodeClaw."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    tool_servers: list[ToolServerConfig] = Field(default_factory=list)
    ui: UIConfig = Field(default_factory=UIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="CODECLAW_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from YAML, with env vars filling fields the file leaves unset."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Process-wide config, used only by the CLI entry point.
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
