"""Configuration constants and settings for workitem-sync."""

import json
import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from workitem_sync.exceptions import ValidationError

# Settings file location. First file found is used.
SETTINGS_FILES: list[Path] = [
    Path("~/.config/workitem-sync/settings.json").expanduser(),
    Path("~/.workitem-sync.json").expanduser(),
]

# Personal access token location, used when the settings file has none.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/workitem-sync-token.txt").expanduser(),
    Path("~/.config/secret/workitem-sync-token.txt").expanduser(),
    Path(f"/run/user/{os.getuid()}/workitem-sync-token"),
]

# Directory with the sync database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/workitem-sync").expanduser(),
    Path("~/.workitem-sync").expanduser(),
]

DEFAULT_NOTES_DIR: Path = Path("~/Documents/Azure DevOps Work Items").expanduser()

DATABASE_NAME = "workitem-sync.db"

# Relation type linking a child to its parent.
PARENT_RELATION = "System.LinkTypes.Hierarchy-Reverse"

# Key in the metadata table holding the pending change snapshot.
PENDING_CHANGES_KEY = "pendingChanges"

# Key holding the note text of every work item as of its last pull or push.
ORIGINAL_CONTENT_KEY = "originalContent"

API_VERSION = "7.0"
FETCH_BATCH_SIZE = 100
REQUEST_TIMEOUT = 30

_ENV_PREFIX = "WORKITEM_SYNC_"


def resolve_data_directory() -> Path:
    """Return the first existing data directory, or the first candidate."""
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]


@dataclass
class Settings:
    """Connection settings for the remote work item store."""

    organization: str = ""
    project: str = ""
    personal_access_token: str = ""
    use_markdown: bool = False

    def validate(self) -> None:
        """Raise ValidationError if any connection setting is missing."""
        errors = [
            f"{name} is not configured"
            for name in ("organization", "project", "personal_access_token")
            if not getattr(self, name)
        ]
        if errors:
            raise ValidationError(errors)

    @property
    def base_url(self) -> str:
        return f"https://dev.azure.com/{self.organization}"


def _read_settings_file() -> dict[str, object]:
    for settings_path in SETTINGS_FILES:
        try:
            data = json.loads(settings_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            continue
        logger.debug("Settings read from {}", settings_path)
        return data  # type: ignore[no-any-return]
    return {}


def _read_token_file() -> str:
    for token_path in API_TOKEN_FILES:
        try:
            token = token_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            continue
        logger.debug("Token read from {}", token_path)
        return token
    return ""


def load_settings() -> Settings:
    """Load settings from the settings file, token files and environment.

    Environment variables (WORKITEM_SYNC_ORGANIZATION, WORKITEM_SYNC_PROJECT,
    WORKITEM_SYNC_TOKEN) take precedence over both files. The result is not
    validated; clients validate on construction.
    """
    data = _read_settings_file()
    settings = Settings(
        organization=str(data.get("organization", "")),
        project=str(data.get("project", "")),
        personal_access_token=str(data.get("personalAccessToken", "")),
        use_markdown=bool(data.get("useMarkdownInAzureDevOps", False)),
    )
    if not settings.personal_access_token:
        settings.personal_access_token = _read_token_file()

    settings.organization = os.environ.get(_ENV_PREFIX + "ORGANIZATION", settings.organization)
    settings.project = os.environ.get(_ENV_PREFIX + "PROJECT", settings.project)
    settings.personal_access_token = os.environ.get(
        _ENV_PREFIX + "TOKEN", settings.personal_access_token
    )
    return settings
