"""SnapSync Server Configuration."""

import secrets
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    server_name: str = "SnapSync Server"
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: str = "INFO"
    public_base_url: str = "http://localhost:8080"

    # Paths
    data_dir: Path = Path.home() / "snapsync" / "data"
    storage_dir: Path = Path.home() / "snapsync" / "blobs"

    # Database / local state
    db_path: Path = Path.home() / "snapsync" / "data" / "snapsync.db"
    kv_path: Path = Path.home() / "snapsync" / "data" / "local_state.json"

    # JWT (identity provider tokens)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours

    # Albums
    invite_code_length: int = 6
    invite_code_attempts: int = 5
    invite_lookup_debounce: float = 0.5  # seconds
    album_list_limit: int = 50

    # Notifications
    notification_list_limit: int = 100

    # Media
    max_video_bytes: int = 50 * 1024 * 1024  # 50MB
    thumbnail_size: int = 400
    upload_concurrency: int = 3

    model_config = {"env_prefix": "SNAPSYNC_"}

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in [self.data_dir, self.storage_dir, self.db_path.parent, self.kv_path.parent]:
            d.mkdir(parents=True, exist_ok=True)

    def ensure_secrets(self) -> None:
        """Generate the JWT secret if not set, persist it so it survives restarts."""
        secrets_file = self.data_dir / ".secrets"
        saved = {}
        if secrets_file.exists():
            for line in secrets_file.read_text().strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    saved[k.strip()] = v.strip()

        if not self.jwt_secret:
            self.jwt_secret = saved.get("jwt_secret", "") or secrets.token_urlsafe(32)

        # Persist for next restart
        secrets_file.write_text(f"jwt_secret={self.jwt_secret}\n")


settings = Settings()
settings.ensure_dirs()
settings.ensure_secrets()
