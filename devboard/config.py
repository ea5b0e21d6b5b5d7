"""DevBoard Server Configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    server_name: str = "DevBoard"
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Device probe
    probe_mode: str = "mock"  # 'mock' | 'ssh'
    probe_username: str = "admin"
    probe_password: str = "password"
    probe_port: int = 22
    probe_timeout: float = 10.0  # seconds, per device
    probe_fallback: bool = False  # fall back to the mock probe when ssh fails
    probe_version_command: str = "cat /etc/version"
    probe_kernel_command: str = "uname -r"
    probe_build_command: str = "cat /etc/build"
    probe_uptime_command: str = "uptime -p"
    probe_describe_command: str = "git -C /opt/firmware describe --all --long --dirty"

    # Liveness refresher
    refresh_interval: float = 30.0  # seconds, 0 disables the background loop

    # Store
    log_capacity: int = 1000
    seed_devices: bool = False

    # Reservation policy
    allow_approval_override: bool = False
    require_same_user_for_escalation: bool = False

    # JWT (empty secret = bearer presence only)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    model_config = {"env_prefix": "DEVBOARD_"}


settings = Settings()
