import configparser
from dataclasses import dataclass
from pathlib import Path

ENCRYPTION_MODES = ("none", "explicit", "implicit")


@dataclass
class FTPConfig:
    host: str
    port: int = 21
    username: str | None = None
    password: str | None = None
    passive_mode: bool = True
    encoding: str = "utf-8"
    encryption: str = "none"  # "none", "explicit" (AUTH TLS) or "implicit"
    verify_certificate: bool = True
    ca_file: str | None = None  # PEM bundle to trust instead of system CAs

    @property
    def secure(self) -> bool:
        return self.encryption != "none"


@dataclass
class ConnectionConfig:
    timeout_seconds: int = 30
    retry_attempts: int = 3
    retry_delay_seconds: float = 1


@dataclass
class LogConfig:
    level: str = "INFO"
    file: str = ""
    console: bool = True


@dataclass
class AppConfig:
    ftp: FTPConfig
    connection: ConnectionConfig
    logging: LogConfig
    site: str = ""


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_int(section: str, key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(
            f"Invalid {key} value in [{section}]: '{value}' - must be an integer"
        ) from None


def load_config(config_path: str | None = None, **cli_args) -> AppConfig:
    """
    Load configuration from an INI file and/or CLI arguments.
    CLI arguments take precedence over config file.

    Args:
        config_path: Path to the INI configuration file.
        **cli_args: Key-value pairs from command line arguments. Keys that are
            None are ignored so unset argparse options never clobber the file.

    Returns:
        AppConfig: The populated configuration object.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If host is missing or a value cannot be parsed.
    """
    ftp_config = {
        "host": None,
        "port": 21,
        "username": None,
        "password": None,
        "passive_mode": True,
        "encoding": "utf-8",
        "encryption": "none",
        "verify_certificate": True,
        "ca_file": None,
    }
    connection_config = {
        "timeout_seconds": 30,
        "retry_attempts": 3,
        "retry_delay_seconds": 1,
    }
    log_config = {
        "level": "INFO",
        "file": "",
        "console": True,
    }
    site = ""

    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")

        if parser.has_section("ftp"):
            section = parser["ftp"]
            for key in ("host", "username", "password", "encoding", "ca_file"):
                if section.get(key):
                    ftp_config[key] = section.get(key)
            if section.get("port"):
                ftp_config["port"] = _parse_int("ftp", "port", section.get("port"))
            if section.get("passive_mode"):
                ftp_config["passive_mode"] = _parse_bool(section.get("passive_mode"))
            if section.get("encryption"):
                ftp_config["encryption"] = section.get("encryption").lower()
            if section.get("verify_certificate"):
                ftp_config["verify_certificate"] = _parse_bool(section.get("verify_certificate"))

        if parser.has_section("connection"):
            section = parser["connection"]
            for key in ("timeout_seconds", "retry_attempts"):
                if section.get(key):
                    connection_config[key] = _parse_int("connection", key, section.get(key))
            if section.get("retry_delay_seconds"):
                try:
                    connection_config["retry_delay_seconds"] = float(
                        section.get("retry_delay_seconds")
                    )
                except ValueError:
                    raise ValueError(
                        f"Invalid retry_delay_seconds value in [connection]: "
                        f"'{section.get('retry_delay_seconds')}' - must be a number"
                    ) from None

        if parser.has_section("logging"):
            section = parser["logging"]
            if section.get("level"):
                log_config["level"] = section.get("level")
            if "file" in section:
                log_config["file"] = section.get("file", "")
            if section.get("console"):
                log_config["console"] = _parse_bool(section.get("console"))

        if parser.has_section("general") and parser["general"].get("site"):
            site = parser["general"]["site"]

    # CLI overrides
    for key in ("host", "ca_file"):
        if cli_args.get(key) is not None:
            ftp_config[key] = cli_args[key]
    if cli_args.get("port") is not None:
        ftp_config["port"] = int(cli_args["port"])
    if cli_args.get("username") is not None:
        ftp_config["username"] = cli_args["username"] or None
    if cli_args.get("password") is not None:
        ftp_config["password"] = cli_args["password"] or None
    if cli_args.get("encryption") is not None:
        ftp_config["encryption"] = cli_args["encryption"].lower()
    if cli_args.get("secure") and ftp_config["encryption"] == "none":
        ftp_config["encryption"] = "explicit"
    if cli_args.get("implicit"):
        ftp_config["encryption"] = "implicit"
    if cli_args.get("insecure"):
        ftp_config["verify_certificate"] = False
    if cli_args.get("site") is not None:
        site = cli_args["site"]
    if cli_args.get("debug"):
        log_config["level"] = "DEBUG"
        log_config["console"] = True

    if not ftp_config["host"]:
        raise ValueError("Missing required configuration fields: host")

    if ftp_config["encryption"] not in ENCRYPTION_MODES:
        raise ValueError(
            f"Invalid encryption mode: {ftp_config['encryption']}. "
            f"Must be one of: {', '.join(ENCRYPTION_MODES)}"
        )

    return AppConfig(
        ftp=FTPConfig(**ftp_config),
        connection=ConnectionConfig(**connection_config),
        logging=LogConfig(**log_config),
        site=site or ftp_config["host"],
    )
