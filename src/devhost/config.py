"""Configuration loading and merging for the service host."""

from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


@dataclass
class ServiceRef:
    """A service to hot-load: its registry name and module reference."""
    name: str = ""
    file: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "file": self.file}


@dataclass
class HostConfig:
    # Bind address used by listen() and get_url()
    host: str = "127.0.0.1"
    # 0 picks an ephemeral port; get_url() reports the bound one
    port: int = 63578

    # Print "Server listening at <host>:<port>" to stdout once bound
    output_on_listen: bool = True

    # Echo each HTTP request line to stderr
    log_requests: bool = False

    # Services hot-loaded by `devhost start` before listening
    services: list[ServiceRef] = field(default_factory=list)


DEFAULT_CONFIG = HostConfig()


def parse_service_arg(value: str) -> ServiceRef:
    """Parse a ``NAME=FILE`` command-line service reference."""
    name, sep, ref = value.partition("=")
    if not sep or not name or not ref:
        raise ValueError(f"expected NAME=FILE, got {value!r}")
    return ServiceRef(name=name, file=ref)


def load_config(path: str | Path) -> HostConfig:
    """Load a HostConfig from a YAML file."""
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    # Parse the services list separately
    raw_services = data.pop("services", None) or []
    service_refs = []
    for entry in raw_services:
        ref_fields = {k: v for k, v in entry.items() if k in {f.name for f in fields(ServiceRef)}}
        service_refs.append(ServiceRef(**ref_fields))

    valid_fields = {f.name for f in fields(HostConfig)} - {"services"}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    return HostConfig(**filtered, services=service_refs)


def merge_cli_args(config: HostConfig, args) -> HostConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(HostConfig):
        if f.name == "services":
            continue
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)

    extra = getattr(args, "services", None) or []
    for value in extra:
        config.services.append(parse_service_arg(value))
    return config


def config_to_yaml(config: HostConfig) -> str:
    """Serialize a HostConfig to YAML."""
    data: dict = {
        "host": config.host,
        "port": config.port,
        "output_on_listen": config.output_on_listen,
    }
    if config.log_requests:
        data["log_requests"] = config.log_requests
    if config.services:
        data["services"] = [s.to_dict() for s in config.services]
    return yaml.dump(data, default_flow_style=False, sort_keys=False)
