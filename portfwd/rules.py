from dataclasses import dataclass

PROTOCOLS = {"tcp"}


def _check_port(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not 1 <= value <= 65535:
        raise ValueError(f"{name} must be in 1-65535, got {value}")


@dataclass(frozen=True)
class Rule:
    local_port: int
    remote_host: str
    remote_port: int
    protocol: str = "tcp"

    def __post_init__(self) -> None:
        _check_port("local_port", self.local_port)
        _check_port("remote_port", self.remote_port)
        if not self.remote_host:
            raise ValueError("remote_host must not be empty")
        if self.protocol not in PROTOCOLS:
            raise ValueError(f"unsupported protocol {self.protocol!r}")

    @property
    def remote_address(self) -> str:
        return f"{self.remote_host}:{self.remote_port}"

    def describe(self) -> str:
        return f":{self.local_port} -> {self.remote_address}"
