"""Shared data types for Hetzner Cloud resources."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ActionError:
    code: str
    message: str

    def __str__(self):
        return f"{self.code}: {self.message}"


@dataclass
class Action:
    """A provider-side asynchronous operation (create, attach, reboot, ...)."""

    id: int
    command: str
    status: str = "running"
    progress: int = 0
    error: ActionError | None = None

    @classmethod
    def from_api(cls, data: dict) -> "Action":
        err = data.get("error")
        return cls(
            id=data["id"],
            command=data.get("command", ""),
            status=data.get("status", "running"),
            progress=data.get("progress", 0),
            error=ActionError(err.get("code", ""), err.get("message", "")) if err else None,
        )


@dataclass(frozen=True)
class SSHKey:
    id: int
    name: str
    fingerprint: str = ""
    public_key: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "SSHKey":
        return cls(
            id=data["id"],
            name=data["name"],
            fingerprint=data.get("fingerprint", ""),
            public_key=data.get("public_key", ""),
        )


@dataclass(frozen=True)
class Network:
    id: int
    name: str
    ip_range: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "Network":
        return cls(id=data["id"], name=data["name"], ip_range=data.get("ip_range", ""))


@dataclass(frozen=True)
class NamedResource:
    """Server type, image or location: only the id is needed for creation."""

    kind: str
    id: int
    name: str


@dataclass(frozen=True)
class PrivateNetAttachment:
    network_id: int
    ip: str = ""


@dataclass
class MachineRecord:
    """The provider's view of a server."""

    id: int
    name: str
    status: str
    rescue_enabled: bool = False
    public_ipv4: str = ""
    public_ipv6: str = ""
    private_net: list[PrivateNetAttachment] = field(default_factory=list)
    server_type: str = ""
    datacenter: str = ""

    def attached_to(self, network_id: int) -> bool:
        return any(att.network_id == network_id for att in self.private_net)

    @classmethod
    def from_api(cls, data: dict) -> "MachineRecord":
        public_net = data.get("public_net") or {}
        ipv4 = public_net.get("ipv4") or {}
        ipv6 = public_net.get("ipv6") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            status=data.get("status", ""),
            rescue_enabled=bool(data.get("rescue_enabled", False)),
            public_ipv4=ipv4.get("ip", ""),
            public_ipv6=ipv6.get("ip", ""),
            private_net=[PrivateNetAttachment(network_id=p["network"], ip=p.get("ip", "")) for p in data.get("private_net") or []],
            server_type=(data.get("server_type") or {}).get("name", ""),
            datacenter=(data.get("datacenter") or {}).get("name", ""),
        )


@dataclass
class ServerCreateResult:
    server: MachineRecord
    action: Action
    next_actions: list[Action] = field(default_factory=list)


@dataclass(frozen=True)
class MachineSpec:
    """Desired server: names come from config, key and network are resolved."""

    name: str
    server_type: str
    location: str
    image: str
    ssh_key: SSHKey
    network: Network
