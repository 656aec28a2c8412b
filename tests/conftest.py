"""Shared pytest fixtures for all test modules."""

import asyncio
import os
import shlex
import subprocess
import sys
import textwrap
from dataclasses import replace

import pytest

from flatdock.config import Config, FlatcarConfig, HCloudConfig, RescueConfig
from flatdock.errors import CloudAPIError
from flatdock.provisioning.capabilities import ProgressWatch
from flatdock.provisioning.types import (
    Action,
    MachineRecord,
    NamedResource,
    Network,
    PrivateNetAttachment,
    ServerCreateResult,
    SSHKey,
)

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))

SSH_KEY = SSHKey(id=1, name="my-key", fingerprint="aa:bb", public_key="ssh-ed25519 AAAA test@example")
PROD_NET = Network(id=10, name="prod-net", ip_range="10.0.0.0/16")


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the flatdock CLI as a subprocess."""

    def _run(*args, cwd=None):
        result = subprocess.run(
            [sys.executable, "-m", "flatdock.flatdock", *args],
            capture_output=True,
            text=True,
            cwd=cwd or project_root,
            env={**os.environ, "PYTHONPATH": project_root},
        )
        return result.returncode, result.stdout, result.stderr

    return _run


# ── Fake cloud ──────────────────────────────────────────────────────


class FakeCloud:
    """In-memory provider implementing every provisioning capability.

    Mutating calls are recorded in ``calls`` as (method, server_name) tuples;
    every watched action is recorded in ``watched``. Actions succeed unless
    their command is listed in ``failing_actions``.
    """

    def __init__(self, servers=(), ssh_keys=(SSH_KEY,), networks=(PROD_NET,), next_actions=0):
        self.servers = {s.name: s for s in servers}
        self.ssh_keys = {k.name: k for k in ssh_keys}
        self.networks = {n.name: n for n in networks}
        self.server_types = {"cx22": NamedResource("server type", 22, "cx22")}
        self.images = {"debian-11": NamedResource("image", 111, "debian-11")}
        self.locations = {"fsn1": NamedResource("location", 1, "fsn1")}
        self.next_actions = next_actions
        self.failing_actions = {}
        self.lookup_error = None
        self.calls = []
        self.watched = []
        self._ids = 1000

    def _next_id(self):
        self._ids += 1
        return self._ids

    def _action(self, command):
        return Action(id=self._next_id(), command=command)

    def _server(self, server):
        return self.servers[server.name]

    # Lookup

    async def get_server_by_name(self, name):
        if self.lookup_error:
            raise CloudAPIError(self.lookup_error, code="unavailable")
        server = self.servers.get(name)
        return replace(server, private_net=list(server.private_net)) if server else None

    async def get_server_by_id(self, server_id):
        for server in self.servers.values():
            if server.id == server_id:
                return replace(server, private_net=list(server.private_net))
        return None

    async def get_ssh_key(self, name):
        return self.ssh_keys.get(name)

    async def get_network(self, name):
        return self.networks.get(name)

    async def get_server_type(self, name):
        return self.server_types.get(name)

    async def get_image(self, id_or_name):
        return self.images.get(id_or_name)

    async def get_location(self, name):
        return self.locations.get(name)

    # Mutations

    async def create_server(self, name, server_type, image, location, ssh_keys, networks, start_after_create=False):
        self.calls.append(("create_server", name))
        server = MachineRecord(
            id=self._next_id(),
            name=name,
            status="off",
            public_ipv4="203.0.113.10",
            public_ipv6="2001:db8::/64",
            private_net=[PrivateNetAttachment(network_id=n.id, ip="10.0.0.2") for n in networks],
            server_type=server_type.name,
            datacenter=f"{location.name}-dc14",
        )
        self.servers[name] = server
        partial = MachineRecord(id=server.id, name=name, status="initializing")
        return ServerCreateResult(
            server=partial,
            action=self._action("create_server"),
            next_actions=[self._action("attach_to_network") for _ in range(self.next_actions)],
        )

    async def attach_to_network(self, server, network):
        self.calls.append(("attach_to_network", server.name))
        self._server(server).private_net.append(PrivateNetAttachment(network_id=network.id))
        return self._action("attach_server_to_network")

    async def enable_rescue(self, server, ssh_keys, rescue_type="linux64"):
        self.calls.append(("enable_rescue", server.name))
        self._server(server).rescue_enabled = True
        return self._action("enable_rescue")

    async def reboot(self, server):
        self.calls.append(("reboot", server.name))
        return self._action("reboot_server")

    async def poweron(self, server):
        self.calls.append(("poweron", server.name))
        self._server(server).status = "running"
        return self._action("start_server")

    # WatchProgress

    def watch_progress(self, action):
        self.watched.append(action)
        error = self.failing_actions.get(action.command)
        values = [0, 40] if error else [0, 40, 100]

        async def _progress():
            for value in values:
                yield value

        future = asyncio.get_running_loop().create_future()
        future.set_result(error)
        return ProgressWatch(progress=_progress(), error=future)

    @property
    def mutating_calls(self):
        return [name for name, _ in self.calls]


def _make_server(name="web-1", status="running", rescue_enabled=False, networks=(PROD_NET,), server_id=42):
    return MachineRecord(
        id=server_id,
        name=name,
        status=status,
        rescue_enabled=rescue_enabled,
        public_ipv4="203.0.113.7",
        public_ipv6="2001:db8:1::/64",
        private_net=[PrivateNetAttachment(network_id=n.id, ip="10.0.0.3") for n in networks],
        server_type="cx22",
        datacenter="fsn1-dc14",
    )


@pytest.fixture
def ssh_key():
    return SSH_KEY


@pytest.fixture
def prod_net():
    return PROD_NET


@pytest.fixture
def fake_cloud():
    """A FakeCloud with an SSH key and network registered but no servers."""
    return FakeCloud()


@pytest.fixture
def make_cloud():
    """Return the FakeCloud class as a factory."""
    return FakeCloud


@pytest.fixture
def make_server():
    """Return a factory for existing MachineRecords (defaults: running web-1 on prod-net)."""
    return _make_server


# ── Fake SSH session ────────────────────────────────────────────────


class FakeSession:
    """Records uploads and commands; exit statuses and errors are configurable."""

    def __init__(self, statuses=None, errors=None):
        self.statuses = statuses or {}
        self.errors = errors or {}
        self.uploads = []
        self.uploaded_contents = {}
        self.ran = []
        self.closed = False

    async def upload(self, local_path, remote_path):
        with open(local_path) as f:
            self.uploaded_contents[remote_path] = f.read()
        self.uploads.append((local_path, remote_path))

    async def run(self, command):
        self.ran.append(command)
        if command in self.errors:
            raise self.errors[command]
        return self.statuses.get(command, 0)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def make_session():
    """Return the FakeSession class as a factory."""
    return FakeSession


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


# ── Config pipeline fixtures ────────────────────────────────────────


FAKE_BUTANE = textwrap.dedent(
    """
    import json
    import sys

    import yaml

    doc = yaml.safe_load(sys.stdin)
    if doc.get("fail"):
        print("error: unknown field " + doc["fail"], file=sys.stderr)
        sys.exit(1)
    if doc.get("warn"):
        print("warning: " + doc["warn"], file=sys.stderr)
    json.dump({"ignition": {"version": "3.4.0"}, "source": doc}, sys.stdout, indent=2)
    """
)


@pytest.fixture
def fake_butane(tmp_path):
    """Command line of a stand-in butane that echoes its input inside Ignition JSON."""
    script = tmp_path / "fake_butane.py"
    script.write_text(FAKE_BUTANE)
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"


TEMPLATE = textwrap.dedent(
    """\
    variant: flatcar
    version: 1.0.0
    passwd:
      users:
        - name: core
          ssh_authorized_keys:
            - {{ ssh_key.public_key }}
    storage:
      files:
        - path: /etc/hostname
          contents:
            inline: {{ server.name }}
        - path: /etc/motd
          contents:
            inline: "{{ static.motd }} ({{ server.public_ipv4 }})"
    """
)


@pytest.fixture
def template_path(tmp_path):
    path = tmp_path / "ignition.yml.j2"
    path.write_text(TEMPLATE)
    return str(path)


@pytest.fixture
def make_config(template_path, fake_butane):
    """Return a factory for a valid Config; keyword overrides apply to flatcar."""

    def _make(**flatcar_overrides):
        flatcar = FlatcarConfig(
            version="3975.2.0",
            config_template=template_path,
            template_static={"motd": "hello"},
            butane=fake_butane,
        )
        return Config(
            hcloud=HCloudConfig(
                token="test-token-123456",
                ssh_key="my-key",
                ssh_key_private_path="",
                private_network="prod-net",
                server_type="cx22",
                location="fsn1",
                image="debian-11",
            ),
            rescue=RescueConfig(settle_delay=30, connect_retries=30, connect_retry_delay=10),
            flatcar=replace(flatcar, **flatcar_overrides),
        )

    return _make
