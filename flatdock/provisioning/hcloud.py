"""Hetzner Cloud provider: servers, actions and lookups via the REST API."""

import asyncio
import logging

import httpx

from flatdock.errors import CloudAPIError
from flatdock.provisioning.capabilities import ProgressWatch
from flatdock.provisioning.types import (
    Action,
    ActionError,
    MachineRecord,
    NamedResource,
    Network,
    ServerCreateResult,
    SSHKey,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.hetzner.cloud/v1"
ACTION_POLL_INTERVAL = 1.0


def _error_details(resp):
    """Return (code, message) from a Hetzner error envelope."""
    try:
        err = resp.json().get("error") or {}
    except ValueError:
        err = {}
    return err.get("code", str(resp.status_code)), err.get("message", resp.reason_phrase)


class HetznerCloud:
    """Async Hetzner Cloud client implementing every provisioning capability.

    Usable as an async context manager; the underlying httpx client is closed
    on exit.
    """

    def __init__(self, token, api_url=DEFAULT_API_URL, poll_interval=ACTION_POLL_INTERVAL, transport=None):
        self.poll_interval = poll_interval
        self._client = httpx.AsyncClient(
            base_url=api_url,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=60,
            transport=transport,
        )
        self._watch_tasks = set()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    # ── API helpers ───────────────────────────────────────────────

    async def _api_request(self, method, path, params=None, data=None):
        """Make an authenticated API request and return the parsed JSON body.

        Raises:
            CloudAPIError: on transport failure or a non-2xx response.
        """
        logger.debug(f"{method} {path} params={params}")
        try:
            resp = await self._client.request(method, path, params=params, json=data)
        except httpx.HTTPError as e:
            raise CloudAPIError(f"{method} {path}: {e}") from e
        if resp.is_error:
            code, message = _error_details(resp)
            raise CloudAPIError(f"{method} {path}: {code}: {message}", code=code, status_code=resp.status_code)
        if not resp.content:
            return {}
        return resp.json()

    async def _get_by_name(self, collection, name):
        result = await self._api_request("GET", f"/{collection}", params={"name": name})
        items = result.get(collection, [])
        return items[0] if items else None

    async def _get_by_id(self, collection, key, resource_id):
        try:
            result = await self._api_request("GET", f"/{collection}/{resource_id}")
        except CloudAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return result.get(key)

    async def _server_action(self, server, action_name, data=None):
        result = await self._api_request("POST", f"/servers/{server.id}/actions/{action_name}", data=data)
        return Action.from_api(result["action"])

    # ── Lookup ────────────────────────────────────────────────────

    async def get_server_by_name(self, name):
        data = await self._get_by_name("servers", name)
        return MachineRecord.from_api(data) if data else None

    async def get_server_by_id(self, server_id):
        data = await self._get_by_id("servers", "server", server_id)
        return MachineRecord.from_api(data) if data else None

    async def get_ssh_key(self, name):
        data = await self._get_by_name("ssh_keys", name)
        return SSHKey.from_api(data) if data else None

    async def get_network(self, name):
        data = await self._get_by_name("networks", name)
        return Network.from_api(data) if data else None

    async def get_server_type(self, name):
        data = await self._get_by_name("server_types", name)
        return NamedResource("server type", data["id"], data["name"]) if data else None

    async def get_image(self, id_or_name):
        """Look up an image by numeric id or by name."""
        if str(id_or_name).isdigit():
            data = await self._get_by_id("images", "image", id_or_name)
        else:
            data = await self._get_by_name("images", id_or_name)
        if not data:
            return None
        return NamedResource("image", data["id"], data.get("name") or str(data["id"]))

    async def get_location(self, name):
        data = await self._get_by_name("locations", name)
        return NamedResource("location", data["id"], data["name"]) if data else None

    # ── Mutations ─────────────────────────────────────────────────

    async def create_server(self, name, server_type, image, location, ssh_keys, networks, start_after_create=False):
        """Create a server.

        POST /servers
        """
        data = {
            "name": name,
            "server_type": str(server_type.id),
            "image": str(image.id),
            "location": location.name,
            "ssh_keys": [key.id for key in ssh_keys],
            "networks": [net.id for net in networks],
            "start_after_create": start_after_create,
        }
        result = await self._api_request("POST", "/servers", data=data)
        return ServerCreateResult(
            server=MachineRecord.from_api(result["server"]),
            action=Action.from_api(result["action"]),
            next_actions=[Action.from_api(a) for a in result.get("next_actions") or []],
        )

    async def attach_to_network(self, server, network):
        return await self._server_action(server, "attach_to_network", {"network": network.id})

    async def enable_rescue(self, server, ssh_keys, rescue_type="linux64"):
        data = {"type": rescue_type, "ssh_keys": [key.id for key in ssh_keys]}
        return await self._server_action(server, "enable_rescue", data)

    async def reboot(self, server):
        return await self._server_action(server, "reboot")

    async def poweron(self, server):
        return await self._server_action(server, "poweron")

    # ── Actions ───────────────────────────────────────────────────

    async def get_action(self, action_id):
        result = await self._api_request("GET", f"/actions/{action_id}")
        return Action.from_api(result["action"])

    def watch_progress(self, action):
        """Start polling *action* and return its progress and error feeds."""
        queue = asyncio.Queue()
        error = asyncio.get_running_loop().create_future()
        task = asyncio.create_task(self._poll_action(action, queue, error))
        self._watch_tasks.add(task)
        task.add_done_callback(self._watch_tasks.discard)

        async def _progress():
            while (value := await queue.get()) is not None:
                yield value

        return ProgressWatch(progress=_progress(), error=error)

    async def _poll_action(self, action, queue, error):
        last_progress = None
        current = action
        try:
            while True:
                if current.status == "success":
                    queue.put_nowait(100)
                    error.set_result(None)
                    return
                if current.progress != last_progress:
                    queue.put_nowait(current.progress)
                    last_progress = current.progress
                if current.status == "error":
                    error.set_result(current.error or ActionError("action_failed", "action failed without details"))
                    return
                await asyncio.sleep(self.poll_interval)
                current = await self.get_action(current.id)
        except CloudAPIError as e:
            error.set_result(ActionError(e.code or "api_error", str(e)))
        except Exception as e:
            if error.done():
                logger.error(f"Polling action {action.id} failed: {e}")
            else:
                error.set_exception(e)
        finally:
            queue.put_nowait(None)
