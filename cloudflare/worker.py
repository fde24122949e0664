import asyncio

from js import Object
from pyodide.ffi import to_js
from workers import DurableObject, Response, WorkerEntrypoint

from deskflow_api.app import ApiRequest, Services, handle_request
from deskflow_api.logs import setup_logging
from deskflow_api.settings import (
    KV_BINDING_NAME,
    REPO_URL,
    SLOW_KV_BINDING_NAME,
    SLOW_KV_DEFAULT_NAME,
    SLOW_KV_VOTES_NAME,
    Settings,
    get_env_binding,
)
from deskflow_api.storage import DurableObjectStore, WorkersKVStore


def _js_object(value: dict):
    return to_js(value, dict_converter=Object.fromEntries)


def _slow_kv(env, name: str) -> DurableObjectStore | None:
    namespace = get_env_binding(env, SLOW_KV_BINDING_NAME)
    if not namespace:
        return None
    return DurableObjectStore(namespace.get(namespace.idFromName(name)))


def _to_response(result) -> Response:
    return Response(result.body, status=result.status, headers=result.headers)


class SlowKV(DurableObject):
    """
    Effectively a slower version of Workers KV, but without read/write limits.
    """

    def __init__(self, ctx, env):
        super().__init__(ctx, env)
        self.ctx = ctx
        self.env = env

    async def set(self, key: str, value: str):
        await self.ctx.storage.put(key, value)

    async def get_string(self, key: str) -> str | None:
        value = await self.ctx.storage.get(key)
        return value if isinstance(value, str) else None


class Default(WorkerEntrypoint):
    async def fetch(self, request):
        env = self.env
        settings = Settings.from_env(env)
        setup_logging(settings.log_level)

        kv_binding = get_env_binding(env, KV_BINDING_NAME)
        slow = _slow_kv(env, SLOW_KV_DEFAULT_NAME)
        votes = _slow_kv(env, SLOW_KV_VOTES_NAME)
        if not kv_binding or slow is None or votes is None:
            return Response(
                f"Server misconfiguration. Please report this issue at {REPO_URL}/issues",
                status=500,
            )

        services = Services.create(
            settings,
            primary=WorkersKVStore(kv_binding, to_js=_js_object),
            slow=slow,
            votes=votes,
            schedule=lambda coro: self.ctx.waitUntil(asyncio.ensure_future(coro)),
        )
        api_request = ApiRequest(url=request.url, method=request.method, headers=request.headers)
        return _to_response(await handle_request(api_request, services))
