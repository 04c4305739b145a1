"""HTTP client facade that records schemas and rewrites the calling file.

Requests go through ``httpx``. Per-call options ride on the request's
``extensions`` so the client-wide ``response`` event hook can tell which
responses asked for a schema. Everything done from the hook is best effort:
failures are logged and never reach the caller of ``get``/``post``/...
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Generic, TypedDict, TypeVar, cast, overload

import httpx

from .config import KatalistConfig, load_config
from .errors import IOWriteError, KatalistError, UnsupportedShapeError
from .formatter import Formatter, default_formatter
from .log import configure_logging, logger
from .probe import detect_caller_file
from .synthesizer import synthesize
from .transformer import transform_http_client_call
from .writer import ensure_package, schema_path, write_schema

T = TypeVar("T")

EXTENSION_KEY = "katalist"


class KatalistOptions(TypedDict, total=False):
    generate_schema: bool
    interface_name: str
    generate_input_schema: bool
    input_interface_name: str
    headers: dict[str, str]
    source_file: str


@dataclass(frozen=True)
class Observation:
    """What the response hook needs to know about one request."""

    options: KatalistOptions
    body: Any = None

    @property
    def wants_output_schema(self) -> bool:
        return bool(self.options.get("generate_schema") and self.options.get("interface_name"))

    @property
    def wants_input_schema(self) -> bool:
        return bool(
            self.options.get("generate_input_schema") and self.options.get("input_interface_name")
        )

    @property
    def wants_schema(self) -> bool:
        return self.wants_output_schema or self.wants_input_schema


class TypedResponse(Generic[T]):
    """``httpx.Response`` whose ``json()`` is typed as ``T``.

    The payload is cast, not validated.
    """

    def __init__(self, response: httpx.Response) -> None:
        self.raw = response

    def json(self, **kwargs: Any) -> T:
        return cast(T, self.raw.json(**kwargs))

    @property
    def text(self) -> str:
        return self.raw.text

    @property
    def status_code(self) -> int:
        return self.raw.status_code

    @property
    def status(self) -> int:
        return self.raw.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.raw.headers

    @property
    def ok(self) -> bool:
        return self.raw.is_success

    def __getattr__(self, name: str) -> Any:
        return getattr(self.raw, name)

    def __repr__(self) -> str:
        return f"<TypedResponse [{self.raw.status_code}]>"


class _SchemaRecorder:
    """Shared request preparation and post-response processing."""

    config: KatalistConfig
    formatter: Formatter

    def _setup(self, config: KatalistConfig | None, formatter: Formatter | None) -> None:
        self.config = config or load_config()
        self.formatter = formatter or default_formatter(self.config.line_length)
        configure_logging(self.config.debug)

    def _observe(self, options: KatalistOptions | None, body: Any) -> Observation:
        opts = cast(KatalistOptions, dict(options or {}))
        observation = Observation(options=opts, body=body)
        if observation.wants_schema and not opts.get("source_file"):
            detected = detect_caller_file()
            if detected:
                opts["source_file"] = detected
            else:
                logger.debug("Caller file not detected; source rewrite will be skipped")
        return observation

    def _request_kwargs(self, observation: Observation) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"extensions": {EXTENSION_KEY: observation}}
        headers = observation.options.get("headers")
        if headers:
            kwargs["headers"] = headers
        if observation.body is not None:
            kwargs["json"] = observation.body
        return kwargs

    def _generate(self, payload: Any, title: str) -> bool:
        try:
            descriptor = synthesize(payload, title)
        except UnsupportedShapeError as exc:
            logger.debug("Skipping schema %s: %s", title, exc)
            return False
        try:
            write_schema(
                descriptor,
                title,
                schema_path(title, self.config),
                self.formatter,
                self.config.type_suffix,
            )
            ensure_package(self.config.schema_root)
        except (IOWriteError, ValueError) as exc:
            logger.debug("Could not write schema %s: %s", title, exc)
            return False
        return True

    def _record(self, observation: Observation, response: httpx.Response) -> None:
        options = observation.options
        written = False
        if observation.wants_output_schema:
            if response.is_success:
                try:
                    payload = response.json()
                except ValueError as exc:
                    logger.debug("Response from %s is not JSON: %s", response.request.url, exc)
                else:
                    written = self._generate(payload, options["interface_name"])
            else:
                logger.debug(
                    "Not generating %s from a %s response",
                    options["interface_name"],
                    response.status_code,
                )
        if observation.wants_input_schema and observation.body is not None:
            self._generate(observation.body, options["input_interface_name"])
        source_file = options.get("source_file")
        if not source_file or not observation.wants_output_schema:
            return
        if not written and not schema_path(options["interface_name"], self.config).exists():
            logger.debug(
                "No %s schema yet; leaving %s as is", options["interface_name"], source_file
            )
            return
        try:
            transform_http_client_call(
                source_file,
                False,
                config=self.config,
                formatter=self.formatter,
                require_schema=True,
            )
        except (KatalistError, OSError, SyntaxError, ValueError):
            logger.debug("Transform of %s failed", source_file, exc_info=True)


def _observation(response: httpx.Response) -> Observation | None:
    observation = response.request.extensions.get(EXTENSION_KEY)
    if isinstance(observation, Observation) and observation.wants_schema:
        return observation
    return None


class Katalist(_SchemaRecorder):
    """Synchronous facade over ``httpx.Client``."""

    def __init__(
        self,
        config: KatalistConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        formatter: Formatter | None = None,
        **client_kwargs: Any,
    ) -> None:
        self._setup(config, formatter)
        self._client = httpx.Client(
            base_url=self.config.base_url,
            headers=self.config.headers,
            timeout=self.config.timeout,
            transport=transport,
            event_hooks={"response": [self._after_response]},
            **client_kwargs,
        )

    def _after_response(self, response: httpx.Response) -> None:
        observation = _observation(response)
        if observation is None:
            return
        response.read()
        self._record(observation, response)

    def _send(
        self, method: str, url: str, body: Any, options: KatalistOptions | None
    ) -> TypedResponse[Any]:
        observation = self._observe(options, body)
        response = self._client.request(method, url, **self._request_kwargs(observation))
        if self.config.raise_for_status:
            response.raise_for_status()
        return TypedResponse(response)

    @overload
    def get(self, url: str, options: KatalistOptions | None = None) -> TypedResponse[Any]: ...

    @overload
    def get(
        self, url: str, options: KatalistOptions | None = None, *, response_type: type[T]
    ) -> TypedResponse[T]: ...

    def get(self, url, options=None, *, response_type=None):
        return self._send("GET", url, None, options)

    @overload
    def delete(self, url: str, options: KatalistOptions | None = None) -> TypedResponse[Any]: ...

    @overload
    def delete(
        self, url: str, options: KatalistOptions | None = None, *, response_type: type[T]
    ) -> TypedResponse[T]: ...

    def delete(self, url, options=None, *, response_type=None):
        return self._send("DELETE", url, None, options)

    @overload
    def post(
        self, url: str, body: Any = None, options: KatalistOptions | None = None
    ) -> TypedResponse[Any]: ...

    @overload
    def post(
        self,
        url: str,
        body: Any = None,
        options: KatalistOptions | None = None,
        *,
        response_type: type[T],
    ) -> TypedResponse[T]: ...

    def post(self, url, body=None, options=None, *, response_type=None):
        return self._send("POST", url, body, options)

    @overload
    def put(
        self, url: str, body: Any = None, options: KatalistOptions | None = None
    ) -> TypedResponse[Any]: ...

    @overload
    def put(
        self,
        url: str,
        body: Any = None,
        options: KatalistOptions | None = None,
        *,
        response_type: type[T],
    ) -> TypedResponse[T]: ...

    def put(self, url, body=None, options=None, *, response_type=None):
        return self._send("PUT", url, body, options)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> Katalist:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncKatalist(_SchemaRecorder):
    """Asynchronous facade over ``httpx.AsyncClient``.

    Schema writing and source rewriting run in a worker thread.
    """

    def __init__(
        self,
        config: KatalistConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        formatter: Formatter | None = None,
        **client_kwargs: Any,
    ) -> None:
        self._setup(config, formatter)
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=self.config.headers,
            timeout=self.config.timeout,
            transport=transport,
            event_hooks={"response": [self._after_response]},
            **client_kwargs,
        )

    async def _after_response(self, response: httpx.Response) -> None:
        observation = _observation(response)
        if observation is None:
            return
        await response.aread()
        await asyncio.to_thread(self._record, observation, response)

    async def _send(
        self, method: str, url: str, body: Any, options: KatalistOptions | None
    ) -> TypedResponse[Any]:
        observation = self._observe(options, body)
        response = await self._client.request(method, url, **self._request_kwargs(observation))
        if self.config.raise_for_status:
            response.raise_for_status()
        return TypedResponse(response)

    async def get(
        self,
        url: str,
        options: KatalistOptions | None = None,
        *,
        response_type: type[T] | None = None,
    ) -> TypedResponse[T]:
        return await self._send("GET", url, None, options)

    async def delete(
        self,
        url: str,
        options: KatalistOptions | None = None,
        *,
        response_type: type[T] | None = None,
    ) -> TypedResponse[T]:
        return await self._send("DELETE", url, None, options)

    async def post(
        self,
        url: str,
        body: Any = None,
        options: KatalistOptions | None = None,
        *,
        response_type: type[T] | None = None,
    ) -> TypedResponse[T]:
        return await self._send("POST", url, body, options)

    async def put(
        self,
        url: str,
        body: Any = None,
        options: KatalistOptions | None = None,
        *,
        response_type: type[T] | None = None,
    ) -> TypedResponse[T]:
        return await self._send("PUT", url, body, options)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncKatalist:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def katalist(config: KatalistConfig | None = None, **kwargs: Any) -> Katalist:
    """Create a synchronous client."""
    return Katalist(config, **kwargs)
