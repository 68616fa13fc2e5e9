# sandbox.py
# Execution runtime for user-supplied tool and RAG-action code.
#
# Tool code is a Python module that must define `tool(sdk, args)`. With the
# sandbox on (the default) it is compiled by RestrictedPython and executed
# against a restricted builtins table: no imports, no open(), no access to
# underscore attributes. The only capabilities it holds are the ones on the
# `sdk` object handed to it. Disabling the sandbox is an explicit per-workspace
# trust escalation that runs the code with the full host environment.

import asyncio
import builtins
import inspect
import operator
from typing import Any

import httpx
from RestrictedPython import compile_restricted, limited_builtins, safe_builtins, utility_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

from dataset_studio.events import LogFunction
from dataset_studio.models import LogType, ProjectConfig
from dataset_studio.rpc import RpcBridge

HTTP_TIMEOUT = 15.0
ENTRY_POINT = "tool"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ExecutionError(Exception):
    """Raised when tool code fails to compile, lacks an entry point, or raises."""


class HttpError(Exception):
    """Raised by sdk.http when the server answers with a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# SDK surface
# ---------------------------------------------------------------------------


class HttpHelper:
    """sdk.http — JSON-aware GET/POST that raise on non-2xx."""

    def __init__(self, log: LogFunction, timeout: float = HTTP_TIMEOUT) -> None:
        self._log = log
        self._timeout = timeout

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        self._log("SDK.http", f"Requesting {method} {url}", LogType.INFO)
        try:
            response = httpx.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.HTTPError as exc:
            self._log("SDK.http", f"Request to {url} failed: {exc}", LogType.ERROR)
            raise

        if not response.is_success:
            message = f"Request failed with status {response.status_code}: {response.text}"
            self._log("SDK.http", message, LogType.ERROR)
            raise HttpError(response.status_code, message)

        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    def get(self, url: str, headers: dict | None = None, params: dict | None = None) -> Any:
        return self._request("GET", url, headers=headers or {}, params=params)

    def post(self, url: str, body: Any, headers: dict | None = None) -> Any:
        return self._request("POST", url, headers=headers or {}, json=body)


class GrpcHelper:
    """sdk.grpc — unary calls through the RPC bridge."""

    def __init__(self, bridge: RpcBridge) -> None:
        self._bridge = bridge

    def call(
        self,
        service_url: str,
        proto_content: str,
        service_name: str,
        method_name: str,
        request_payload: dict | None = None,
    ) -> dict:
        return self._bridge.call(service_url, proto_content, service_name, method_name, request_payload)


class ToolSDK:
    """
    The complete capability set granted to tool code.

    Everything a tool may touch hangs off this object. Config is exposed as
    copies; the reference corpus only through get_reference_data().
    """

    def __init__(self, config: ProjectConfig, log: LogFunction) -> None:
        self._config = config
        self._log = log
        self.http = HttpHelper(log)
        self.grpc = GrpcHelper(RpcBridge(log))

    def log(self, message: Any, severity: str = "info") -> None:
        try:
            log_type = LogType(str(severity).lower())
        except ValueError:
            log_type = LogType.INFO
        self._log("Custom Code", str(message), log_type)

    def get_config(self) -> dict[str, str]:
        return {
            "project_name": self._config.project_name,
            "project_description": self._config.project_description,
            "scenario": self._config.scenario,
        }

    def get_reference_data(self) -> str:
        return self._config.reference_data


# ---------------------------------------------------------------------------
# Restricted globals
# ---------------------------------------------------------------------------

_INPLACE_OPERATORS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "&=": operator.iand,
    "|=": operator.ior,
    "^=": operator.ixor,
}


def _inplace_var(op: str, target: Any, value: Any) -> Any:
    return _INPLACE_OPERATORS[op](target, value)


def _restricted_globals() -> dict[str, Any]:
    restricted_builtins = {
        **safe_builtins,
        **limited_builtins,
        **utility_builtins,
        "dict": dict,
        "list": list,
        "enumerate": enumerate,
        "min": min,
        "max": max,
        "sum": sum,
        "any": any,
        "all": all,
        "map": map,
        "filter": filter,
        "reversed": reversed,
    }
    return {
        "__builtins__": restricted_builtins,
        "__name__": "tool_module",
        "__metaclass__": type,
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplace_var,
        "_print_": PrintCollector,
        "_apply_": lambda func, *args, **kwargs: func(*args, **kwargs),
    }


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class ToolExecutor:
    """
    Runs tool code on behalf of the Agent LLM.

    A fresh module namespace and SDK are built for every call, so no state
    leaks between tools or between calls of the same tool.
    """

    def __init__(self, log: LogFunction) -> None:
        self._log = log

    def _load(self, code: str, unsafe: bool) -> dict[str, Any]:
        if unsafe:
            namespace: dict[str, Any] = {"__builtins__": builtins, "__name__": "tool_module"}
            compiled = compile(code, "<tool>", "exec")
        else:
            namespace = _restricted_globals()
            compiled = compile_restricted(code, filename="<tool>", mode="exec")
        exec(compiled, namespace)
        return namespace

    def execute(self, code: str, args: dict[str, Any], config: ProjectConfig) -> Any:
        unsafe = config.unsafe_code_execution
        if unsafe:
            self._log(
                "Tool Executor",
                "Executing with UNLOCKED Python access. The code can use the full host environment.",
                LogType.WARNING,
            )

        sdk = ToolSDK(config, self._log)
        try:
            namespace = self._load(code, unsafe)
            entry_point = namespace.get(ENTRY_POINT)
            if not callable(entry_point):
                raise ExecutionError(f"'{ENTRY_POINT}' function is not defined in the code.")

            result = entry_point(sdk, args)
            if inspect.isawaitable(result):
                result = asyncio.run(result)
            return result

        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self._log("Tool Executor", f"Error executing custom code: {message}", LogType.ERROR)
            if isinstance(exc, ExecutionError):
                raise
            raise ExecutionError(f"Tool execution failed: {message}") from exc
