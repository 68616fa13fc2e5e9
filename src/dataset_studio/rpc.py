# rpc.py
# Unary gRPC calls described by inline .proto text instead of generated stubs.
#
# Phases, each logging its own event before failing:
#   parse    — compile the definition into a descriptor pool
#   resolve  — find service, method, request/response message types
#   validate — build the request message from a plain dict
#   call     — one unary call, binary codec from the resolved types
#
# No retries. A failed call raises; retry policy belongs to the caller.

import functools
import tempfile
from importlib import resources
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory
from grpc_tools import protoc

from dataset_studio.events import LogFunction
from dataset_studio.models import LogType

SOURCE = "SDK.gRPC"
DEFAULT_TIMEOUT = 10.0
_PROTO_FILENAME = "definition.proto"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RpcError(Exception):
    """Base class for every failure raised by the bridge."""


class ProtoParseError(RpcError):
    """Raised when the .proto text does not compile."""


class RpcNotFoundError(RpcError):
    """Raised when the named service or method is absent from the definition."""


class RpcValidationError(RpcError):
    """Raised when the request payload does not match the request message type."""


class RpcStatusError(RpcError):
    """Raised when the server answers with a non-OK status."""

    def __init__(self, code: grpc.StatusCode, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"gRPC Error: {message} (Code: {code.name})")


# ---------------------------------------------------------------------------
# Type registry
# ---------------------------------------------------------------------------


class ProtoRegistry:
    """Descriptor pool built from one .proto text, with lookups that raise bridge errors."""

    def __init__(self, pool: descriptor_pool.DescriptorPool) -> None:
        self._pool = pool

    def find_method(self, service_name: str, method_name: str):
        try:
            service = self._pool.FindServiceByName(service_name)
        except KeyError:
            raise RpcNotFoundError(
                f"Service '{service_name}' not found in proto definition."
            ) from None

        method = service.methods_by_name.get(method_name)
        if method is None:
            raise RpcNotFoundError(
                f"Method '{method_name}' not found in service '{service_name}'."
            )
        return method

    def message_class(self, full_name: str) -> type:
        try:
            descriptor = self._pool.FindMessageTypeByName(full_name)
        except KeyError:
            raise RpcNotFoundError(f"Message type '{full_name}' not found in proto definition.") from None
        return message_factory.GetMessageClass(descriptor)


@functools.lru_cache(maxsize=32)
def load_proto_registry(proto_content: str) -> ProtoRegistry:
    """
    Compile .proto text with protoc and load the result into a fresh pool.

    Well-known imports (google/protobuf/*.proto) resolve against the copies
    bundled with grpcio-tools. Cached by definition text.
    """
    include_dir = str(resources.files("grpc_tools") / "_proto")

    with tempfile.TemporaryDirectory(prefix="proto-") as workdir:
        source = Path(workdir) / _PROTO_FILENAME
        output = Path(workdir) / "descriptor.pb"
        source.write_text(proto_content, encoding="utf-8")

        status = protoc.main(
            [
                "grpc_tools.protoc",
                f"--proto_path={workdir}",
                f"--proto_path={include_dir}",
                f"--descriptor_set_out={output}",
                "--include_imports",
                _PROTO_FILENAME,
            ]
        )
        if status != 0 or not output.exists():
            raise ProtoParseError(f"protoc rejected the definition (exit status {status}).")

        descriptor_set = descriptor_pb2.FileDescriptorSet.FromString(output.read_bytes())

    pool = descriptor_pool.DescriptorPool()
    for file_proto in descriptor_set.file:
        pool.AddSerializedFile(file_proto.SerializeToString())
    return ProtoRegistry(pool)


def _channel_target(service_url: str) -> tuple[str, bool]:
    """Return (host:port, use_tls) for a URL or bare target."""
    if "://" not in service_url:
        return service_url, False
    parts = urlsplit(service_url)
    return parts.netloc, parts.scheme in ("https", "grpcs")


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------


class RpcBridge:
    """
    Performs single unary calls for tool code.

    Example:
        bridge = RpcBridge(event_log.add)
        reply = bridge.call(
            "http://localhost:8080", PROTO, "health.HealthCheck", "GetVersion", {}
        )
    """

    def __init__(self, log: LogFunction, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._log = log
        self._timeout = timeout

    def call(
        self,
        service_url: str,
        proto_content: str,
        service_name: str,
        method_name: str,
        request_payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._log(SOURCE, f"Initiating call to {service_name}.{method_name}", LogType.INFO)
        request_payload = {} if request_payload is None else request_payload

        # ── parse ────────────────────────────────────────────────────
        try:
            registry = load_proto_registry(proto_content)
        except ProtoParseError as exc:
            self._log(SOURCE, f"Proto definition could not be parsed: {exc}", LogType.ERROR)
            raise

        # ── resolve ──────────────────────────────────────────────────
        try:
            method = registry.find_method(service_name, method_name)
            if method.client_streaming or method.server_streaming:
                raise RpcValidationError(
                    f"Method '{method_name}' is streaming; only unary calls are supported."
                )
            request_cls = registry.message_class(method.input_type.full_name)
            response_cls = registry.message_class(method.output_type.full_name)
        except RpcError as exc:
            self._log(SOURCE, f"Could not resolve {service_name}.{method_name}: {exc}", LogType.ERROR)
            raise

        # ── validate ─────────────────────────────────────────────────
        try:
            request = self._build_request(request_cls, request_payload)
        except RpcValidationError as exc:
            self._log(SOURCE, str(exc), LogType.ERROR)
            raise

        # ── call ─────────────────────────────────────────────────────
        target, secure = _channel_target(service_url)
        if secure:
            channel = grpc.secure_channel(target, grpc.ssl_channel_credentials())
        else:
            channel = grpc.insecure_channel(target)

        with channel:
            unary = channel.unary_unary(
                f"/{method.containing_service.full_name}/{method.name}",
                request_serializer=lambda message: message.SerializeToString(),
                response_deserializer=response_cls.FromString,
            )
            try:
                response = unary(request, timeout=self._timeout)
            except grpc.RpcError as exc:
                if isinstance(exc, grpc.Call):
                    error = RpcStatusError(exc.code(), exc.details() or "")
                else:
                    error = RpcStatusError(grpc.StatusCode.UNKNOWN, str(exc))
                self._log(SOURCE, str(error), LogType.ERROR)
                raise error from exc

        result = json_format.MessageToDict(response, preserving_proto_field_name=True)
        if result:
            self._log(SOURCE, f"Call successful. Response: {result}", LogType.ACTION)
        else:
            self._log(SOURCE, "Call successful but received an empty message.", LogType.WARNING)
        return result

    @staticmethod
    def _build_request(request_cls: type, payload: Any):
        if not isinstance(payload, dict):
            raise RpcValidationError(
                f"Request payload validation failed: expected an object, got {type(payload).__name__}"
            )
        request = request_cls()
        try:
            json_format.ParseDict(payload, request)
        except json_format.ParseError as exc:
            raise RpcValidationError(f"Request payload validation failed: {exc}") from exc

        missing = request.FindInitializationErrors()
        if missing:
            raise RpcValidationError(
                f"Request payload validation failed: missing required field(s) {', '.join(missing)}"
            )
        return request
