import base64
import json
import pickle
import typing as tp
from datetime import datetime

from httpcore import Request, Response

from swrcache._utils import HEADERS_ENCODING, normalized_url

try:
    import yaml
except ImportError:  # pragma: no cover
    yaml = None  # type: ignore

KNOWN_RESPONSE_EXTENSIONS = ("http_version", "reason_phrase")

__all__ = ("PickleSerializer", "JSONSerializer", "YAMLSerializer", "BaseSerializer", "Metadata", "clone_model")

T = tp.TypeVar("T", Request, Response)


def clone_model(model: T) -> T:
    """
    Copies a request or a read response into a fresh object that owns its own stream.
    """
    if isinstance(model, Response):
        clone = Response(
            status=model.status,
            headers=list(model.headers),
            content=model.content,
            extensions={key: value for key, value in model.extensions.items() if key in KNOWN_RESPONSE_EXTENSIONS},
        )
        clone.read()
        return clone  # type: ignore
    else:
        return Request(
            method=model.method,
            url=normalized_url(model.url),
            headers=list(model.headers),
        )  # type: ignore


class Metadata(tp.TypedDict):
    cache_name: str
    cache_key: str
    created_at: datetime


StoredResponse = tp.Tuple[Response, Request, Metadata]


class BaseSerializer:
    def dumps(self, response: Response, request: Request, metadata: Metadata) -> tp.Union[str, bytes]:
        raise NotImplementedError()

    def loads(self, data: tp.Union[str, bytes]) -> StoredResponse:
        raise NotImplementedError()

    @property
    def is_binary(self) -> bool:
        raise NotImplementedError()


def _encode_headers(headers: tp.List[tp.Tuple[bytes, bytes]]) -> tp.List[tp.List[str]]:
    return [[key.decode(HEADERS_ENCODING), value.decode(HEADERS_ENCODING)] for key, value in headers]


def _decode_headers(headers: tp.List[tp.List[str]]) -> tp.List[tp.Tuple[bytes, bytes]]:
    return [(key.encode(HEADERS_ENCODING), value.encode(HEADERS_ENCODING)) for key, value in headers]


def _to_dict(response: Response, request: Request, metadata: Metadata) -> tp.Dict[str, tp.Any]:
    return {
        "response": {
            "status": response.status,
            "headers": _encode_headers(response.headers),
            "content": base64.b64encode(response.content).decode("ascii"),
            "extensions": {
                key: value.decode("ascii")
                for key, value in response.extensions.items()
                if key in KNOWN_RESPONSE_EXTENSIONS
            },
        },
        "request": {
            "method": request.method.decode("ascii"),
            "url": normalized_url(request.url),
            "headers": _encode_headers(request.headers),
        },
        "metadata": {
            "cache_name": metadata["cache_name"],
            "cache_key": metadata["cache_key"],
            "created_at": metadata["created_at"].isoformat(),
        },
    }


def _from_dict(data: tp.Dict[str, tp.Any]) -> StoredResponse:
    response_dict = data["response"]
    request_dict = data["request"]
    metadata_dict = data["metadata"]

    response = Response(
        status=response_dict["status"],
        headers=_decode_headers(response_dict["headers"]),
        content=base64.b64decode(response_dict["content"].encode("ascii")),
        extensions={
            key: value.encode("ascii")
            for key, value in response_dict["extensions"].items()
            if key in KNOWN_RESPONSE_EXTENSIONS
        },
    )

    request = Request(
        method=request_dict["method"],
        url=request_dict["url"],
        headers=_decode_headers(request_dict["headers"]),
    )

    metadata = Metadata(
        cache_name=metadata_dict["cache_name"],
        cache_key=metadata_dict["cache_key"],
        created_at=datetime.fromisoformat(metadata_dict["created_at"]),
    )

    return response, request, metadata


class PickleSerializer(BaseSerializer):
    """
    A simple pickle-based serializer.
    """

    def dumps(self, response: Response, request: Request, metadata: Metadata) -> tp.Union[str, bytes]:
        return pickle.dumps((clone_model(response), clone_model(request), metadata))

    def loads(self, data: tp.Union[str, bytes]) -> StoredResponse:
        assert isinstance(data, bytes)
        return tp.cast(StoredResponse, pickle.loads(data))

    @property
    def is_binary(self) -> bool:  # pragma: no cover
        return True


class JSONSerializer(BaseSerializer):
    """A simple json-based serializer."""

    def dumps(self, response: Response, request: Request, metadata: Metadata) -> tp.Union[str, bytes]:
        """
        Dumps the snapshot, the request it answers and its metadata.

        :param response: A read HTTP response
        :type response: Response
        :param request: The HTTP request the response was fetched for
        :type request: Request
        :param metadata: Where and when the snapshot was stored
        :type metadata: Metadata
        :return: Serialized snapshot
        :rtype: tp.Union[str, bytes]
        """
        return json.dumps(_to_dict(response, request, metadata), indent=4)

    def loads(self, data: tp.Union[str, bytes]) -> StoredResponse:
        """
        Loads the snapshot, its request and metadata from serialized data.

        :param data: Serialized data
        :type data: tp.Union[str, bytes]
        :return: HTTP response, its HTTP request and metadata
        :rtype: tp.Tuple[Response, Request, Metadata]
        """
        return _from_dict(json.loads(data))

    @property
    def is_binary(self) -> bool:
        return False


class YAMLSerializer(BaseSerializer):
    """A simple yaml-based serializer."""

    def __init__(self) -> None:
        if yaml is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `swrcache` installed with the `yaml` extension as shown.\n"
                "```pip install swrcache[yaml]```"
            )

    def dumps(self, response: Response, request: Request, metadata: Metadata) -> tp.Union[str, bytes]:
        return yaml.safe_dump(_to_dict(response, request, metadata), sort_keys=False)

    def loads(self, data: tp.Union[str, bytes]) -> StoredResponse:
        return _from_dict(yaml.safe_load(data))

    @property
    def is_binary(self) -> bool:  # pragma: no cover
        return False
