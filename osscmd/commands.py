"""Command dispatch: (command, args, options) to a typed result.

Each handler takes the client, positional args, TransferOptions and an
optional reporter, and returns a result dataclass. Nothing here prints.
"""

import logging
from typing import Any, Callable, Mapping, Optional

from osscmd.bulk import BulkTransfer
from osscmd.client import OssClient
from osscmd.download import download_object, iter_object_chunks
from osscmd.errors import PathError, UnknownCommandError, UsageError
from osscmd.models import OSS_SCHEME, FailurePolicy, ObjectRef, TransferOptions
from osscmd.multipart import MultipartTransfer
from osscmd.reporters.base import Reporter

logger = logging.getLogger(__name__)

# Alias -> canonical command name
ALIASES = {
    "upload": "put",
    "copylargefile": "copy",
    "delete": "rm",
    "del": "rm",
    "list": "ls",
}


def canonical_command(command: str) -> str:
    return ALIASES.get(command.lower(), command.lower())


def is_true(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() == "true"


def parse_headers(value: Optional[str]) -> dict[str, str]:
    """Parse "name:value,name2:value2" into a dict.

    Raises:
        UsageError: If an entry has no ':' separator
    """
    headers: dict[str, str] = {}
    if not value:
        return headers
    for item in value.split(","):
        if not item.strip():
            continue
        name, sep, header_value = item.partition(":")
        if not sep or not name.strip():
            raise UsageError(f"Invalid header '{item}', expected name:value")
        headers[name.strip()] = header_value.strip()
    return headers


def _positive_int(options: Mapping[str, str], name: str) -> Optional[int]:
    raw = options.get(name)
    if raw in (None, ""):
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise UsageError(f"Option {name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise UsageError(f"Option {name} must be positive, got {raw!r}")
    return value


def build_transfer_options(options: Mapping[str, str]) -> TransferOptions:
    """Typed TransferOptions from the raw option map.

    Recognised keys: headers, force, replace, suffix, marker, delimiter,
    maxkeys, partsize (bytes), thread_num and policy (fail_fast|continue).
    """
    policy_name = (options.get("policy") or FailurePolicy.FAIL_FAST.value).lower()
    try:
        policy = FailurePolicy(policy_name)
    except ValueError as e:
        raise UsageError(f"Unknown failure policy: {policy_name}") from e

    return TransferOptions(
        headers=parse_headers(options.get("headers")),
        force=is_true(options.get("force")),
        replace=is_true(options.get("replace")),
        suffixes=[s.strip() for s in (options.get("suffix") or "").split(",") if s.strip()],
        marker=options.get("marker") or "",
        delimiter=options.get("delimiter") or "",
        max_keys=_positive_int(options, "maxkeys"),
        part_size=_positive_int(options, "partsize"),
        thread_num=_positive_int(options, "thread_num"),
        policy=policy,
    )


def oss_ref(path: str) -> ObjectRef:
    """Parse a positional that must be an oss://bucket/key path."""
    if not path.startswith(OSS_SCHEME):
        raise PathError(f"{path} is not an {OSS_SCHEME}bucket/object path")
    return ObjectRef.parse(path)


def _require(command: str, args: list[str], count: int, usage: str) -> None:
    if len(args) < count:
        raise UsageError(f"{command} needs {count} argument(s): {usage}")


def _on_entry(reporter: Optional[Reporter]):
    return reporter.on_entry if reporter else None


# -- handlers ---------------------------------------------------------------

def _put(client, args, options, reporter):
    _require("put", args, 2, "localfile oss://bucket/object")
    ref = oss_ref(args[1])
    return client.upload_file(
        args[0], ref.bucket, ref.key,
        disposition=options.disposition,
        headers=options.oss_headers,
    )


def _upload_large_file(client, args, options, reporter):
    _require("uploadlargefile", args, 2, "localfile oss://bucket/object")
    return MultipartTransfer(client, reporter).upload_file(args[0], oss_ref(args[1]), options)


def _copy(client, args, options, reporter):
    _require("copy", args, 2, "oss://bucket/source oss://bucket/target")
    return MultipartTransfer(client, reporter).copy_object(
        oss_ref(args[0]), oss_ref(args[1]), options
    )


def _copy_bucket(client, args, options, reporter):
    _require("copybucket", args, 2, "oss://bucket/prefix oss://bucket/prefix")
    return BulkTransfer(client, reporter).copy_bucket(oss_ref(args[0]), oss_ref(args[1]), options)


def _upload_from_dir(client, args, options, reporter):
    _require("uploadfromdir", args, 2, "localdir oss://bucket/prefix")
    return BulkTransfer(client, reporter).upload_from_dir(args[0], oss_ref(args[1]), options)


def _get(client, args, options, reporter):
    _require("get", args, 2, "oss://bucket/object localfile")
    return download_object(client, oss_ref(args[0]), args[1], options, reporter)


def _cat(client, args, options, reporter):
    _require("cat", args, 1, "oss://bucket/object")
    return iter_object_chunks(client, oss_ref(args[0]))


def _meta(client, args, options, reporter):
    _require("meta", args, 1, "oss://bucket/object")
    ref = oss_ref(args[0])
    return client.head(ref.bucket, ref.key)


def _rm(client, args, options, reporter):
    _require("rm", args, 1, "oss://bucket/object")
    ref = oss_ref(args[0])
    if not ref.key:
        raise UsageError("rm needs an object name; use deleteallobject for a prefix")
    return client.delete(ref.bucket, ref.key)


def _ls(client, args, options, reporter):
    _require("ls", args, 1, "oss://bucket[/prefix]")
    return BulkTransfer(client, reporter).list_objects(
        oss_ref(args[0]), options, on_entry=_on_entry(reporter)
    )


def _list_all_objects(client, args, options, reporter):
    _require("listallobject", args, 1, "oss://bucket[/prefix]")
    return BulkTransfer(client, reporter).list_all_objects(
        oss_ref(args[0]), on_entry=_on_entry(reporter)
    )


def _delete_all_objects(client, args, options, reporter):
    _require("deleteallobject", args, 1, "oss://bucket[/prefix]")
    return BulkTransfer(client, reporter).delete_all_objects(oss_ref(args[0]), options)


COMMANDS: dict[str, Callable[..., Any]] = {
    "put": _put,
    "uploadlargefile": _upload_large_file,
    "copy": _copy,
    "copybucket": _copy_bucket,
    "uploadfromdir": _upload_from_dir,
    "get": _get,
    "cat": _cat,
    "meta": _meta,
    "rm": _rm,
    "ls": _ls,
    "listallobject": _list_all_objects,
    "deleteallobject": _delete_all_objects,
}


def run_command(
    client: OssClient,
    command: str,
    args: list[str],
    options: Optional[Mapping[str, str]] = None,
    reporter: Optional[Reporter] = None,
) -> Any:
    """Run one command and return its result.

    Args:
        client: OSS client
        command: Command name or alias
        args: Positional arguments
        options: Raw option map (see build_transfer_options)
        reporter: Receives progress and listing entries

    Returns:
        The handler's result. cat returns an iterator of byte chunks.

    Raises:
        UnknownCommandError: For an unknown command name
        UsageError: For missing positionals or invalid options
    """
    name = canonical_command(command)
    handler = COMMANDS.get(name)
    if handler is None:
        raise UnknownCommandError(f"Unknown command: {command}")

    transfer_options = build_transfer_options(options or {})
    logger.debug("Running %s with args %s", name, args)
    return handler(client, list(args), transfer_options, reporter)
