from __future__ import annotations

import fnmatch
import json
import logging
import typing as tp
from pathlib import Path
from urllib.parse import urljoin

from ._exceptions import ManifestError

try:
    import yaml
except ImportError:  # pragma: no cover
    yaml = None  # type: ignore

logger = logging.getLogger("swrcache.manifest")

__all__ = ("Manifest",)

INDEX_DOCUMENT = "index.html"


class Manifest:
    """
    The ordered list of asset paths that must be cached before a version is ready.

    Paths are absolute URL paths (``/``, ``/index.html``, ``/boids/index.js``).
    Duplicates are dropped, keeping the first occurrence.

    :param paths: Asset paths, each starting with a slash
    :type paths: tp.Iterable[str]
    :raises ManifestError: When a path is not a string starting with ``/``
    """

    def __init__(self, paths: tp.Iterable[str] = ()) -> None:
        seen: tp.Dict[str, None] = {}
        for path in paths:
            if not isinstance(path, str) or not path.startswith("/"):
                raise ManifestError(f"Manifest paths must be strings starting with '/', got {path!r}")
            seen.setdefault(path, None)
        self._paths: tp.Tuple[str, ...] = tuple(seen)

    @property
    def paths(self) -> tp.Tuple[str, ...]:
        return self._paths

    def __iter__(self) -> tp.Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self._paths == other._paths

    def __repr__(self) -> str:
        return f"Manifest({list(self._paths)!r})"

    def resolve(self, origin: str) -> tp.List[str]:
        """
        Joins every path against the origin, e.g. ``https://example.com``.
        """
        return [urljoin(origin, path) for path in self._paths]

    @classmethod
    def from_file(cls, path: tp.Union[str, Path]) -> Manifest:
        """
        Loads a manifest from a JSON or YAML file.

        The document is either a list of paths or a mapping with a ``paths`` list.
        Files ending in ``.yaml`` or ``.yml`` are parsed as YAML.
        """
        path = Path(path)
        text = path.read_text(encoding="utf-8")

        if path.suffix in (".yaml", ".yml"):
            if yaml is None:  # pragma: no cover
                raise RuntimeError(
                    "A YAML manifest was used, but the required packages were not found. "
                    "Check that you have `swrcache` installed with the `yaml` extension as shown.\n"
                    "```pip install swrcache[yaml]```"
                )
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                raise ManifestError(f"Could not parse manifest {str(path)!r}: {exc}") from exc
        else:
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ManifestError(f"Could not parse manifest {str(path)!r}: {exc}") from exc

        if isinstance(data, dict):
            data = data.get("paths")
        if not isinstance(data, list):
            raise ManifestError(f"Manifest {str(path)!r} must contain a list of paths")
        return cls(data)

    @classmethod
    def from_directory(cls, root: tp.Union[str, Path], include: tp.Optional[tp.Sequence[str]] = None) -> Manifest:
        """
        Generates a manifest from a build output directory.

        Every file becomes ``/relative/path``. Every ``index.html`` also adds the
        URL of its directory (``/`` or ``/demo/``) right before the file itself.

        :param root: The build output directory
        :type root: tp.Union[str, Path]
        :param include: Glob patterns matched against the relative path, defaults to every file
        :type include: tp.Optional[tp.Sequence[str]], optional
        """
        root = Path(root)
        if not root.is_dir():
            raise ManifestError(f"{str(root)!r} is not a directory")

        paths: tp.List[str] = []
        for file in sorted(p for p in root.rglob("*") if p.is_file()):
            relative = file.relative_to(root).as_posix()
            if relative.startswith(".") or "/." in relative:
                continue
            if include is not None and not any(fnmatch.fnmatch(relative, pattern) for pattern in include):
                continue
            if file.name == INDEX_DOCUMENT:
                parent = file.parent.relative_to(root).as_posix()
                paths.append("/" if parent == "." else f"/{parent}/")
            paths.append(f"/{relative}")

        logger.debug(f"Generated manifest with {len(paths)} paths from {str(root)!r}")
        return cls(paths)
