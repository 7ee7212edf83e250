"""Resolve hot-load module references into service handlers."""

import importlib
import importlib.util
import itertools
import sys
import types
from pathlib import Path
from typing import Protocol

from .errors import ModuleResolutionError
from .registry import Handler

_load_counter = itertools.count()


class ModuleLoader(Protocol):
    """Anything that can turn a module reference into a handler."""

    def resolve(self, ref: str) -> Handler: ...


def _export_handler(obj, ref: str) -> Handler:
    """Pick the handler out of a loaded module or attribute."""
    if isinstance(obj, types.ModuleType):
        if not hasattr(obj, "handler"):
            raise ModuleResolutionError(ref, "module does not define 'handler'")
        obj = obj.handler
    if callable(obj) and not hasattr(obj, "handler"):
        return obj
    handler = getattr(obj, "handler", None)
    if callable(handler):
        return handler
    raise ModuleResolutionError(ref, "export is neither callable nor has a callable 'handler'")


class DefaultModuleLoader:
    """Load handlers from Python files or importable modules.

    ``path/to/echo.py`` is executed as a fresh module on every resolve, so
    hot-loading the same file again picks up edits.  ``pkg.mod`` and
    ``pkg.mod:attr`` are imported normally.
    """

    def resolve(self, ref: str) -> Handler:
        if not isinstance(ref, str) or not ref:
            raise ModuleResolutionError(ref, "module reference must be a non-empty string")
        path = Path(ref)
        if ref.endswith(".py") or path.is_file():
            return _export_handler(self._load_file(path, ref), ref)
        return self._load_import(ref)

    def _load_file(self, path: Path, ref: str):
        if not path.is_file():
            raise ModuleResolutionError(ref, "no such file")
        module_name = f"_devhost_service_{path.stem.replace('-', '_')}_{next(_load_counter)}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ModuleResolutionError(ref, "not a loadable Python module")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise ModuleResolutionError(ref, f"{type(e).__name__}: {e}") from e
        # Only needed while the module body runs
        sys.modules.pop(module_name, None)
        return module

    def _load_import(self, ref: str) -> Handler:
        module_name, _, attr = ref.partition(":")
        try:
            module = importlib.import_module(module_name)
        except Exception as e:
            raise ModuleResolutionError(ref, f"{type(e).__name__}: {e}") from e
        if not attr:
            return _export_handler(module, ref)
        obj = module
        for part in attr.split("."):
            try:
                obj = getattr(obj, part)
            except AttributeError:
                raise ModuleResolutionError(ref, f"'{module_name}' has no attribute '{attr}'") from None
        return _export_handler(obj, ref)
