import sys
import importlib
from typing import Any


def safe_issubclass(kls, classinfo):
    try:
        return issubclass(kls, classinfo)
    except TypeError:
        return False


def resolve_ref(ref: Any, module_name: str) -> Any:
    """
    Resolve class references expressed as strings.

    - 'UserFactory': looked up in the declaring module
    - 'path.to.module:UserFactory': imported lazily, avoids circular imports

    non-string references are returned as is.
    raise LookupError if the reference can not be found.
    """
    if not isinstance(ref, str):
        return ref

    if ':' in ref:
        module_path, _, name = ref.partition(':')
        try:
            mod = importlib.import_module(module_path)
        except ImportError as e:
            raise LookupError(f"Unable to import module '{module_path}' for reference '{ref}'") from e
    else:
        name = ref
        mod = sys.modules.get(module_name)

    if mod is not None and hasattr(mod, name):
        return getattr(mod, name)
    raise LookupError(f"Unable to resolve reference '{ref}' in module '{getattr(mod, '__name__', module_name)}'")
