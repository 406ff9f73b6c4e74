from typing import Union, Annotated, get_origin, get_args
try:  # Python 3.10+ provides PEP 604 unions using types.UnionType
    from types import UnionType as _UnionType
except ImportError:  # pragma: no cover - prior to 3.10
    _UnionType = ()  # sentinel so membership tests still work


def _is_optional(annotation):
    origin = get_origin(annotation)
    args = get_args(annotation)
    if origin in (Union, _UnionType) and type(None) in args:
        return True
    return False


def split_annotated(annotation):
    """
    Annotated[int, Pk()] -> (int, (Pk(),))
    int -> (int, ())
    """
    if get_origin(annotation) is Annotated:
        base, *metadata = get_args(annotation)
        return base, tuple(metadata)
    return annotation, ()


def shelling_optional(annotation):
    """
    Optional[int] -> (int, True)
    Optional[Union[int, str]] -> (Union[int, str], True)
    int -> (int, False)
    """
    if not _is_optional(annotation):
        return annotation, False

    args = tuple(a for a in get_args(annotation) if a is not type(None))
    if len(args) == 1:
        return args[0], True
    return Union[args], True


def zero_value(annotation):
    """
    the value a field holds when nothing is declared for it

    - Optional[T] -> None
    - int, str, list, dict ... -> tp()

    raise TypeError if the type can not be built without arguments
    """
    if _is_optional(annotation):
        return None

    origin = get_origin(annotation) or annotation
    if not isinstance(origin, type):
        raise TypeError(f'no zero value for {annotation!r}')
    return origin()
