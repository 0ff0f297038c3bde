import threading


def shared_module(class_):
    """
    This decorator is used to mark a class as a shared module.
    1. When parameters set forth in Config class are the same, the SAME instance will be returned.
    2. When parameters are different, a NEW instance will be returned.
    For examples, see module_test.py
    """
    instances = {}
    lock = threading.Lock()

    def getinstance(*args, **kwargs):
        config_key = None
        if args and hasattr(args[0], 'model_dump'):
            config_dict = args[0].model_dump()
            config_key = make_hashable(config_dict)
        elif args and hasattr(args[0], '__dict__'):
            config_dict = args[0].__dict__
            config_key = make_hashable(config_dict)

        # Ensure config_key is hashable
        if config_key is None:
            config_key = ()

        # Make kwargs hashable as well to avoid "unhashable type: 'dict'"
        kwargs_key = make_hashable(kwargs)

        key = (class_, config_key, kwargs_key)
        with lock:
            if key not in instances:
                instances[key] = class_(*args, **kwargs)
            return instances[key]

    def clear_instances():
        with lock:
            instances.clear()

    # Keep the original class's attributes and methods
    getinstance.__name__ = class_.__name__
    getinstance.__doc__ = class_.__doc__
    getinstance.__module__ = class_.__module__
    getinstance.__wrapped__ = class_
    getinstance.clear_instances = clear_instances
    return getinstance


def make_hashable(obj):
    """Recursively convert complex objects (including Pydantic BaseModel) to hashable types."""
    from pydantic import BaseModel

    if isinstance(obj, BaseModel):
        return make_hashable(obj.model_dump())

    # Dict: normalize keys (stringify for stable sorting) and recurse on values
    if isinstance(obj, dict):
        items = []
        for k, v in obj.items():
            key_hashable = k if isinstance(k, (str, int, float, bool, bytes)) else repr(k)
            items.append((key_hashable, make_hashable(v)))
        items.sort(key=lambda kv: repr(kv[0]))
        return tuple(items)

    # List/Tuple: recurse and convert to tuple
    if isinstance(obj, (list, tuple)):
        return tuple(make_hashable(x) for x in obj)

    # Set: recurse and sort by repr for deterministic order
    if isinstance(obj, set):
        return tuple(sorted((make_hashable(x) for x in obj), key=lambda x: repr(x)))

    # Dataclass support
    from dataclasses import is_dataclass, asdict
    if is_dataclass(obj) and not isinstance(obj, type):
        return make_hashable(asdict(obj))

    # Byte-like types
    if isinstance(obj, bytearray):
        return ("bytearray", bytes(obj))
    if isinstance(obj, memoryview):
        return ("memoryview", bytes(obj))

    # If already hashable, return as-is; otherwise, fallback to repr
    try:
        hash(obj)
        return obj
    except TypeError:
        return repr(obj)
