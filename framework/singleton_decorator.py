import threading


def singleton(class_):
    """
    Make a class return the same instance for every call, whatever the arguments.
    Use shared_module instead when instances should be keyed by config.
    """
    instances = {}
    lock = threading.Lock()

    def getinstance(*args, **kwargs):
        with lock:
            if class_ not in instances:
                instances[class_] = class_(*args, **kwargs)
        return instances[class_]

    getinstance.__name__ = class_.__name__
    getinstance.__doc__ = class_.__doc__
    getinstance.__module__ = class_.__module__
    return getinstance
