"""
workflow helpers
"""


def singleton(cls):
    """
    class decorator keeping a single instance of the class

    the constructor arguments of the later calls are ignored
    """
    instances = {}

    def get_instance(*args, **kwargs):
        if cls not in instances:
            instances[cls] = cls(*args, **kwargs)
        return instances[cls]

    return get_instance
