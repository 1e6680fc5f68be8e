from . import opportunities, organizations, proposals, tasks

__all__ = ["opportunities", "organizations", "proposals", "tasks"]
