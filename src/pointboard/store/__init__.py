from pointboard.store.database import Database
from pointboard.store.protocol import RemoteStore

__all__ = ["Database", "RemoteStore"]
