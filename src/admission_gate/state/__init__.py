from admission_gate.state.base import ConfigStore
from admission_gate.state.json_store import JsonConfigStore
from admission_gate.state.memory_store import InMemoryConfigStore

__all__ = ["ConfigStore", "InMemoryConfigStore", "JsonConfigStore"]
