"""flowsync.

Keeps YAML workflow text and its task/transition graph in sync:
- a token-preserving document that edits YAML with minimal diffs
- a line scanner for ``chain:`` task blocks
- Orquesta and Mistral models with change and error events
"""

__version__ = "0.1.0"

from flowsync.config import FlowSyncSettings
from flowsync.model import MistralModel, ModelFactory, OrquestaModel, WorkflowModel

__all__ = [
    "__version__",
    "FlowSyncSettings",
    "MistralModel",
    "ModelFactory",
    "OrquestaModel",
    "WorkflowModel",
]
