"""Factory for creating workflow models."""

import logging
import re

from flowsync.config import FlowSyncSettings
from flowsync.model.base import WorkflowModel
from flowsync.model.mistral import MistralModel
from flowsync.model.orquesta import OrquestaModel

logger = logging.getLogger(__name__)

_MISTRAL_VERSION = re.compile(r"""^version:\s*['"]?2\.0['"]?\s*(?:#.*)?$""", re.MULTILINE)
_WORKFLOWS_KEY = re.compile(r"^workflows:", re.MULTILINE)

MODELS: dict[str, type[WorkflowModel]] = {
    OrquestaModel.dialect: OrquestaModel,
    MistralModel.dialect: MistralModel,
}


def detect_dialect(text: str) -> str | None:
    """Guess the dialect from top-level keys.

    Works on raw lines so half-edited text can still be classified.

    Returns:
        ``"mistral"`` for a v2 workbook, ``"orquesta"`` for any other
        non-empty text, None for blank text.
    """
    if not text.strip():
        return None
    if _MISTRAL_VERSION.search(text) or _WORKFLOWS_KEY.search(text):
        return MistralModel.dialect
    return OrquestaModel.dialect


class ModelFactory:
    """Factory for creating workflow model instances."""

    @staticmethod
    def create(
        dialect: str | None = None,
        yaml_text: str | None = None,
        *,
        settings: FlowSyncSettings | None = None,
    ) -> WorkflowModel:
        """Create a model for ``yaml_text``.

        Args:
            dialect: ``"orquesta"`` or ``"mistral"``. Detected from the text
                when omitted, falling back to ``settings.dialect``.
            yaml_text: Initial document; the dialect's scaffold when omitted.
            settings: Shared settings, loaded from the environment when omitted.

        Returns:
            Model loaded with the document.

        Raises:
            ValueError: If the dialect is not supported.
            YamlSyntaxError: If the text is not valid YAML.
            SchemaError: If the text is not a valid workflow.
        """
        settings = settings or FlowSyncSettings()
        name = dialect or (detect_dialect(yaml_text) if yaml_text else None) or settings.dialect
        logger.info(f"Creating workflow model: {name}")

        model_class = MODELS.get(name.lower())
        if model_class is None:
            raise ValueError(f"Unsupported workflow dialect: {name}")
        return model_class(yaml_text, settings=settings)
