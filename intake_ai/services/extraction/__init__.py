"""Entity extraction and ambiguity reasoning."""

from intake_ai.services.extraction.ambiguity_resolver import NO_AMBIGUITY_MESSAGE, AmbiguityResolver
from intake_ai.services.extraction.entity_extractor import EntityExtractor

__all__ = ["AmbiguityResolver", "EntityExtractor", "NO_AMBIGUITY_MESSAGE"]
