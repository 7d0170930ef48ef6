from typing import Dict, List, Tuple
import re

import structlog

from axon.domain.models import Entity

logger = structlog.get_logger(__name__)


# (entity type, confidence, patterns); group 1 holds the value when present
ENTITY_PATTERNS: List[Tuple[str, float, List[re.Pattern]]] = [
    ("file", 0.8, [
        re.compile(r"(?:^|\s)((?:[A-Za-z]:\\|\.{1,2}/|/)?[\w.-]+(?:[/\\][\w.-]+)+)"),
        re.compile(r"\b([\w-]+\.(?:py|ts|tsx|js|jsx|go|rs|java|rb|md|json|ya?ml|toml|cfg|ini))\b"),
    ]),
    ("function", 0.7, [
        re.compile(r"\bdef\s+([A-Za-z_]\w*)"),
        re.compile(r"\bfunction\s+([A-Za-z_$][\w$]*)"),
        re.compile(r"\b([A-Za-z_]\w*)\("),
    ]),
    ("class", 0.7, [
        re.compile(r"\bclass\s+([A-Z]\w*)"),
        re.compile(r"\bnew\s+([A-Z]\w*)"),
    ]),
    ("variable", 0.6, [
        re.compile(r"\b(?:let|const|var)\s+([A-Za-z_$][\w$]*)"),
    ]),
    ("error", 0.9, [
        re.compile(r"\b\w*(?:Error|Exception):\s*([^\n]+)"),
    ]),
    ("code", 0.95, [
        re.compile(r"`([^`\n]+)`"),
    ]),
]

KNOWN_TECHNOLOGIES = [
    "react", "vue", "angular", "svelte", "next.js", "express", "node.js",
    "webpack", "vite", "jest", "vitest", "playwright", "typescript", "javascript",
    "django", "flask", "fastapi", "numpy", "pandas", "pytorch", "tensorflow", "pytest",
    "mongodb", "postgresql", "mysql", "redis", "elasticsearch", "qdrant",
    "docker", "kubernetes", "terraform", "aws", "azure", "gcp",
    "graphql", "grpc", "websocket", "oauth", "jwt", "tailwind",
]

TECHNOLOGY_CONFIDENCE = 0.85

_TECHNOLOGY_PATTERNS = [
    re.compile(rf"(?<![\w.]){re.escape(tech)}(?![\w])", re.IGNORECASE)
    for tech in KNOWN_TECHNOLOGIES
]


class EntityExtractor:
    """Regex based extraction of files, symbols, errors and technologies from a prompt"""

    def __init__(self, max_entities: int = 50):
        self.max_entities = max_entities

    def extract(self, prompt: str) -> List[Entity]:
        """Extract entities, deduplicated by type and value, highest confidence first"""

        if not prompt:
            return []

        found: Dict[Tuple[str, str], Entity] = {}

        for entity_type, confidence, patterns in ENTITY_PATTERNS:
            for pattern in patterns:
                for match in pattern.finditer(prompt):
                    value = (match.group(1) if match.groups() else match.group(0)).strip()
                    if value:
                        _keep(found, Entity(type=entity_type, value=value, confidence=confidence))

        for pattern in _TECHNOLOGY_PATTERNS:
            for match in pattern.finditer(prompt):
                _keep(found, Entity(type="technology", value=match.group(0), confidence=TECHNOLOGY_CONFIDENCE))

        entities = sorted(found.values(), key=lambda e: e.confidence, reverse=True)[:self.max_entities]
        logger.debug("Extracted entities", count=len(entities))
        return entities


def _keep(found: Dict[Tuple[str, str], Entity], entity: Entity) -> None:
    key = (entity.type, entity.value.lower())
    existing = found.get(key)
    if existing is None or entity.confidence > existing.confidence:
        found[key] = entity
