from typing import Dict, Type, TypeVar
from enum import Enum


class TaskCategory(str, Enum):
    """Task categories a prompt can be classified into"""
    GENERAL_QUERY = "general_query"
    BUG_FIX = "bug_fix"
    FEATURE_ADD = "feature_add"
    FEATURE_REMOVE = "feature_remove"
    REFACTOR = "refactor"
    CODE_REVIEW = "code_review"
    DOCUMENTATION = "documentation"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    OPTIMIZATION = "optimization"
    SECURITY = "security"
    ROADMAP = "roadmap"
    # Personal knowledge base workspaces
    NOTE_OPERATIONS = "note_operations"
    REFERENCE_MANAGEMENT = "reference_management"
    PROJECT_MANAGEMENT = "project_management"
    TEMPLATING = "templating"


class InjectionStrategy(str, Enum):
    """Where synthesized context is placed relative to the user prompt"""
    PREFIX = "prefix"
    INLINE = "inline"
    SUFFIX = "suffix"
    HYBRID = "hybrid"


class SectionType(str, Enum):
    """Section types used for token allocation"""
    FILE = "file"
    SYMBOL = "symbol"
    DOCUMENTATION = "documentation"
    CONVERSATION = "conversation"
    ERROR = "error"
    ARCHITECTURE = "architecture"


E = TypeVar("E", bound=Enum)
V = TypeVar("V")


def exhaustive(table: Dict[E, V], enum_type: Type[E], name: str) -> Dict[E, V]:
    """Return ``table`` unchanged, failing at import time if a member is missing.

    Every dispatch table keyed by a closed enumeration goes through this helper,
    so adding a member without updating the table breaks the import instead of
    silently falling back to a default at request time.
    """
    missing = [member.value for member in enum_type if member not in table]
    if missing:
        raise TypeError(f"{name} is missing entries for: {', '.join(missing)}")
    return table
