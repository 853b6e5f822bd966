"""Classify a class by the test conventions it should get."""

import logging
import re
from enum import Enum

from unit_skeleton.engine.structure import StructuralModel

logger = logging.getLogger(__name__)


class ClassType(str, Enum):
    """Test convention a class is rendered with."""

    COMPONENT = "component"
    DIRECTIVE = "directive"
    SERVICE = "service"
    PIPE = "pipe"
    CLASS = "class"


# Patterns ordered by specificity: decorators first, then class-name suffix
CLASS_TYPE_PATTERNS = [
    {
        "type": ClassType.COMPONENT,
        "decorators": [r"^component$"],
        "names": [r"Component$"],
    },
    {
        "type": ClassType.DIRECTIVE,
        "decorators": [r"^directive$"],
        "names": [r"Directive$"],
    },
    {
        "type": ClassType.SERVICE,
        "decorators": [r"^injectable$", r"^service$", r"^singleton$"],
        "names": [r"Service$"],
    },
    {
        "type": ClassType.PIPE,
        "decorators": [r"^pipe$"],
        "names": [r"Pipe$"],
    },
]


def classify_class(model: StructuralModel) -> ClassType:
    """Pick the class type from decorator names, then from the class name.

    Args:
        model: Structural model of the class

    Returns:
        The matching ClassType, ClassType.CLASS when nothing matches
    """
    decorators = [d.split(".")[-1] for d in model.decorators]

    for pattern_def in CLASS_TYPE_PATTERNS:
        for pattern in pattern_def["decorators"]:
            if any(re.search(pattern, d, re.IGNORECASE) for d in decorators):
                logger.info(f"Class {model.class_name} is a {pattern_def['type'].value} (decorator)")
                return pattern_def["type"]

    for pattern_def in CLASS_TYPE_PATTERNS:
        for pattern in pattern_def["names"]:
            if re.search(pattern, model.class_name):
                logger.info(f"Class {model.class_name} is a {pattern_def['type'].value} (name)")
                return pattern_def["type"]

    logger.info(f"No pattern matched {model.class_name}, using plain class")
    return ClassType.CLASS
