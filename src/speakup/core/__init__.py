"""Core business logic.

Modules:
- models: Exercise and UserProgress documents
- errors: error taxonomy
- engine: exercise session / progress engine
- projection: derived view shared by dashboard and quiz
- seed: built-in bootstrap catalog
"""

__all__ = [
    "models",
    "errors",
    "engine",
    "projection",
    "seed",
]
