"""
Survey Flow Logic Model (SFLM) Package

The flow-logic core of a survey-authoring tool.

ARCHITECTURAL GUARANTEE:
------------------------
This package contains ZERO knowledge of:
    - Rendering and layout
    - Drag-and-drop or any other editor interaction
    - Undo/redo history

This package keeps survey CROSS-REFERENCES consistent, evaluates
display/skip/branching logic against answers, and traces navigation
paths through the block graph.

Every document transition is a pure function (survey, edit) -> survey.
Readers (evaluation, path analysis, validation) never modify a survey.
"""

__version__ = "0.1.0"
