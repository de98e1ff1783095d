"""Repository layer: DB access helpers (SQLite).

Keep functions thin and focused, so services/routes avoid SQL strings.
"""
from __future__ import annotations
